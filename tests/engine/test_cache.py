from __future__ import annotations

import threading
import time

import pytest

from ghmirror.engine import RetrievalCache
from ghmirror.errors import NotFoundError


class CountingFetch:
    def __init__(self, result) -> None:
        self.result = result
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return dict(self.result) if isinstance(self.result, dict) else self.result


def test_second_call_is_a_cache_hit(persister) -> None:
    cache = RetrievalCache(persister)
    fetch = CountingFetch({"login": "octocat", "type": "User"})

    first = cache.fetch_single("users", {"login": "octocat"}, fetch)
    second = cache.fetch_single("users", {"login": "octocat"}, fetch)

    assert fetch.calls == 1
    assert first["_id"] == second["_id"]
    assert second == persister.find("users", {"login": "octocat"})[0]
    assert persister.count("users", {}) == 1


def test_store_id_is_attached_to_returned_record(persister) -> None:
    cache = RetrievalCache(persister)
    record = cache.fetch_single("repos", {"name": "hello"}, CountingFetch({"name": "hello"}))
    assert record[persister.ext_uniq] is not None
    assert persister.find("repos", {"_id": record["_id"]})[0]["name"] == "hello"


def test_equivalent_selectors_share_one_fetch(persister) -> None:
    cache = RetrievalCache(persister)
    fetch = CountingFetch({"owner": {"login": "a"}, "name": "b"})
    cache.fetch_single("repos", {"owner.login": "a", "name": "b"}, fetch)
    cache.fetch_single("repos", {"name": "b", "owner.login": "a"}, fetch)
    assert fetch.calls == 1


def test_distinct_selectors_fetch_separately(persister) -> None:
    cache = RetrievalCache(persister)
    fetch_a = CountingFetch({"sha": "a"})
    fetch_b = CountingFetch({"sha": "b"})
    cache.fetch_single("commits", {"sha": "a"}, fetch_a)
    cache.fetch_single("commits", {"sha": "b"}, fetch_b)
    assert (fetch_a.calls, fetch_b.calls) == (1, 1)


@pytest.mark.parametrize("empty", [None, {}])
def test_empty_remote_result_raises_not_found(persister, empty) -> None:
    cache = RetrievalCache(persister)
    with pytest.raises(NotFoundError) as excinfo:
        cache.fetch_single("users", {"login": "ghost"}, lambda: empty)
    assert excinfo.value.collection == "users"
    assert excinfo.value.selector == {"login": "ghost"}
    assert "ghost" in str(excinfo.value)
    assert persister.count("users", {}) == 0


def test_missing_ok_returns_none(persister) -> None:
    cache = RetrievalCache(persister)
    assert cache.fetch_single("commit_comments", {"id": 1}, lambda: None, missing_ok=True) is None
    assert persister.count("commit_comments", {}) == 0


def test_fetch_errors_propagate(persister) -> None:
    cache = RetrievalCache(persister)

    def failing():
        raise ConnectionError("offline")

    with pytest.raises(ConnectionError):
        cache.fetch_single("users", {"login": "x"}, failing)


def test_concurrent_callers_fetch_once(persister) -> None:
    cache = RetrievalCache(persister)
    calls: list[int] = []

    def slow_fetch():
        calls.append(1)
        time.sleep(0.05)
        return {"login": "busy"}

    results: list[dict] = []
    threads = [
        threading.Thread(target=lambda: results.append(cache.fetch_single("users", {"login": "busy"}, slow_fetch)))
        for _ in range(5)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(calls) == 1
    assert len({str(r["_id"]) for r in results}) == 1
    assert persister.count("users", {"login": "busy"}) == 1
    assert cache._locks == {}


def test_selector_locks_are_released(persister) -> None:
    cache = RetrievalCache(persister)
    for sha in ("a", "b", "c"):
        cache.fetch_single("commits", {"sha": sha}, CountingFetch({"sha": sha}))
    cache.fetch_single("commits", {"sha": "a"}, CountingFetch({"sha": "a"}))
    with pytest.raises(NotFoundError):
        cache.fetch_single("commits", {"sha": "gone"}, lambda: None)
    assert cache._locks == {}
