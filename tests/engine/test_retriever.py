from __future__ import annotations

from collections import Counter

import httpx
import pytest

from ghmirror.engine import ApiClient, GitHubRetriever
from ghmirror.errors import NotFoundError

ROUTES: dict[str, object] = {
    "/users/octocat": {"login": "octocat", "type": "User"},
    "/users/acme": {"login": "acme", "type": "Organization"},
    "/users/alice": {"login": "alice", "type": "User"},
    "/users/octocat/followers": [{"login": "alice"}, {"login": "bob"}],
    "/users/octocat/orgs": [{"login": "acme"}],
    "/orgs/acme/members": [{"login": "alice"}],
    "/repos/octo/hello": {"name": "hello", "owner": {"login": "octo"}},
    "/repos/octo/hello/commits": [{"sha": "c1"}, {"sha": "c2"}],
    "/repos/octo/hello/commits/c1": {"sha": "c1", "commit": {"message": "one"}},
    "/repos/octo/hello/commits/c2": {"sha": "c2", "commit": {"message": "two"}},
    "/repos/octo/hello/commits/c1/comments": [{"id": 11, "commit_id": "c1", "body": "nice"}],
    "/repos/octo/hello/comments/11": {"id": 11, "commit_id": "c1", "body": "nice"},
    "/repos/octo/hello/subscribers": [{"login": "alice"}],
    "/repos/octo/hello/collaborators": [{"login": "octo"}],
    "/events": [{"id": "e1", "type": "PushEvent"}],
    "/search/users": {"total_count": 1, "items": [{"login": "alice"}]},
}


@pytest.fixture
def requests_seen() -> Counter:
    return Counter()


@pytest.fixture
def queries_seen() -> list[tuple[str, dict[str, str]]]:
    return []


@pytest.fixture
def retriever(persister, mirror_config, requests_seen, queries_seen) -> GitHubRetriever:
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        requests_seen[path] += 1
        queries_seen.append((path, dict(request.url.params)))
        if path == "/repos/octo/hello/pulls":
            state = request.url.params.get("state", "open")
            pulls = [{"number": 1, "state": "open"}] if state == "open" else [{"number": 2, "state": "closed"}]
            return httpx.Response(200, json=pulls)
        if path not in ROUTES:
            return httpx.Response(404, json={"message": "Not Found"})
        return httpx.Response(200, json=ROUTES[path])

    client = ApiClient(mirror_config, transport=httpx.MockTransport(handler))
    return GitHubRetriever(client, persister, mirror_config)


def test_user_is_fetched_once(retriever, requests_seen) -> None:
    first = retriever.retrieve_user_byusername("octocat")
    second = retriever.retrieve_user_byusername("octocat")
    assert first["login"] == second["login"] == "octocat"
    assert requests_seen["/users/octocat"] == 1


def test_unknown_user_raises_not_found(retriever) -> None:
    with pytest.raises(NotFoundError):
        retriever.retrieve_user_byusername("ghost")


def test_user_search_by_email(retriever) -> None:
    assert retriever.retrieve_user_byemail("alice@example.com")["login"] == "alice"


def test_followers_are_scoped_to_the_followed_user(retriever, persister) -> None:
    followers = retriever.retrieve_user_followers("octocat")
    assert sorted(f["login"] for f in followers) == ["alice", "bob"]
    assert persister.count("followers", {"follows": "octocat"}) == 2


def test_orgs_and_members_resolve_to_users(retriever, persister) -> None:
    orgs = retriever.retrieve_orgs("octocat")
    assert [o["login"] for o in orgs] == ["acme"]
    members = retriever.retrieve_org_members("acme")
    assert [m["login"] for m in members] == ["alice"]
    assert persister.count("org_members", {"org": "acme"}) == 1
    assert persister.count("users", {}) == 2


def test_repo_selector_uses_nested_owner(retriever, requests_seen) -> None:
    retriever.retrieve_repo("octo", "hello")
    repo = retriever.retrieve_repo("octo", "hello")
    assert repo["owner"]["login"] == "octo"
    assert requests_seen["/repos/octo/hello"] == 1


def test_commits_listing_fetches_each_commit_once(retriever, requests_seen, queries_seen, persister) -> None:
    commits = retriever.retrieve_commits("octo", "hello")
    assert [c["commit"]["message"] for c in commits] == ["one", "two"]
    retriever.retrieve_commits("octo", "hello", sha="c2")
    assert requests_seen["/repos/octo/hello/commits/c1"] == 1
    assert persister.count("commits", {}) == 2

    listings = [query for path, query in queries_seen if path == "/repos/octo/hello/commits"]
    assert listings == [{"per_page": "2"}, {"sha": "c2", "per_page": "2"}]


def test_commit_comments(retriever, requests_seen) -> None:
    comments = retriever.retrieve_commit_comments("octo", "hello", "c1")
    assert [c["id"] for c in comments] == [11]
    comment = retriever.retrieve_commit_comment("octo", "hello", 11)
    assert comment["body"] == "nice"
    assert requests_seen["/repos/octo/hello/comments/11"] == 0


def test_deleted_commit_comment_is_none(retriever, persister) -> None:
    assert retriever.retrieve_commit_comment("octo", "hello", 99) is None
    assert persister.count("commit_comments", {}) == 0


def test_pull_requests_merge_open_and_closed(retriever, persister, queries_seen) -> None:
    pulls = retriever.retrieve_pull_requests("octo", "hello")
    assert sorted(p["number"] for p in pulls) == [1, 2]
    assert [query.get("state") for path, query in queries_seen if path == "/repos/octo/hello/pulls"] == [
        None,
        "closed",
    ]
    assert all(p["owner"] == "octo" and p["repo"] == "hello" for p in pulls)
    assert retriever.retrieve_pull_request("octo", "hello", 2)["state"] == "closed"
    assert retriever.retrieve_pull_request("octo", "hello", 3) is None


def test_watchers_and_collaborators(retriever) -> None:
    assert retriever.retrieve_watcher("octo", "hello", "alice")["login"] == "alice"
    assert [w["login"] for w in retriever.retrieve_watchers("octo", "hello")] == ["alice"]
    assert retriever.retrieve_repo_collaborator("octo", "hello", "nobody") is None
    assert [c["login"] for c in retriever.retrieve_repo_collaborators("octo", "hello")] == ["octo"]


def test_events_are_not_cached(retriever, requests_seen, persister) -> None:
    assert retriever.get_events()[0]["type"] == "PushEvent"
    retriever.get_events()
    assert requests_seen["/events"] == 2
    assert persister.collections() == []
