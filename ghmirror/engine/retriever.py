"""GitHub entity retrieval on top of the cache and the scoped collection sync."""

from __future__ import annotations

from itertools import chain
from typing import Any, Iterable, Mapping

import structlog

from ..config import MirrorConfig
from ..logging_conf import component_logger
from ..persister import BasePersister, Record
from .api_client import ApiClient
from .cache import RetrievalCache
from .sync import CollectionSync, ListingFn


def _user_kind(user: Mapping[str, Any]) -> str:
    return "organization" if user.get("type") == "Organization" else "user"


class GitHubRetriever:
    """Mirror GitHub users, repositories and their repository-bound collections."""

    def __init__(
        self,
        client: ApiClient,
        persister: BasePersister,
        config: MirrorConfig | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.client = client
        self.persister = persister
        self.config = config or client.config
        self.logger = logger or component_logger("retriever")
        self.cache = RetrievalCache(persister)
        self.sync = CollectionSync(persister)

    # ------------------------------------------------------------------
    # Users and organisations
    # ------------------------------------------------------------------
    def retrieve_user_byusername(self, login: str) -> Record:
        user = self.cache.fetch_single(
            "users",
            {"login": login},
            lambda: self.client.api_request(self.client.ghurl(f"users/{login}")),
            label="user",
        )
        self.logger.debug("user_retrieved", login=login, kind=_user_kind(user))
        return user

    def retrieve_user_byemail(self, email: str) -> Record | None:
        """Search a user by public email; optional information, not cached."""

        url = self.client.ghurl("search/users")
        result = self.client.api_request(url, params={"q": f"{email} in:email"})
        if not result or not result.get("items"):
            return None
        return result["items"][0]

    def retrieve_user_followers(self, login: str) -> list[Record]:
        return self.sync.sync_scoped_collection(
            "followers",
            {"follows": login},
            self._listing(f"users/{login}/followers"),
            "login",
        )

    def retrieve_orgs(self, login: str) -> list[Record]:
        orgs = self.client.paged_api_request(self.client.ghurl(f"users/{login}/orgs"))
        return [self.retrieve_org(org["login"]) for org in orgs]

    def retrieve_org(self, org: str) -> Record:
        return self.retrieve_user_byusername(org)

    def retrieve_org_members(self, org: str) -> list[Record]:
        members = self.sync.sync_scoped_collection(
            "org_members",
            {"org": org},
            self._listing(f"orgs/{org}/members"),
            "login",
        )
        return [self.retrieve_user_byusername(member["login"]) for member in members]

    # ------------------------------------------------------------------
    # Repositories and commits
    # ------------------------------------------------------------------
    def retrieve_repo(self, owner: str, repo: str) -> Record:
        return self.cache.fetch_single(
            "repos",
            {"owner.login": owner, "name": repo},
            lambda: self.client.api_request(self.client.ghurl(f"repos/{owner}/{repo}")),
            label="repo",
        )

    def retrieve_commit(self, owner: str, repo: str, sha: str) -> Record:
        return self.cache.fetch_single(
            "commits",
            {"sha": sha},
            lambda: self.client.api_request(self.client.ghurl(f"repos/{owner}/{repo}/commits/{sha}")),
            label="commit",
        )

    def retrieve_commits(self, owner: str, repo: str, sha: str | None = None) -> list[Record]:
        """Retrieve the commit history reachable from ``sha``, bounded by ``commit_pages_new_repo`` pages."""

        url = self.client.ghurl(f"repos/{owner}/{repo}/commits")
        params = {"sha": sha} if sha else None
        listing = self.client.paged_api_request(url, self.config.commit_pages_new_repo, params=params)
        return [self.retrieve_commit(owner, repo, commit["sha"]) for commit in listing]

    def retrieve_commit_comments(self, owner: str, repo: str, sha: str) -> list[Record]:
        return self.sync.sync_scoped_collection(
            "commit_comments",
            {"owner": owner, "repo": repo, "commit_id": sha},
            self._listing(f"repos/{owner}/{repo}/commits/{sha}/comments"),
            "id",
        )

    def retrieve_commit_comment(self, owner: str, repo: str, comment_id: int) -> Record | None:
        """Return a single commit comment, or ``None`` when it was deleted upstream."""

        def fetch() -> Record | None:
            comment = self.client.api_request(self.client.ghurl(f"repos/{owner}/{repo}/comments/{comment_id}"))
            if comment:
                comment["owner"] = owner
                comment["repo"] = repo
            return comment

        return self.cache.fetch_single(
            "commit_comments",
            {"owner": owner, "repo": repo, "id": comment_id},
            fetch,
            label="commit comment",
            missing_ok=True,
        )

    # ------------------------------------------------------------------
    # Repository bound collections
    # ------------------------------------------------------------------
    def retrieve_repo_collaborators(self, owner: str, repo: str) -> list[Record]:
        listing = self._listing(f"repos/{owner}/{repo}/collaborators")
        return self._repo_bound_items(owner, repo, "repo_collaborators", listing, "login")

    def retrieve_repo_collaborator(self, owner: str, repo: str, login: str) -> Record | None:
        listing = self._listing(f"repos/{owner}/{repo}/collaborators")
        return self._repo_bound_item(owner, repo, "repo_collaborators", listing, "login", login)

    def retrieve_watchers(self, owner: str, repo: str) -> list[Record]:
        return self._repo_bound_items(owner, repo, "watchers", self._listing(f"repos/{owner}/{repo}/subscribers"), "login")

    def retrieve_watcher(self, owner: str, repo: str, login: str) -> Record | None:
        listing = self._listing(f"repos/{owner}/{repo}/subscribers")
        return self._repo_bound_item(owner, repo, "watchers", listing, "login", login)

    def retrieve_pull_requests(self, owner: str, repo: str) -> list[Record]:
        return self._repo_bound_items(owner, repo, "pull_requests", self._pull_request_listing(owner, repo), "number")

    def retrieve_pull_request(self, owner: str, repo: str, number: int) -> Record | None:
        listing = self._pull_request_listing(owner, repo)
        return self._repo_bound_item(owner, repo, "pull_requests", listing, "number", number)

    def get_events(self) -> list[Record]:
        """Return the current public event timeline; not cached."""

        return self.client.api_request(self.client.ghurl("events")) or []

    # ------------------------------------------------------------------
    def _listing(self, path: str, params: dict[str, Any] | None = None) -> ListingFn:
        url = self.client.ghurl(path)

        def listing() -> Iterable[Record]:
            return self.client.paged_api_request(url, params=params)

        return listing

    def _pull_request_listing(self, owner: str, repo: str) -> ListingFn:
        # The default listing only holds open pull requests
        open_prs = self._listing(f"repos/{owner}/{repo}/pulls")
        closed_prs = self._listing(f"repos/{owner}/{repo}/pulls", {"state": "closed"})

        def listing() -> Iterable[Record]:
            return chain(open_prs(), closed_prs())

        return listing

    def _repo_bound_items(
        self, owner: str, repo: str, collection: str, listing: ListingFn, discriminator: str
    ) -> list[Record]:
        return self.sync.sync_scoped_collection(collection, {"owner": owner, "repo": repo}, listing, discriminator)

    def _repo_bound_item(
        self,
        owner: str,
        repo: str,
        collection: str,
        listing: ListingFn,
        discriminator: str,
        value: Any,
    ) -> Record | None:
        return self.sync.fetch_scoped_item(collection, {"owner": owner, "repo": repo}, discriminator, value, listing)


__all__ = ["GitHubRetriever"]
