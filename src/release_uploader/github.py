"""GitHub REST API adapter for releases, assets, branches and tag refs.

This is the only module that talks HTTP. Every failed call is turned into
one of the RemoteError variants from ``release_uploader.errors`` here, so
the reconciliation steps never look at status codes.

Design notes:
- Uses a single httpx.AsyncClient per GitHubClient; the publisher builds
  one client and passes it to every step
- Uses a Protocol so the steps don't depend on the concrete implementation
  (FakeGitHubClient below satisfies it for tests and dry runs)
- List endpoints follow the ``Link`` header for pagination

GitHub API docs: https://docs.github.com/en/rest/releases
"""

from __future__ import annotations

import itertools
import os
from types import TracebackType
from typing import Any, Protocol

import httpx

from release_uploader.errors import (
    NotFoundError,
    UnknownRemoteError,
    UnprocessableError,
    classify_response,
)
from release_uploader.logging_config import get_logger
from release_uploader.schemas import ReleaseAsset, ReleaseDescriptor

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# Protocol (Interface)
# ---------------------------------------------------------------------------


class GitHubClientProtocol(Protocol):
    """Operations the release steps need from the hosting service.

    Implementations raise RemoteError variants on failure.
    """

    async def get_release_by_tag(self, owner: str, repo: str, tag: str) -> ReleaseDescriptor:
        ...

    async def list_releases(self, owner: str, repo: str) -> list[ReleaseDescriptor]:
        ...

    async def create_release(
        self,
        owner: str,
        repo: str,
        *,
        tag_name: str,
        name: str | None,
        target_commitish: str | None,
        draft: bool,
        prerelease: bool,
    ) -> ReleaseDescriptor:
        ...

    async def update_release(
        self,
        owner: str,
        repo: str,
        release_id: int,
        *,
        name: str | None,
        body: str | None,
        tag_name: str | None,
        target_commitish: str | None,
        draft: bool,
        prerelease: bool,
    ) -> ReleaseDescriptor:
        ...

    async def delete_release(self, owner: str, repo: str, release_id: int) -> None:
        ...

    async def list_release_assets(
        self, owner: str, repo: str, release_id: int
    ) -> list[ReleaseAsset]:
        ...

    async def delete_release_asset(self, owner: str, repo: str, asset_id: int) -> None:
        ...

    async def upload_release_asset(
        self, release: ReleaseDescriptor, name: str, data: bytes
    ) -> ReleaseAsset:
        ...

    async def get_branch_sha(self, owner: str, repo: str, branch: str) -> str:
        ...

    async def update_tag_ref(self, owner: str, repo: str, tag: str, sha: str) -> None:
        ...


# ---------------------------------------------------------------------------
# Concrete Implementation
# ---------------------------------------------------------------------------


class GitHubClient:
    """Real GitHub API client using httpx.

    Usage:
        async with GitHubClient(token="ghp_...") as client:
            release = await client.get_release_by_tag("myorg", "api", "v1.0.0")
    """

    BASE_URL = "https://api.github.com"

    def __init__(
        self,
        token: str | None = None,
        *,
        base_url: str = BASE_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the GitHub client.

        Args:
            token: GitHub token. Falls back to the GITHUB_TOKEN
                   environment variable if not provided.
            base_url: API root, override for GitHub Enterprise
            timeout: Per-request timeout in seconds
            transport: Custom httpx transport (tests pass a MockTransport)
        """
        self._token = token or os.environ.get("GITHUB_TOKEN", "")
        self._headers: dict[str, str] = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._token:
            self._headers["Authorization"] = f"Bearer {self._token}"
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=self._headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request and classify any failure.

        Raises:
            RemoteError: A variant matching the failure
        """
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            raise UnknownRemoteError(f"{method} {url} failed: {exc}") from exc
        if resp.is_error:
            error = classify_response(resp)
            logger.debug(
                "github_request_failed",
                method=method,
                url=url,
                status=resp.status_code,
                kind=error.kind.value,
            )
            raise error
        return resp

    # -- releases ----------------------------------------------------------

    async def get_release_by_tag(self, owner: str, repo: str, tag: str) -> ReleaseDescriptor:
        """Look up a published release by tag.

        GitHub answers 404 for drafts here; use list_releases to see them.
        """
        resp = await self._request("GET", f"/repos/{owner}/{repo}/releases/tags/{tag}")
        return ReleaseDescriptor.from_api(resp.json())

    async def list_releases(self, owner: str, repo: str) -> list[ReleaseDescriptor]:
        """List every release, drafts included (drafts need push access)."""
        items = await self._handle_pagination(f"/repos/{owner}/{repo}/releases")
        return [ReleaseDescriptor.from_api(item) for item in items]

    async def create_release(
        self,
        owner: str,
        repo: str,
        *,
        tag_name: str,
        name: str | None,
        target_commitish: str | None,
        draft: bool,
        prerelease: bool,
    ) -> ReleaseDescriptor:
        payload = _drop_none(
            {
                "tag_name": tag_name,
                "name": name,
                "target_commitish": target_commitish,
                "draft": draft,
                "prerelease": prerelease,
            }
        )
        resp = await self._request("POST", f"/repos/{owner}/{repo}/releases", json=payload)
        return ReleaseDescriptor.from_api(resp.json())

    async def update_release(
        self,
        owner: str,
        repo: str,
        release_id: int,
        *,
        name: str | None,
        body: str | None,
        tag_name: str | None,
        target_commitish: str | None,
        draft: bool,
        prerelease: bool,
    ) -> ReleaseDescriptor:
        """Overwrite release metadata.

        Fields passed as None are left out of the request and so keep
        their current remote value.
        """
        payload = _drop_none(
            {
                "name": name,
                "body": body,
                "tag_name": tag_name,
                "target_commitish": target_commitish,
                "draft": draft,
                "prerelease": prerelease,
            }
        )
        resp = await self._request(
            "PATCH", f"/repos/{owner}/{repo}/releases/{release_id}", json=payload
        )
        return ReleaseDescriptor.from_api(resp.json())

    async def delete_release(self, owner: str, repo: str, release_id: int) -> None:
        await self._request("DELETE", f"/repos/{owner}/{repo}/releases/{release_id}")

    # -- assets ------------------------------------------------------------

    async def list_release_assets(
        self, owner: str, repo: str, release_id: int
    ) -> list[ReleaseAsset]:
        items = await self._handle_pagination(
            f"/repos/{owner}/{repo}/releases/{release_id}/assets"
        )
        return [ReleaseAsset.from_api(item) for item in items]

    async def delete_release_asset(self, owner: str, repo: str, asset_id: int) -> None:
        await self._request("DELETE", f"/repos/{owner}/{repo}/releases/assets/{asset_id}")

    async def upload_release_asset(
        self, release: ReleaseDescriptor, name: str, data: bytes
    ) -> ReleaseAsset:
        """Upload raw bytes as a release asset.

        The release's upload_url is an RFC 6570 template
        (``.../assets{?name,label}``); the template part is dropped and
        the name is sent as a query parameter instead.
        """
        url = release.upload_url.split("{", 1)[0]
        resp = await self._request(
            "POST",
            url,
            params={"name": name},
            content=data,
            headers={
                "Content-Type": "application/octet-stream",
                "Content-Length": str(len(data)),
            },
        )
        return ReleaseAsset.from_api(resp.json())

    # -- git refs ----------------------------------------------------------

    async def get_branch_sha(self, owner: str, repo: str, branch: str) -> str:
        resp = await self._request("GET", f"/repos/{owner}/{repo}/branches/{branch}")
        return resp.json()["commit"]["sha"]

    async def update_tag_ref(self, owner: str, repo: str, tag: str, sha: str) -> None:
        # force=False: the tag may only move to a descendant commit
        await self._request(
            "PATCH",
            f"/repos/{owner}/{repo}/git/refs/tags/{tag}",
            json={"sha": sha, "force": False},
        )

    async def _handle_pagination(self, url: str) -> list[dict]:
        """Collect every item of a paginated list endpoint.

        GitHub returns a 'Link' header with next/prev/last URLs for
        paginated responses.
        """
        all_items: list[dict] = []

        resp = await self._request("GET", url, params={"per_page": 100})
        all_items.extend(resp.json())
        next_url = self._parse_next_link(resp.headers.get("link", ""))

        # The next URL already carries per_page and page; passing params
        # again would replace its query string
        while next_url:
            resp = await self._request("GET", next_url)
            all_items.extend(resp.json())
            next_url = self._parse_next_link(resp.headers.get("link", ""))

        return all_items

    @staticmethod
    def _parse_next_link(link_header: str) -> str | None:
        """Extract the 'next' URL from a GitHub Link header."""
        if not link_header:
            return None
        for part in link_header.split(","):
            if 'rel="next"' in part:
                return part.split(";")[0].strip().strip("<>")
        return None


def _drop_none(payload: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


# ---------------------------------------------------------------------------
# Fake Implementation (for tests and dry runs)
# ---------------------------------------------------------------------------


class FakeGitHubClient:
    """In-memory stand-in for a single GitHub repository.

    Keeps releases, assets, branches and tag refs in dicts and raises the
    same RemoteError variants as the real client. Every call is appended
    to ``calls`` so tests can assert on what happened.

    Usage:
        client = FakeGitHubClient(branches={"main": "a" * 40})
        client.add_release("v1.0.0")
        release = await client.get_release_by_tag("org", "repo", "v1.0.0")

    Queue failures for a method with ``fail("upload_release_asset", exc)``;
    each queued exception is raised once, in order, before the method
    behaves normally again.
    """

    UPLOAD_URL = "https://uploads.github.test/releases/{id}/assets{{?name,label}}"

    def __init__(
        self,
        branches: dict[str, str] | None = None,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Initialize the fake repository.

        Args:
            branches: Branch name -> tip commit SHA
            tags: Existing tag name -> commit SHA
        """
        self.branches: dict[str, str] = dict(branches or {})
        self.tag_refs: dict[str, str] = dict(tags or {})
        self.releases: dict[int, ReleaseDescriptor] = {}
        self.bodies: dict[int, str | None] = {}
        self.targets: dict[int, str | None] = {}
        self.assets: dict[int, list[ReleaseAsset]] = {}
        self.asset_data: dict[int, bytes] = {}
        self.calls: list[str] = []
        self._failures: dict[str, list[Exception]] = {}
        self._ids = itertools.count(1)

    # -- test helpers ------------------------------------------------------

    def add_release(
        self,
        tag: str,
        *,
        name: str | None = None,
        draft: bool = False,
        prerelease: bool = False,
    ) -> ReleaseDescriptor:
        release_id = next(self._ids)
        release = ReleaseDescriptor(
            id=release_id,
            name=name if name is not None else tag,
            tag_name=tag,
            upload_url=self.UPLOAD_URL.format(id=release_id),
            draft=draft,
            prerelease=prerelease,
        )
        self.releases[release_id] = release
        self.assets[release_id] = []
        return release

    def add_asset(self, release_id: int, name: str, data: bytes = b"") -> ReleaseAsset:
        asset = ReleaseAsset(id=next(self._ids), name=name, size=len(data))
        self.assets[release_id].append(asset)
        self.asset_data[asset.id] = data
        return asset

    def asset_names(self, release_id: int) -> list[str]:
        return [asset.name for asset in self.assets.get(release_id, [])]

    def fail(self, method: str, *errors: Exception) -> None:
        self._failures.setdefault(method, []).extend(errors)

    def _record(self, method: str) -> None:
        self.calls.append(method)
        queued = self._failures.get(method)
        if queued:
            raise queued.pop(0)

    def _find_by_tag(self, tag: str) -> ReleaseDescriptor | None:
        for release in self.releases.values():
            if release.tag_name == tag:
                return release
        return None

    def _get(self, release_id: int) -> ReleaseDescriptor:
        if release_id not in self.releases:
            raise NotFoundError(f"release {release_id} not found", 404)
        return self.releases[release_id]

    def _commit_for(self, target: str | None) -> str:
        if target is None:
            return ""
        return self.branches.get(target, target)

    # -- protocol ----------------------------------------------------------

    async def get_release_by_tag(self, owner: str, repo: str, tag: str) -> ReleaseDescriptor:
        self._record("get_release_by_tag")
        release = self._find_by_tag(tag)
        # Like GitHub, the by-tag lookup only sees published releases
        if release is None or release.draft:
            raise NotFoundError(f"release for tag {tag} not found", 404)
        return release

    async def list_releases(self, owner: str, repo: str) -> list[ReleaseDescriptor]:
        self._record("list_releases")
        return list(self.releases.values())

    async def create_release(
        self,
        owner: str,
        repo: str,
        *,
        tag_name: str,
        name: str | None,
        target_commitish: str | None,
        draft: bool,
        prerelease: bool,
    ) -> ReleaseDescriptor:
        self._record("create_release")
        if self._find_by_tag(tag_name) is not None:
            raise UnprocessableError(f"release for tag {tag_name} already_exists", 422)
        release = self.add_release(tag_name, name=name, draft=draft, prerelease=prerelease)
        self.targets[release.id] = target_commitish
        self.tag_refs.setdefault(tag_name, self._commit_for(target_commitish))
        return release

    async def update_release(
        self,
        owner: str,
        repo: str,
        release_id: int,
        *,
        name: str | None,
        body: str | None,
        tag_name: str | None,
        target_commitish: str | None,
        draft: bool,
        prerelease: bool,
    ) -> ReleaseDescriptor:
        self._record("update_release")
        current = self._get(release_id)
        updated = current.model_copy(
            update={
                "name": name if name is not None else current.name,
                "tag_name": tag_name if tag_name is not None else current.tag_name,
                "draft": draft,
                "prerelease": prerelease,
            }
        )
        if body is not None:
            self.bodies[release_id] = body
        if target_commitish is not None:
            self.targets[release_id] = target_commitish
        self.tag_refs.setdefault(updated.tag_name, self._commit_for(target_commitish))
        self.releases[release_id] = updated
        return updated

    async def delete_release(self, owner: str, repo: str, release_id: int) -> None:
        self._record("delete_release")
        self._get(release_id)
        del self.releases[release_id]
        del self.assets[release_id]

    async def list_release_assets(
        self, owner: str, repo: str, release_id: int
    ) -> list[ReleaseAsset]:
        self._record("list_release_assets")
        self._get(release_id)
        return list(self.assets[release_id])

    async def delete_release_asset(self, owner: str, repo: str, asset_id: int) -> None:
        self._record("delete_release_asset")
        for assets in self.assets.values():
            for asset in assets:
                if asset.id == asset_id:
                    assets.remove(asset)
                    self.asset_data.pop(asset_id, None)
                    return
        raise NotFoundError(f"asset {asset_id} not found", 404)

    async def upload_release_asset(
        self, release: ReleaseDescriptor, name: str, data: bytes
    ) -> ReleaseAsset:
        self._record("upload_release_asset")
        self._get(release.id)
        if name in self.asset_names(release.id):
            raise UnprocessableError(f"asset {name} already_exists", 422)
        return self.add_asset(release.id, name, data)

    async def get_branch_sha(self, owner: str, repo: str, branch: str) -> str:
        self._record("get_branch_sha")
        if branch not in self.branches:
            raise NotFoundError(f"branch {branch} not found", 404)
        return self.branches[branch]

    async def update_tag_ref(self, owner: str, repo: str, tag: str, sha: str) -> None:
        self._record("update_tag_ref")
        if tag not in self.tag_refs:
            raise UnprocessableError("Reference does not exist", 422)
        self.tag_refs[tag] = sha
