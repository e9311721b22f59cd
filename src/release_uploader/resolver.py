"""Find or create the release for a tag.

State machine over whether a release already exists for the tag:

    found, delete_existing=False  -> reuse it unchanged
    found, delete_existing=True   -> delete it, create a new one
    not found                     -> create a new one
    any other lookup failure      -> propagate

New releases are always created as drafts so nothing is announced before
the updater has written the notes. Metadata is not touched here; see
``release_uploader.updater``.
"""

from __future__ import annotations

from release_uploader.errors import NotFoundError
from release_uploader.github import GitHubClientProtocol
from release_uploader.logging_config import get_logger
from release_uploader.schemas import ReleaseDescriptor, ReleaseRequest

logger = get_logger(__name__)


async def find_release(
    client: GitHubClientProtocol, request: ReleaseRequest
) -> ReleaseDescriptor:
    """Find the release for ``request.tag``, drafts included.

    The by-tag endpoint only returns published releases, so a 404 there
    falls back to scanning the full release list.

    Raises:
        NotFoundError: No release, draft or published, has the tag
    """
    try:
        return await client.get_release_by_tag(request.owner, request.repo, request.tag)
    except NotFoundError:
        releases = await client.list_releases(request.owner, request.repo)
        for release in releases:
            if release.tag_name == request.tag:
                logger.debug("draft_release_found", tag=request.tag, release_id=release.id)
                return release
        raise


async def create_release(
    client: GitHubClientProtocol, request: ReleaseRequest
) -> ReleaseDescriptor:
    release = await client.create_release(
        request.owner,
        request.repo,
        tag_name=request.tag,
        name=request.display_name,
        target_commitish=request.target_ref,
        draft=True,
        prerelease=bool(request.prerelease),
    )
    logger.info("release_created", tag=request.tag, release_id=release.id)
    return release


async def get_or_create_release(
    client: GitHubClientProtocol, request: ReleaseRequest
) -> tuple[ReleaseDescriptor, bool]:
    """Resolve the release for ``request.tag``.

    Args:
        client: GitHub client
        request: The release request

    Returns:
        (release, created): the reused or new release, and whether it was
        created by this call

    Raises:
        RemoteError: If the lookup fails for any reason other than
            not-found, or if delete/create fails
    """
    try:
        existing = await find_release(client, request)
    except NotFoundError:
        logger.info("release_not_found", tag=request.tag)
        return await create_release(client, request), True

    if not request.delete_existing:
        logger.info("release_reused", tag=request.tag, release_id=existing.id)
        return existing, False

    await client.delete_release(request.owner, request.repo, existing.id)
    logger.info("release_deleted", tag=request.tag, release_id=existing.id)
    return await create_release(client, request), True
