"""Apply the requested metadata to a resolved release."""

from __future__ import annotations

from release_uploader.github import GitHubClientProtocol
from release_uploader.logging_config import get_logger
from release_uploader.schemas import ReleaseDescriptor, ReleaseRequest

logger = get_logger(__name__)


def resolve_flags(
    request: ReleaseRequest, release: ReleaseDescriptor, *, created: bool = False
) -> tuple[bool, bool]:
    """Decide the draft/prerelease flags to write.

    A flag that was configured on the request wins; an unset one keeps
    the release's current value. A release created in this run is only a
    draft until now, so an unset draft flag publishes it.

    Returns:
        (draft, prerelease)
    """
    if request.draft is not None:
        draft = request.draft
    else:
        draft = False if created else release.draft
    prerelease = request.prerelease if request.prerelease is not None else release.prerelease
    return draft, prerelease


async def update_release(
    client: GitHubClientProtocol,
    request: ReleaseRequest,
    release: ReleaseDescriptor,
    *,
    draft: bool,
    prerelease: bool,
) -> ReleaseDescriptor:
    """Overwrite name, notes, tag, target and flags of ``release``.

    The flags are written exactly as given. Publishing (``draft=False``)
    notifies watchers of the repository, so callers decide it explicitly.

    Args:
        client: GitHub client
        request: Supplies name, notes, final tag and target ref
        release: The release to update
        draft: Draft flag to write
        prerelease: Prerelease flag to write

    Returns:
        The release as returned by GitHub after the update
    """
    updated = await client.update_release(
        request.owner,
        request.repo,
        release.id,
        name=request.display_name,
        body=request.notes,
        tag_name=request.final_tag,
        target_commitish=request.target_ref,
        draft=draft,
        prerelease=prerelease,
    )
    logger.info(
        "release_updated",
        release_id=updated.id,
        tag=updated.tag_name,
        draft=updated.draft,
        prerelease=updated.prerelease,
    )
    return updated
