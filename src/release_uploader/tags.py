"""Moving a release tag to a new commit.

Only used when ``bump_tag`` is set. The target ref is either a full
commit SHA or a branch name, which is resolved to its tip commit first.
The tag ref is then updated without force, so it can only move forward.

If GitHub answers the update as unprocessable (the ref doesn't exist
yet), the failure is logged and ignored: creating the release afterwards
creates the tag at the target commit.
"""

from __future__ import annotations

import re

from release_uploader.errors import UnprocessableError
from release_uploader.github import GitHubClientProtocol
from release_uploader.logging_config import get_logger
from release_uploader.schemas import ReleaseRequest

logger = get_logger(__name__)

# SHA-1 (40) and SHA-256 (64) object names
COMMIT_SHA_PATTERN = re.compile(r"^[0-9a-fA-F]{40,64}$")


def is_commit_sha(ref: str) -> bool:
    return COMMIT_SHA_PATTERN.match(ref) is not None


async def resolve_commit(client: GitHubClientProtocol, owner: str, repo: str, ref: str) -> str:
    """Return ``ref`` itself if it is a commit SHA, else the branch tip."""
    if is_commit_sha(ref):
        return ref
    sha = await client.get_branch_sha(owner, repo, ref)
    logger.debug("branch_resolved", branch=ref, sha=sha)
    return sha


async def move_tag(client: GitHubClientProtocol, request: ReleaseRequest) -> str | None:
    """Point ``tags/<tag>`` at the request's target ref.

    Args:
        client: GitHub client
        request: The release request; uses tag, target_ref and bump_tag

    Returns:
        The commit SHA the tag was moved to, or None when nothing was
        moved (bumping disabled, no target, or the ref doesn't exist yet)

    Raises:
        RemoteError: Any failure other than an unprocessable ref update
    """
    if not request.bump_tag:
        return None
    if not request.target_ref:
        logger.warning("tag_move_skipped", tag=request.tag, reason="no target ref")
        return None

    sha = await resolve_commit(client, request.owner, request.repo, request.target_ref)
    try:
        await client.update_tag_ref(request.owner, request.repo, request.tag, sha)
    except UnprocessableError as exc:
        logger.warning(
            "tag_move_skipped",
            tag=request.tag,
            sha=sha,
            reason=str(exc),
        )
        return None

    logger.info("tag_moved", tag=request.tag, sha=sha)
    return sha
