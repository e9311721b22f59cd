"""Uploading local files as release assets.

Each file is handled on its own:
1. The path must be a regular file (checked once, never retried)
2. Existing assets are listed and checked for a name collision
3. A collision is either deleted (overwrite) or reported as a duplicate
4. The raw bytes are uploaded

Steps 2-4 run under the retry policy. All files upload concurrently and
every upload is allowed to settle; a failing file never cancels the
others.
"""

from __future__ import annotations

import asyncio
import glob
from pathlib import Path

from release_uploader.errors import DuplicateAssetError, NotAFileError
from release_uploader.github import GitHubClientProtocol
from release_uploader.logging_config import get_logger
from release_uploader.retry import retry_async
from release_uploader.schemas import (
    AssetOutcome,
    AssetSpec,
    ReleaseAsset,
    ReleaseDescriptor,
    RetryPolicy,
    UploadStatus,
)

logger = get_logger(__name__)


def expand_assets(
    file: str,
    *,
    asset_name: str | None = None,
    glob_mode: bool = False,
    overwrite: bool = False,
) -> list[AssetSpec]:
    """Turn the configured file (or pattern) into upload specs.

    In glob mode every match is uploaded under its base name and
    ``asset_name`` is ignored. Matches are sorted so repeated runs see the
    same order. Otherwise ``file`` is a single path, uploaded as
    ``asset_name`` or its base name.

    Args:
        file: Path, or glob pattern when ``glob_mode`` is set
        asset_name: Asset name for the single-file case
        glob_mode: Treat ``file`` as a pattern
        overwrite: Replace existing assets with the same name

    Returns:
        One AssetSpec per file, possibly empty in glob mode
    """
    if glob_mode:
        matches = sorted(glob.glob(file, recursive=True))
        if not matches:
            logger.warning("no_files_matched", pattern=file)
        return [
            AssetSpec(local_path=Path(match), asset_name=Path(match).name, overwrite=overwrite)
            for match in matches
        ]

    path = Path(file)
    return [AssetSpec(local_path=path, asset_name=asset_name or path.name, overwrite=overwrite)]


async def upload_asset(
    client: GitHubClientProtocol,
    owner: str,
    repo: str,
    release: ReleaseDescriptor,
    spec: AssetSpec,
    policy: RetryPolicy,
) -> ReleaseAsset:
    """Upload one file to ``release``.

    Raises:
        NotAFileError: ``spec.local_path`` is not a regular file
        DuplicateAssetError: The name is taken and overwrite is off
        RemoteError: A GitHub call failed on the last attempt
    """
    path = spec.local_path
    if not path.is_file():
        raise NotAFileError(path)

    async def attempt() -> ReleaseAsset:
        existing = await client.list_release_assets(owner, repo, release.id)
        duplicate = next((a for a in existing if a.name == spec.asset_name), None)
        if duplicate is not None:
            if not spec.overwrite:
                raise DuplicateAssetError(spec.asset_name)
            await client.delete_release_asset(owner, repo, duplicate.id)
            logger.info(
                "asset_replaced",
                release_id=release.id,
                asset=spec.asset_name,
                asset_id=duplicate.id,
            )

        data = await asyncio.to_thread(path.read_bytes)
        return await client.upload_release_asset(release, spec.asset_name, data)

    asset = await retry_async(attempt, policy)
    logger.info(
        "asset_uploaded",
        release_id=release.id,
        asset=asset.name,
        size=asset.size,
    )
    return asset


async def upload_assets(
    client: GitHubClientProtocol,
    owner: str,
    repo: str,
    release: ReleaseDescriptor,
    specs: list[AssetSpec],
    policy: RetryPolicy,
) -> list[AssetOutcome]:
    """Upload every spec concurrently and wait for all of them to settle.

    Returns:
        One outcome per spec, in the same order as ``specs``
    """
    results = await asyncio.gather(
        *(upload_asset(client, owner, repo, release, spec, policy) for spec in specs),
        return_exceptions=True,
    )

    outcomes: list[AssetOutcome] = []
    for spec, result in zip(specs, results):
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            logger.error(
                "asset_upload_failed",
                release_id=release.id,
                asset=spec.asset_name,
                error=str(result),
            )
            outcomes.append(
                AssetOutcome(
                    asset_name=spec.asset_name,
                    local_path=spec.local_path,
                    status=UploadStatus.FAILED,
                    error=str(result),
                )
            )
        else:
            outcomes.append(
                AssetOutcome(
                    asset_name=spec.asset_name,
                    local_path=spec.local_path,
                    status=UploadStatus.UPLOADED,
                )
            )
    return outcomes
