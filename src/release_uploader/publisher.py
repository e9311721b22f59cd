"""Release publisher: runs the reconciliation steps in order.

This module ties together all the components:
- Tag moving (tags.py)
- Release lookup/creation (resolver.py)
- Metadata update (updater.py)
- Asset uploads (uploader.py)

The publisher follows this flow:
1. Optionally move the tag to the target commit
2. Find or create the release for the tag
3. Write name, notes, tag, target and flags to the release
4. Upload every asset concurrently and wait for all of them
5. Return a PublishOutcome

Steps 1-3 are sequential and any failure there ends the run. Upload
failures are collected per asset.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from release_uploader.config import PublishConfig, load_config, write_output
from release_uploader.errors import ConfigurationError
from release_uploader.github import FakeGitHubClient, GitHubClient, GitHubClientProtocol
from release_uploader.logging_config import get_logger, setup_logging
from release_uploader.resolver import get_or_create_release
from release_uploader.schemas import (
    AssetSpec,
    PublishOutcome,
    PublishStatus,
    ReleaseRequest,
    RetryPolicy,
    UploadStatus,
)
from release_uploader.tags import move_tag
from release_uploader.updater import resolve_flags, update_release
from release_uploader.uploader import upload_assets

logger = get_logger(__name__)


class ReleasePublisher:
    """Reconciles a release with a request and uploads its assets.

    Holds a single GitHub client shared by every step. Each call to
    publish() is independent.

    Usage:
        async with GitHubClient(token) as client:
            outcome = await ReleasePublisher(client).publish(request, assets, policy)
    """

    def __init__(self, client: GitHubClientProtocol) -> None:
        self.client = client

    async def publish(
        self,
        request: ReleaseRequest,
        assets: list[AssetSpec],
        policy: RetryPolicy,
    ) -> PublishOutcome:
        """Run a full publish.

        Args:
            request: Desired release state
            assets: Files to upload
            policy: Retry policy applied to each upload

        Returns:
            SUCCESS when every step and every upload succeeded, FAILURE
            otherwise. A sequential failure is reported in ``error`` with
            no asset outcomes.
        """
        logger.info(
            "publish_started",
            repo=f"{request.owner}/{request.repo}",
            tag=request.tag,
            assets_count=len(assets),
        )
        try:
            await move_tag(self.client, request)
            release, created = await get_or_create_release(self.client, request)
            draft, prerelease = resolve_flags(request, release, created=created)
            release = await update_release(
                self.client, request, release, draft=draft, prerelease=prerelease
            )
        except Exception as e:
            logger.error(
                "publish_failed",
                tag=request.tag,
                error=str(e),
                exc_info=True,
            )
            return PublishOutcome(status=PublishStatus.FAILURE, error=str(e))

        outcomes = await upload_assets(
            self.client, request.owner, request.repo, release, assets, policy
        )
        failed = [o for o in outcomes if o.status == UploadStatus.FAILED]
        if failed:
            error = f"{len(failed)} of {len(outcomes)} asset upload(s) failed: " + "; ".join(
                f"{o.asset_name}: {o.error}" for o in failed
            )
            logger.error("publish_failed", tag=request.tag, release_id=release.id, error=error)
            return PublishOutcome(
                status=PublishStatus.FAILURE, release=release, error=error, assets=outcomes
            )

        logger.info(
            "publish_complete",
            tag=release.tag_name,
            release_id=release.id,
            uploaded=len(outcomes),
        )
        return PublishOutcome(status=PublishStatus.SUCCESS, release=release, assets=outcomes)


async def run(config: PublishConfig, *, dry_run: bool = False) -> PublishOutcome:
    """Publish using one client built for the whole invocation."""
    if dry_run:
        # Branch targets resolve to a placeholder commit in the fake repository
        target = config.request.target_ref
        client = FakeGitHubClient(branches={target: "0" * 40} if target else None)
        return await ReleasePublisher(client).publish(config.request, config.assets, config.retry)

    async with GitHubClient(token=config.token.get_secret_value()) as client:
        return await ReleasePublisher(client).publish(config.request, config.assets, config.retry)


# ---------------------------------------------------------------------------
# CLI Entry Point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.

    Usage:
        INPUT_GITHUB_TOKEN=... INPUT_TAG=v1.0.0 INPUT_FILE=dist/app.tar.gz release-uploader
        release-uploader --config release.yml

    Returns:
        Process exit code: 0 on success, 1 on any failure
    """
    parser = argparse.ArgumentParser(
        description="Create or update a GitHub release and upload assets to it",
    )
    parser.add_argument(
        "--config", "-c",
        type=str,
        help="YAML file with input values (INPUT_* environment variables take priority)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run against an in-memory repository instead of GitHub",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Logging level (defaults to LOG_LEVEL or INFO)",
    )
    args = parser.parse_args(argv)

    setup_logging(log_level=args.log_level)

    try:
        config = load_config(config_path=args.config, require_token=not args.dry_run)
    except ConfigurationError as e:
        logger.error("configuration_invalid", error=str(e))
        print(f"::error::{e}")
        write_output("result", PublishStatus.FAILURE.value)
        return 1

    outcome = asyncio.run(run(config, dry_run=args.dry_run))
    write_output("result", outcome.status.value)
    if outcome.status == PublishStatus.FAILURE:
        print(f"::error::{outcome.error}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
