"""Tests for the release publisher and its CLI.

These tests run whole invocations against FakeGitHubClient:
- First publish of a tag creates the release and uploads
- Re-running reuses the release; duplicates fail unless overwritten
- Sequential failures stop the run before any upload
- Flags that weren't configured are carried forward

Run with: pytest tests/test_publisher.py -v
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from release_uploader.errors import UnknownRemoteError
from release_uploader.github import FakeGitHubClient
from release_uploader.publisher import ReleasePublisher, main
from release_uploader.schemas import (
    AssetSpec,
    PublishStatus,
    ReleaseRequest,
    RetryPolicy,
    UploadStatus,
)

POLICY = RetryPolicy(delay_seconds=5, max_attempts=0)

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def client() -> FakeGitHubClient:
    return FakeGitHubClient(branches={"main": "f" * 40}, tags={"v1.0.0": "1" * 40})


@pytest.fixture
def publisher(client: FakeGitHubClient) -> ReleasePublisher:
    return ReleasePublisher(client)


@pytest.fixture
def artifact(tmp_path: Path) -> Path:
    path = tmp_path / "build.tar.gz"
    path.write_bytes(b"first build")
    return path


def make_request(**overrides) -> ReleaseRequest:
    data = {"owner": "myorg", "repo": "api", "tag": "v1.0.0"}
    data.update(overrides)
    return ReleaseRequest(**data)


def asset(path: Path, overwrite: bool = False) -> AssetSpec:
    return AssetSpec(local_path=path, asset_name=path.name, overwrite=overwrite)


# ---------------------------------------------------------------------------
# Publish scenarios
# ---------------------------------------------------------------------------


class TestPublishScenarios:
    @pytest.mark.asyncio
    async def test_first_publish_creates_draft_and_uploads(
        self, publisher: ReleasePublisher, client: FakeGitHubClient, artifact: Path
    ) -> None:
        outcome = await publisher.publish(make_request(draft=True), [asset(artifact)], POLICY)

        assert outcome.status == PublishStatus.SUCCESS
        assert outcome.error is None
        assert outcome.release.name == "v1.0.0"
        assert outcome.release.draft is True
        assert client.asset_names(outcome.release.id) == ["build.tar.gz"]
        assert [a.status for a in outcome.assets] == [UploadStatus.UPLOADED]

    @pytest.mark.asyncio
    async def test_new_release_is_drafted_then_published(
        self, publisher: ReleasePublisher, client: FakeGitHubClient, artifact: Path
    ) -> None:
        client.create_release = AsyncMock(wraps=client.create_release)

        outcome = await publisher.publish(make_request(notes="Notes"), [asset(artifact)], POLICY)

        assert outcome.status == PublishStatus.SUCCESS
        assert client.create_release.await_args.kwargs["draft"] is True
        assert outcome.release.draft is False
        assert client.bodies[outcome.release.id] == "Notes"

    @pytest.mark.asyncio
    async def test_rerun_reuses_release_and_handles_duplicates(
        self, publisher: ReleasePublisher, client: FakeGitHubClient, artifact: Path
    ) -> None:
        first = await publisher.publish(make_request(draft=True), [asset(artifact)], POLICY)

        # Same tag, no overwrite: the draft is found again, duplicate asset
        second = await publisher.publish(make_request(), [asset(artifact)], POLICY)
        assert second.release.id == first.release.id
        assert second.release.draft is True
        assert len(client.releases) == 1
        assert second.status == PublishStatus.FAILURE
        assert second.assets[0].status == UploadStatus.FAILED
        assert "Duplicate Asset: build.tar.gz" in second.assets[0].error
        assert "delete_release_asset" not in client.calls

        # Overwrite replaces it
        artifact.write_bytes(b"second build")
        third = await publisher.publish(make_request(), [asset(artifact, overwrite=True)], POLICY)
        assert third.status == PublishStatus.SUCCESS
        assert third.release.id == first.release.id
        assert client.asset_names(first.release.id) == ["build.tar.gz"]
        assert client.calls.count("delete_release_asset") == 1
        [stored] = client.assets[first.release.id]
        assert client.asset_data[stored.id] == b"second build"

    @pytest.mark.asyncio
    async def test_delete_existing_gives_new_release(
        self, publisher: ReleasePublisher, client: FakeGitHubClient, artifact: Path
    ) -> None:
        old = client.add_release("v1.0.0")
        client.add_asset(old.id, "build.tar.gz")

        outcome = await publisher.publish(
            make_request(delete_existing=True), [asset(artifact)], POLICY
        )

        assert outcome.status == PublishStatus.SUCCESS
        assert outcome.release.id != old.id
        assert client.asset_names(outcome.release.id) == ["build.tar.gz"]

    @pytest.mark.asyncio
    async def test_glob_assets_upload_under_base_names(
        self, publisher: ReleasePublisher, client: FakeGitHubClient, tmp_path: Path
    ) -> None:
        files = [tmp_path / "a.txt", tmp_path / "b.zip"]
        for path in files:
            path.write_bytes(path.name.encode())

        outcome = await publisher.publish(make_request(), [asset(p) for p in files], POLICY)

        assert outcome.status == PublishStatus.SUCCESS
        assert sorted(client.asset_names(outcome.release.id)) == ["a.txt", "b.zip"]

    @pytest.mark.asyncio
    async def test_one_bad_file_does_not_block_others(
        self, publisher: ReleasePublisher, client: FakeGitHubClient, artifact: Path, tmp_path: Path
    ) -> None:
        outcome = await publisher.publish(
            make_request(),
            [asset(tmp_path / "missing.zip"), asset(artifact)],
            POLICY,
        )

        assert outcome.status == PublishStatus.FAILURE
        assert "1 of 2" in outcome.error
        assert "missing.zip" in outcome.error
        assert [a.asset_name for a in outcome.failed_assets] == ["missing.zip"]
        assert client.asset_names(outcome.release.id) == ["build.tar.gz"]


class TestPublishSequence:
    @pytest.mark.asyncio
    async def test_bump_tag_runs_before_resolve(
        self, publisher: ReleasePublisher, client: FakeGitHubClient, artifact: Path
    ) -> None:
        request = make_request(bump_tag=True, target_ref="main")

        outcome = await publisher.publish(request, [asset(artifact)], POLICY)

        assert outcome.status == PublishStatus.SUCCESS
        assert client.tag_refs["v1.0.0"] == "f" * 40
        assert client.calls[:6] == [
            "get_branch_sha",
            "update_tag_ref",
            "get_release_by_tag",
            "list_releases",
            "create_release",
            "update_release",
        ]

    @pytest.mark.asyncio
    async def test_sequential_failure_stops_before_uploads(
        self, publisher: ReleasePublisher, client: FakeGitHubClient, artifact: Path
    ) -> None:
        client.fail("get_release_by_tag", UnknownRemoteError("internal server error", 500))

        outcome = await publisher.publish(make_request(), [asset(artifact)], POLICY)

        assert outcome.status == PublishStatus.FAILURE
        assert "internal server error" in outcome.error
        assert outcome.release is None
        assert outcome.assets == []
        assert "create_release" not in client.calls
        assert "upload_release_asset" not in client.calls

    @pytest.mark.asyncio
    async def test_update_failure_stops_before_uploads(
        self, publisher: ReleasePublisher, client: FakeGitHubClient, artifact: Path
    ) -> None:
        client.fail("update_release", UnknownRemoteError("validation failed", 500))

        outcome = await publisher.publish(make_request(), [asset(artifact)], POLICY)

        assert outcome.status == PublishStatus.FAILURE
        assert "list_release_assets" not in client.calls

    @pytest.mark.asyncio
    async def test_unset_flags_are_carried_forward(
        self, publisher: ReleasePublisher, client: FakeGitHubClient, artifact: Path
    ) -> None:
        client.add_release("v1.0.0", draft=True, prerelease=True)

        outcome = await publisher.publish(make_request(), [asset(artifact)], POLICY)

        assert outcome.release.draft is True
        assert outcome.release.prerelease is True

    @pytest.mark.asyncio
    async def test_configured_flags_publish_release(
        self, publisher: ReleasePublisher, client: FakeGitHubClient, artifact: Path
    ) -> None:
        client.add_release("v1.0.0", draft=True, prerelease=True)

        outcome = await publisher.publish(
            make_request(draft=False, prerelease=False, notes="Final"), [asset(artifact)], POLICY
        )

        assert outcome.release.draft is False
        assert outcome.release.prerelease is False
        assert client.bodies[outcome.release.id] == "Final"

    @pytest.mark.asyncio
    async def test_new_tag_renames_release(
        self, publisher: ReleasePublisher, client: FakeGitHubClient, artifact: Path
    ) -> None:
        client.add_release("v1.0.0")

        outcome = await publisher.publish(make_request(new_tag="v1.0.1"), [asset(artifact)], POLICY)

        assert outcome.release.tag_name == "v1.0.1"


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


class TestCLI:
    @pytest.fixture
    def action_env(self, monkeypatch: pytest.MonkeyPatch, artifact: Path, tmp_path: Path) -> Path:
        output = tmp_path / "github_output"
        monkeypatch.setenv("INPUT_FILE", str(artifact))
        monkeypatch.setenv("GITHUB_REPOSITORY", "myorg/api")
        monkeypatch.setenv("GITHUB_REF", "refs/tags/v1.0.0")
        monkeypatch.setenv("GITHUB_OUTPUT", str(output))
        monkeypatch.delenv("INPUT_PREFIX_ASSET_NAME_WITH_TAG", raising=False)
        monkeypatch.delenv("INPUT_SUFFIX_ASSET_NAME_WITH_TAG", raising=False)
        return output

    def test_dry_run_succeeds(self, action_env: Path) -> None:
        assert main(["--dry-run"]) == 0
        assert action_env.read_text() == "result=success\n"

    def test_dry_run_upload_failure(
        self, action_env: Path, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        monkeypatch.setenv("INPUT_FILE", str(tmp_path / "missing.zip"))

        assert main(["--dry-run"]) == 1
        assert action_env.read_text() == "result=failure\n"

    @pytest.mark.parametrize("attempts", ["inf", "nan"])
    def test_non_finite_max_attempts(
        self, action_env: Path, monkeypatch: pytest.MonkeyPatch, attempts: str
    ) -> None:
        monkeypatch.setenv("INPUT_MAX_ATTEMPTS", attempts)

        assert main(["--dry-run"]) == 1
        assert action_env.read_text() == "result=failure\n"

    def test_configuration_error(self, action_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("INPUT_PREFIX_ASSET_NAME_WITH_TAG", "true")
        monkeypatch.setenv("INPUT_SUFFIX_ASSET_NAME_WITH_TAG", "true")

        assert main(["--dry-run"]) == 1
        assert action_env.read_text() == "result=failure\n"
