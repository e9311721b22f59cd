"""Pydantic models for the data that flows through a release upload.

These schemas are the contract between the configuration layer, the
core reconciliation steps and the GitHub adapter:
- ReleaseRequest / AssetSpec / RetryPolicy are the resolved inputs
- ReleaseDescriptor / ReleaseAsset are built from GitHub API payloads
- AssetOutcome / PublishOutcome are what the publisher reports back

Inputs are frozen: one invocation works against one immutable request.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class UploadStatus(str, Enum):
    """Settled state of a single asset upload."""

    UPLOADED = "uploaded"
    FAILED = "failed"


class PublishStatus(str, Enum):
    """Overall result of an invocation.

    SUCCESS: Release reconciled and every asset uploaded
    FAILURE: A sequential step failed, or at least one asset failed
    """

    SUCCESS = "success"
    FAILURE = "failure"


# ---------------------------------------------------------------------------
# Remote objects
# ---------------------------------------------------------------------------


class ReleaseDescriptor(BaseModel):
    """A release as seen on GitHub.

    Attributes:
        id: Release identifier used by every release endpoint
        name: Display name (GitHub allows it to be null)
        tag_name: Tag the release is attached to
        upload_url: Templated upload URL for assets
        draft: Whether the release is unpublished
        prerelease: Whether the release is marked as a prerelease
    """

    id: int = Field(..., description="Remote release identifier")
    name: str | None = Field(None, description="Release display name")
    tag_name: str = Field("", description="Tag the release points at")
    upload_url: str = Field(..., description="Locator for asset uploads")
    draft: bool = Field(False, description="Unpublished release")
    prerelease: bool = Field(False, description="Marked as prerelease")

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> ReleaseDescriptor:
        """Build a descriptor from a REST API release payload."""
        return cls(
            id=payload["id"],
            name=payload.get("name"),
            tag_name=payload.get("tag_name") or "",
            upload_url=payload["upload_url"],
            draft=bool(payload.get("draft", False)),
            prerelease=bool(payload.get("prerelease", False)),
        )


class ReleaseAsset(BaseModel):
    """A file attached to a release."""

    id: int = Field(..., description="Remote asset identifier")
    name: str = Field(..., description="Asset file name, unique per release")
    size: int = Field(0, ge=0, description="Size in bytes")

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> ReleaseAsset:
        return cls(id=payload["id"], name=payload["name"], size=payload.get("size", 0))


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


class ReleaseRequest(BaseModel):
    """Desired state of the release for one invocation.

    ``draft`` and ``prerelease`` are ``None`` when they were not
    configured; the publisher then carries the release's current value
    forward instead of overwriting it.

    Attributes:
        owner: Repository owner (user or organisation)
        repo: Repository name
        tag: Tag the release is looked up by
        new_tag: Optional tag to rename the release to
        target_ref: Commit SHA or branch name the tag/release should target
        release_name: Display name; defaults to the tag
        notes: Release body; left untouched when None
        delete_existing: Replace an existing release instead of reusing it
        draft: Desired draft flag, None if not configured
        prerelease: Desired prerelease flag, None if not configured
        bump_tag: Move the tag to ``target_ref`` before resolving
    """

    model_config = ConfigDict(frozen=True)

    owner: str = Field(..., min_length=1, description="Repository owner")
    repo: str = Field(..., min_length=1, description="Repository name")
    tag: str = Field(..., min_length=1, description="Release tag")
    new_tag: str | None = Field(None, description="Rename the release tag to this")
    target_ref: str | None = Field(None, description="Commit SHA or branch name")
    release_name: str | None = Field(None, description="Release display name")
    notes: str | None = Field(None, description="Release notes (body)")
    delete_existing: bool = Field(False, description="Delete and recreate an existing release")
    draft: bool | None = Field(None, description="Draft flag, None when unset")
    prerelease: bool | None = Field(None, description="Prerelease flag, None when unset")
    bump_tag: bool = Field(False, description="Move the tag to target_ref first")

    @property
    def final_tag(self) -> str:
        """Tag the release should carry once updated."""
        return self.new_tag or self.tag

    @property
    def display_name(self) -> str:
        return self.release_name or self.tag


class AssetSpec(BaseModel):
    """One local file to attach to the release."""

    model_config = ConfigDict(frozen=True)

    local_path: Path = Field(..., description="Path of the file to upload")
    asset_name: str = Field(..., min_length=1, description="Name of the asset on the release")
    overwrite: bool = Field(False, description="Replace an existing asset with the same name")


class RetryPolicy(BaseModel):
    """Bounded retry with a fixed delay between attempts.

    A ``max_attempts`` of zero or less means a single attempt. A
    ``delay_seconds`` of zero or less disables retrying altogether.
    """

    model_config = ConfigDict(frozen=True)

    delay_seconds: float = Field(
        5.0, allow_inf_nan=False, description="Seconds to wait between attempts"
    )
    max_attempts: int = Field(0, description="Total attempts allowed")


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


class AssetOutcome(BaseModel):
    """Settled result of uploading one asset."""

    asset_name: str
    local_path: Path
    status: UploadStatus
    error: str | None = None


class PublishOutcome(BaseModel):
    """What the publisher reports for a whole invocation.

    When a sequential step (tag move, resolve, update) fails, ``error``
    holds its message and ``assets`` is empty. Otherwise ``assets`` has
    one entry per requested upload.
    """

    status: PublishStatus
    release: ReleaseDescriptor | None = None
    error: str | None = None
    assets: list[AssetOutcome] = Field(default_factory=list)

    @property
    def failed_assets(self) -> list[AssetOutcome]:
        return [a for a in self.assets if a.status == UploadStatus.FAILED]
