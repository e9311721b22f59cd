"""Reading and validating the action's configuration.

Inputs follow the GitHub Actions convention: an input named
``release_name`` arrives as the ``INPUT_RELEASE_NAME`` environment
variable. A YAML file can supply the same keys at lower priority, which
is handy for running the tool outside of Actions:

    # release.yml
    file: "dist/*"
    is_file_glob: true
    overwrite: true
    max_attempts: 3
    retry_delay: 10

Everything here runs before a GitHub client exists, so a bad input never
causes a remote side effect.
"""

from __future__ import annotations

import math
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, SecretStr, ValidationError

from release_uploader.errors import ConfigurationError
from release_uploader.logging_config import get_logger
from release_uploader.schemas import AssetSpec, ReleaseRequest, RetryPolicy
from release_uploader.uploader import expand_assets

logger = get_logger(__name__)

TAG_REF_PREFIX = "refs/tags/"

DEFAULT_RETRY_DELAY = 5.0
DEFAULT_MAX_ATTEMPTS = 0

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class PublishConfig(BaseModel):
    """Everything the publisher needs for one invocation."""

    token: SecretStr
    request: ReleaseRequest
    assets: list[AssetSpec]
    retry: RetryPolicy


# ---------------------------------------------------------------------------
# Input helpers
# ---------------------------------------------------------------------------


def input_env_name(name: str) -> str:
    """Environment variable GitHub Actions uses for input ``name``."""
    return "INPUT_" + name.replace(" ", "_").upper()


def parse_bool(value: Any, *, name: str, default: bool | None = False) -> bool | None:
    """Interpret an input value as a boolean.

    Action inputs are always strings, so the usual spellings are
    accepted. ``None`` or an empty string gives ``default``.

    Raises:
        ConfigurationError: The value isn't a recognisable boolean
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    normalised = str(value).strip().lower()
    if not normalised:
        return default
    if normalised in _TRUE_VALUES:
        return True
    if normalised in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"Input '{name}' must be a boolean, got {value!r}")


def strip_tag_ref(ref: str) -> str:
    """``refs/tags/v1.0.0`` -> ``v1.0.0``; bare tag names pass through."""
    if ref.startswith(TAG_REF_PREFIX):
        return ref[len(TAG_REF_PREFIX):]
    return ref


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Load input values from a YAML mapping.

    Raises:
        ConfigurationError: Missing file, invalid YAML, or not a mapping
    """
    config_path = Path(path)
    if not config_path.is_file():
        raise ConfigurationError(f"Config file {path} does not exist")

    try:
        raw = yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return raw


class _Inputs:
    """Looks inputs up in the environment first, then the config file."""

    def __init__(self, environ: Mapping[str, str], file_values: Mapping[str, Any]) -> None:
        self._environ = environ
        self._file_values = file_values

    def get(self, name: str) -> Any:
        value = self._environ.get(input_env_name(name), "").strip()
        if value:
            return value
        file_value = self._file_values.get(name)
        if file_value is None or file_value == "":
            return None
        return file_value

    def get_str(self, name: str) -> str | None:
        value = self.get(name)
        return None if value is None else str(value)

    def get_bool(self, name: str, default: bool | None = False) -> bool | None:
        return parse_bool(self.get(name), name=name, default=default)

    def get_number(self, name: str, default: float) -> float:
        value = self.get(name)
        if value is None:
            return default
        try:
            number = float(value)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Input '{name}' must be a number, got {value!r}") from exc
        # float() also accepts "nan" and "inf"
        if not math.isfinite(number):
            raise ConfigurationError(f"Input '{name}' must be a finite number, got {value!r}")
        return number


# ---------------------------------------------------------------------------
# Asset naming conventions
# ---------------------------------------------------------------------------


def apply_asset_naming(spec: AssetSpec, tag: str, *, prefix: bool, suffix: bool) -> AssetSpec:
    """Add the tag to an asset name.

    prefix: ``build.tar.gz`` -> ``v1.0.0-build.tar.gz``
    suffix: ``build.tar.gz`` -> ``build-v1.0.0.tar.gz``
    """
    name = spec.asset_name
    if prefix:
        name = f"{tag}-{name}"
    elif suffix:
        stem, dot, extensions = name.partition(".")
        name = f"{stem}-{tag}{dot}{extensions}"
    if name == spec.asset_name:
        return spec
    return spec.model_copy(update={"asset_name": name})


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _resolve_repository(inputs: _Inputs, environ: Mapping[str, str]) -> tuple[str, str]:
    owner = inputs.get_str("owner")
    repo = inputs.get_str("repo")
    if not (owner and repo):
        repository = environ.get("GITHUB_REPOSITORY", "")
        default_owner, _, default_repo = repository.partition("/")
        owner = owner or default_owner
        repo = repo or default_repo
    if not (owner and repo):
        raise ConfigurationError(
            "Repository is not set: provide 'owner' and 'repo' or GITHUB_REPOSITORY"
        )
    return owner, repo


def _resolve_retry(inputs: _Inputs) -> RetryPolicy:
    delay = inputs.get_number("retry_delay", DEFAULT_RETRY_DELAY)
    attempts = inputs.get_number("max_attempts", DEFAULT_MAX_ATTEMPTS)
    if attempts != int(attempts):
        raise ConfigurationError(f"Input 'max_attempts' must be a whole number, got {attempts}")
    if attempts > 1 and delay <= 0:
        raise ConfigurationError(
            f"Input 'retry_delay' must be greater than 0 when retrying, got {delay}"
        )
    return RetryPolicy(delay_seconds=delay, max_attempts=int(attempts))


def load_config(
    environ: Mapping[str, str] | None = None,
    config_path: str | Path | None = None,
    *,
    require_token: bool = True,
) -> PublishConfig:
    """Build the publisher configuration from inputs.

    Args:
        environ: Environment mapping, defaults to os.environ
        config_path: Optional YAML file with lower-priority input values
        require_token: Fail when no token is available

    Returns:
        A validated PublishConfig

    Raises:
        ConfigurationError: Missing, malformed or conflicting inputs
    """
    env = os.environ if environ is None else environ
    file_values = load_config_file(config_path) if config_path else {}
    inputs = _Inputs(env, file_values)

    token = inputs.get_str("github_token") or env.get("GITHUB_TOKEN", "")
    if require_token and not token:
        raise ConfigurationError("Input required and not supplied: github_token")

    prefix = bool(inputs.get_bool("prefix_asset_name_with_tag"))
    suffix = bool(inputs.get_bool("suffix_asset_name_with_tag"))
    if prefix and suffix:
        raise ConfigurationError(
            "Inputs 'prefix_asset_name_with_tag' and 'suffix_asset_name_with_tag' "
            "are mutually exclusive"
        )

    owner, repo = _resolve_repository(inputs, env)

    raw_tag = inputs.get_str("tag") or env.get("GITHUB_REF", "")
    tag = strip_tag_ref(raw_tag)
    if not tag:
        raise ConfigurationError("Input required and not supplied: tag")

    file = inputs.get_str("file")
    if not file:
        raise ConfigurationError("Input required and not supplied: file")

    retry = _resolve_retry(inputs)

    try:
        request = ReleaseRequest(
            owner=owner,
            repo=repo,
            tag=tag,
            new_tag=inputs.get_str("new_tag"),
            target_ref=inputs.get_str("ref"),
            release_name=inputs.get_str("release_name"),
            notes=inputs.get_str("release_notes"),
            delete_existing=inputs.get_bool("deletes_existing_release"),
            draft=inputs.get_bool("draft", default=None),
            prerelease=inputs.get_bool("pre_release", default=None),
            bump_tag=inputs.get_bool("bump_tag"),
        )
        assets = expand_assets(
            file,
            asset_name=inputs.get_str("asset_name"),
            glob_mode=bool(inputs.get_bool("is_file_glob")),
            overwrite=bool(inputs.get_bool("overwrite")),
        )
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc

    assets = [
        apply_asset_naming(spec, request.final_tag, prefix=prefix, suffix=suffix)
        for spec in assets
    ]

    logger.debug(
        "config_loaded",
        owner=owner,
        repo=repo,
        tag=tag,
        assets=[spec.asset_name for spec in assets],
        max_attempts=retry.max_attempts,
    )
    return PublishConfig(token=SecretStr(token), request=request, assets=assets, retry=retry)


def write_output(name: str, value: str, environ: Mapping[str, str] | None = None) -> None:
    """Set an action output.

    Appends ``name=value`` to the file named by GITHUB_OUTPUT; prints it
    when running outside of Actions.
    """
    env = os.environ if environ is None else environ
    output_path = env.get("GITHUB_OUTPUT")
    if not output_path:
        print(f"{name}={value}")
        return
    with open(output_path, "a", encoding="utf-8") as fh:
        fh.write(f"{name}={value}\n")
