"""Process configuration for nexus-badges.

This module provides :class:`AppConfig`, which locates the registry and badge
output files, and :class:`WorkflowEnvironment`, which captures the variables
GitHub Actions exposes to the scheduled job.

Usage
-----
Create a configuration with defaults:

>>> config = AppConfig()
>>> config.registry_path.name
'input.json'

Or load from environment variables:

>>> import os
>>> os.environ["NEXUS_BADGES_HOME"] = "/tmp/badges"
>>> AppConfig.from_env().home
PosixPath('/tmp/badges')

"""

from __future__ import annotations

import dataclasses as dc
import os
from pathlib import Path

ENV_HOME = "NEXUS_BADGES_HOME"
ENV_LOG_LEVEL = "NEXUS_BADGES_LOG_LEVEL"
ENV_HTTP_TIMEOUT = "NEXUS_BADGES_HTTP_TIMEOUT"

# Names shared with the Actions workflow (secrets and variables).
ENV_NEXUS_KEY = "NEXUS_KEY"
ENV_GIT_TOKEN = "GIT_TOKEN"  # noqa: S105 - variable name, not a credential
ENV_GIST_ID = "GIST_ID"
ENV_TRACKED_MODS = "TRACKED_MODS"
ENV_CACHED_BIN = "CACHED_BIN"

_DEFAULT_TIMEOUT_S = 20.0


@dc.dataclass(frozen=True, slots=True)
class AppConfig:
    """Locations and transport settings for a single invocation.

    Attributes
    ----------
    home
        Directory holding ``input.json`` (the registry) and ``badges.md``.
        Defaults to ``./io`` relative to the working directory.
    log_level
        Raw log level; normalised by :mod:`nexus_badges.logging`.
    http_timeout_s
        Deadline applied by every HTTP client. A call exceeding it is
        reported as a transient failure.

    """

    home: Path = dc.field(default_factory=lambda: Path("io"))
    log_level: str = "INFO"
    http_timeout_s: float = _DEFAULT_TIMEOUT_S

    @property
    def registry_path(self) -> Path:
        """Return the registry file location."""
        return self.home / "input.json"

    @property
    def badges_path(self) -> Path:
        """Return the rendered badge file location."""
        return self.home / "badges.md"

    @staticmethod
    def _parse_timeout(raw: str) -> float:
        if not raw.strip():
            return _DEFAULT_TIMEOUT_S
        try:
            value = float(raw)
        except ValueError as exc:
            msg = f"{ENV_HTTP_TIMEOUT} must be a number, got: {raw!r}"
            raise ValueError(msg) from exc
        if value <= 0:
            msg = f"{ENV_HTTP_TIMEOUT} must be positive, got: {value}"
            raise ValueError(msg)
        return value

    @classmethod
    def from_env(cls) -> AppConfig:
        """Create configuration from environment variables.

        Reads ``NEXUS_BADGES_HOME``, ``NEXUS_BADGES_LOG_LEVEL`` and
        ``NEXUS_BADGES_HTTP_TIMEOUT``.

        Raises
        ------
        ValueError
            If ``NEXUS_BADGES_HTTP_TIMEOUT`` is not a positive number.

        """
        raw_home = os.environ.get(ENV_HOME, "").strip()
        return cls(
            home=Path(raw_home) if raw_home else Path("io"),
            log_level=os.environ.get(ENV_LOG_LEVEL, "INFO"),
            http_timeout_s=cls._parse_timeout(os.environ.get(ENV_HTTP_TIMEOUT, "")),
        )


@dc.dataclass(frozen=True, slots=True)
class WorkflowEnvironment:
    """Variables available when running inside the scheduled workflow."""

    repository: str = ""
    runner_os: str = ""
    run_id: str = ""
    run_attempt: str = ""

    @property
    def in_workflow(self) -> bool:
        """Return True when GitHub Actions run identifiers are present."""
        return bool(self.run_id)

    @classmethod
    def from_env(cls) -> WorkflowEnvironment:
        """Read ``GITHUB_REPOSITORY``, ``RUNNER_OS`` and run identifiers."""
        return cls(
            repository=os.environ.get("GITHUB_REPOSITORY", "").strip(),
            runner_os=os.environ.get("RUNNER_OS", "").strip(),
            run_id=os.environ.get("GITHUB_RUN_ID", "").strip(),
            run_attempt=os.environ.get("GITHUB_RUN_ATTEMPT", "").strip(),
        )


def env_override(name: str, stored: str) -> str:
    """Return the environment value for ``name`` when set, else ``stored``."""
    value = os.environ.get(name, "").strip()
    return value or stored
