"""Command-line interface for nexus-badges.

Every command loads the registry once, runs its remote operations and saves
the registry once at the end. Exit codes: ``0`` on success, ``2`` when the
command succeeded with warnings (skipped items, a failed mirror push, an
uninitialised gist), ``1`` on failure.

The ``--remote`` flags are used by the scheduled workflow: state is read from
the environment and nothing is written locally.

Usage:
    nexus-badges add --domain eldenring --mod-id 4825
    nexus-badges set --git <token> --nexus <key>
    nexus-badges init
    nexus-badges            # refresh counts (same as ``sync``)
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import sys
import typing as typ
from pathlib import Path

import msgspec
from cyclopts import App, Parameter

from nexus_badges.badges import render_badges, write_badges
from nexus_badges.cache import (
    ActionsCacheIndex,
    ActionsKeyRecord,
    CacheError,
    CacheKeyManager,
    DirectoryArtifactCache,
    MemoryKeyRecord,
    NoAction,
    mint_cache_key,
)
from nexus_badges.config import (
    ENV_GIT_TOKEN,
    ENV_NEXUS_KEY,
    AppConfig,
    WorkflowEnvironment,
    env_override,
)
from nexus_badges.github import (
    ActionsClient,
    GistClient,
    GitHubConfig,
    GitHubConfigError,
    GitHubError,
    GitHubRestClient,
)
from nexus_badges.logging import (
    configure_logging,
    get_logger,
    log_exception,
    log_warning,
)
from nexus_badges.nexus import NexusClient, NexusConfig, NexusError
from nexus_badges.reconcile import (
    NothingTrackedError,
    NotInitializedError,
    ReconcileError,
    ReconciliationEngine,
)
from nexus_badges.reconcile.merge import removed_keys
from nexus_badges.registry import (
    AutomationTarget,
    Credentials,
    Registry,
    RegistryError,
    parse_color,
)
from nexus_badges.registry import store
from nexus_badges.registry.environment import registry_from_env
from nexus_badges.registry.models import BadgeFormat, CountField, StyleName
from nexus_badges.version import (
    ReleaseInfo,
    ReleaseInfoClient,
    VersionCheckError,
    __version__,
    remote_exit_code,
)

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    import httpx

    from nexus_badges.cache import CacheDecision, Rotated
    from nexus_badges.reconcile import MirrorPushResult, SyncOutcome, SyncReport

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_PARTIAL = 2

_COMMAND_ERRORS: tuple[type[Exception], ...] = (
    CacheError,
    GitHubError,
    NexusError,
    ReconcileError,
    RegistryError,
)

RemoteFlag = typ.Annotated[bool, Parameter(show=False)]
DomainFlag = typ.Annotated[str, Parameter(name=["--domain", "-d"])]
ModIdFlag = typ.Annotated[int, Parameter(name=["--mod-id", "-m"])]

app = App(
    name="nexus-badges",
    help="Publish Nexus Mods download counts as shields.io badges",
    version=__version__,
)
automation_app = App(
    name="automation",
    help="Enable or disable the scheduled workflow",
)
app.command(automation_app)


# =============================================================================
# Helpers
# =============================================================================


def _startup() -> AppConfig:
    config = AppConfig.from_env()
    level, invalid = configure_logging(config.log_level, force=True)
    if invalid:
        log_warning(logger, "Unknown log level %r, using %s", config.log_level, level)
    return config


def _fail(exc: BaseException) -> int:
    log_exception(logger, "Command failed", exc)
    print(f"error: {exc}", file=sys.stderr)
    return EXIT_FAILURE


def _warn(message: str) -> None:
    print(f"WARN: {message}", file=sys.stderr)


@dataclasses.dataclass(frozen=True, slots=True)
class _Session:
    engine: ReconciliationEngine
    actions: ActionsClient | None

    def require_actions(self) -> ActionsClient:
        if self.actions is None:
            raise GitHubConfigError.missing_repository()
        return self.actions


@contextlib.asynccontextmanager
async def _session(
    registry: Registry, config: AppConfig
) -> cabc.AsyncIterator[_Session]:
    """Open the HTTP clients a command needs and close them afterwards.

    ``NEXUS_KEY`` and ``GIT_TOKEN`` in the environment take precedence over
    the stored credentials. A missing GitHub token fails immediately; a
    missing Nexus key only fails once counts are requested.
    """
    nexus_key = env_override(ENV_NEXUS_KEY, registry.credentials.nexus_key)
    git_token = env_override(ENV_GIT_TOKEN, registry.credentials.git_token)

    async with contextlib.AsyncExitStack() as stack:
        rest = GitHubRestClient(
            GitHubConfig(token=git_token, timeout_s=config.http_timeout_s)
        )
        stack.push_async_callback(rest.aclose)

        nexus = None
        if nexus_key:
            nexus = NexusClient(
                NexusConfig(api_key=nexus_key, timeout_s=config.http_timeout_s)
            )
            stack.push_async_callback(nexus.aclose)

        actions = None
        if registry.automation.configured:
            actions = ActionsClient(
                rest,
                owner=registry.automation.owner,
                repo=registry.automation.repo,
            )

        yield _Session(
            engine=ReconciliationEngine(
                gist=GistClient(rest), counts=nexus, actions=actions
            ),
            actions=actions,
        )


def _print_report(report: SyncReport) -> int:
    if report.updated:
        print(f"Refreshed download counts for {len(report.updated)} mod(s)")
    for failure in report.failed:
        _warn(f"{failure.item.key} skipped: {failure.reason}")
    if report.removed:
        print(f"Removed {len(report.removed)} untracked mod(s) from the gist")
    if not report.document_written:
        print("Download counts have not changed, remote gist was not modified")
    if report.automation_pushed:
        print("Automation variables updated")
    for warning in report.warnings:
        _warn(warning)
    return EXIT_PARTIAL if report.partial else EXIT_OK


def _print_push(result: MirrorPushResult) -> int:
    if result.pushed:
        print(f"Updated on automation repository: {', '.join(result.pushed)}")
    for failure in result.failures:
        _warn(f"Automation not updated: {failure}")
    return EXIT_OK if result.ok else EXIT_PARTIAL


def _write_outcome_badges(config: AppConfig, outcome: SyncOutcome) -> None:
    text = render_badges(
        outcome.entries, outcome.registry.style, outcome.snapshot.json_url
    )
    write_badges(config.badges_path, text)
    print(f"Badges written to {config.badges_path}")


# =============================================================================
# Reconciliation flows
# =============================================================================


async def _sync(config: AppConfig, registry: Registry) -> SyncOutcome:
    async with _session(registry, config) as session:
        return await session.engine.sync(registry)


async def _sync_change(
    config: AppConfig, previous: Registry, current: Registry
) -> SyncOutcome:
    async with _session(current, config) as session:
        return await session.engine.sync(current, previous=previous)


async def _push_mirror(
    config: AppConfig, previous: Registry | None, current: Registry
) -> MirrorPushResult:
    async with _session(current, config) as session:
        return await session.engine.push_mirror(previous, current)


def _apply_change(config: AppConfig, previous: Registry, current: Registry) -> int:
    """Reconcile a mutated registry and save the result.

    Before ``init`` only the automation mirror can be updated. A failed
    remote step still saves ``current`` locally, so the change is not lost
    and the next sync picks it up.
    """
    if not current.gist_id:
        store.save(config.registry_path, current)
        _warn(str(NotInitializedError()))
        if not current.automation.configured:
            return EXIT_PARTIAL
        try:
            result = asyncio.run(_push_mirror(config, previous, current))
        except _COMMAND_ERRORS as exc:
            return _fail(exc)
        _print_push(result)
        return EXIT_PARTIAL

    try:
        outcome = asyncio.run(_sync_change(config, previous, current))
    except _COMMAND_ERRORS as exc:
        store.save(config.registry_path, current)
        print(f"{config.registry_path} updated locally", file=sys.stderr)
        return _fail(exc)

    store.save(config.registry_path, outcome.registry)
    code = _print_report(outcome.report)
    _write_outcome_badges(config, outcome)
    return code


# =============================================================================
# Registry commands
# =============================================================================


@app.command
def add(*, domain: DomainFlag, mod_id: ModIdFlag) -> int:
    """Track a mod and publish its download counts.

    Parameters
    ----------
    domain
        Game domain as it appears in the mod's URL, e.g. ``eldenring``.
    mod_id
        Numeric mod id from the mod's URL.

    """
    config = _startup()
    try:
        registry = store.load_or_default(config.registry_path)
        updated = store.add_item(registry, domain, mod_id)
    except (RegistryError, ValueError) as exc:
        return _fail(exc)
    print(f"Mod registered: {domain}:{mod_id}")
    return _apply_change(config, registry, updated)


@app.command
def remove(*, domain: DomainFlag, mod_id: ModIdFlag) -> int:
    """Stop tracking a mod and delete its entry from the gist.

    Parameters
    ----------
    domain
        Game domain of the tracked mod.
    mod_id
        Numeric id of the tracked mod.

    """
    config = _startup()
    try:
        registry = store.load(config.registry_path)
        updated = store.remove_item(registry, domain, mod_id)
    except (RegistryError, ValueError) as exc:
        return _fail(exc)
    print(f"Mod removed: {domain}:{mod_id}")
    return _apply_change(config, registry, updated)


@app.command(name="set")
def set_keys(  # noqa: PLR0913
    *,
    git: str | None = None,
    nexus: str | None = None,
    gist: str | None = None,
    owner: str | None = None,
    repo: str | None = None,
) -> int:
    """Store credentials, the gist id and the automation repository.

    Changed secrets and variables are pushed to the automation repository
    when it is configured.

    Parameters
    ----------
    git
        Fine-grained GitHub token with gist, secrets, variables and actions
        permissions.
    nexus
        Nexus Mods personal API key.
    gist
        Id of an existing gist to publish to.
    owner
        Owner of your fork of nexus_badges.
    repo
        Name of your fork of nexus_badges.

    """
    if all(value is None for value in (git, nexus, gist, owner, repo)):
        print("Nothing to update, pass at least one option", file=sys.stderr)
        return EXIT_FAILURE

    config = _startup()
    try:
        registry = store.load_or_default(config.registry_path)
    except RegistryError as exc:
        return _fail(exc)

    stored = registry.credentials
    target = registry.automation
    updated = msgspec.structs.replace(
        registry,
        credentials=Credentials(
            nexus_key=stored.nexus_key if nexus is None else nexus.strip(),
            git_token=stored.git_token if git is None else git.strip(),
        ),
        gist_id=registry.gist_id if gist is None else gist.strip(),
        automation=AutomationTarget(
            owner=target.owner if owner is None else owner.strip(),
            repo=target.repo if repo is None else repo.strip(),
        ),
    )
    store.save(config.registry_path, updated)
    print("Key(s) updated locally")
    if registry.gist_id and updated.gist_id != registry.gist_id:
        _warn(f"Previously stored gist_id: {registry.gist_id}, was replaced")

    if not updated.automation.configured:
        return EXIT_OK
    try:
        result = asyncio.run(_push_mirror(config, registry, updated))
    except _COMMAND_ERRORS as exc:
        return _fail(exc)
    return _print_push(result)


@app.command(name="style")
def set_style(  # noqa: PLR0913
    *,
    label: str | None = None,
    count: CountField | None = None,
    badge_style: typ.Annotated[StyleName | None, Parameter(name="--style")] = None,
    badge_format: typ.Annotated[
        BadgeFormat | None, Parameter(name="--format")
    ] = None,
    label_color: str | None = None,
    color: str | None = None,
) -> int:
    """Change badge preferences and regenerate ``badges.md``.

    Parameters
    ----------
    label
        Text on the left-hand side of the badge.
    count
        Which counter the badge shows.
    badge_style
        shields.io badge style.
    badge_format
        Snippet format written to ``badges.md``.
    label_color
        Six-digit hex colour of the label, or ``default``.
    color
        Six-digit hex colour of the count, or ``default``.

    """
    config = _startup()
    try:
        registry = store.load_or_default(config.registry_path)
        current = registry.style
        new_style = msgspec.structs.replace(
            current,
            label=current.label if label is None else label,
            count=current.count if count is None else count,
            style=current.style if badge_style is None else badge_style,
            format=current.format if badge_format is None else badge_format,
            label_color=(
                current.label_color if label_color is None else parse_color(label_color)
            ),
            color=current.color if color is None else parse_color(color),
        )
    except (RegistryError, ValueError) as exc:
        return _fail(exc)

    updated = msgspec.structs.replace(registry, style=new_style)
    print("Badge style updated")
    if not updated.gist_id:
        store.save(config.registry_path, updated)
        return EXIT_OK
    return _apply_change(config, registry, updated)


# =============================================================================
# Remote setup commands
# =============================================================================


async def _initialize(config: AppConfig, registry: Registry) -> SyncOutcome:
    async with _session(registry, config) as session:
        return await session.engine.initialize(registry)


@app.command
def init() -> int:
    """Create the private gist that serves the badge JSON."""
    config = _startup()
    try:
        registry = store.load_or_default(config.registry_path)
        if not registry.items:
            raise NothingTrackedError
        outcome = asyncio.run(_initialize(config, registry))
    except _COMMAND_ERRORS as exc:
        return _fail(exc)

    store.save(config.registry_path, outcome.registry)
    print(f"New gist_id: {outcome.registry.gist_id}")
    code = _print_report(outcome.report)
    _write_outcome_badges(config, outcome)
    return code


async def _init_actions(config: AppConfig, registry: Registry) -> MirrorPushResult:
    async with _session(registry, config) as session:
        return await session.engine.init_actions(registry)


@app.command(name="init-actions")
def init_actions() -> int:
    """Push every secret and variable, then enable the scheduled workflow."""
    config = _startup()
    try:
        registry = store.load(config.registry_path)
        if not registry.automation.configured:
            raise GitHubConfigError.missing_repository()
        result = asyncio.run(_init_actions(config, registry))
    except _COMMAND_ERRORS as exc:
        return _fail(exc)
    _print_push(result)
    print(f"Scheduled workflow enabled on {registry.automation.slug}")
    return EXIT_OK


async def _set_automation(
    config: AppConfig, registry: Registry, *, enabled: bool
) -> None:
    async with _session(registry, config) as session:
        await session.engine.set_automation(registry, enabled=enabled)


def _toggle_automation(*, enabled: bool) -> int:
    config = _startup()
    try:
        registry = store.load(config.registry_path)
        asyncio.run(_set_automation(config, registry, enabled=enabled))
    except _COMMAND_ERRORS as exc:
        return _fail(exc)
    state = "enabled" if enabled else "disabled"
    print(f"Scheduled workflow {state} on {registry.automation.slug}")
    return EXIT_OK


@automation_app.command
def enable() -> int:
    """Enable the scheduled workflow."""
    return _toggle_automation(enabled=True)


@automation_app.command
def disable() -> int:
    """Disable the scheduled workflow."""
    return _toggle_automation(enabled=False)


# =============================================================================
# Sync
# =============================================================================


@app.command
def sync(*, remote: RemoteFlag = False) -> int:
    """Refresh download counts, update the gist and regenerate badges.

    Parameters
    ----------
    remote
        Read state from the workflow environment; write nothing locally.

    """
    config = _startup()
    try:
        registry = registry_from_env() if remote else store.load(config.registry_path)
        if not registry.items and not removed_keys(registry):
            raise NothingTrackedError
        outcome = asyncio.run(_sync(config, registry))
    except _COMMAND_ERRORS as exc:
        return _fail(exc)

    if remote:
        return _print_report(outcome.report)

    store.save(config.registry_path, outcome.registry)
    code = _print_report(outcome.report)
    _write_outcome_badges(config, outcome)
    return code


app.default(sync)


# =============================================================================
# Version and cache commands
# =============================================================================


async def _release_info(config: AppConfig) -> ReleaseInfo | None:
    client = ReleaseInfoClient(timeout_s=config.http_timeout_s)
    try:
        return await client.fetch()
    except VersionCheckError as exc:
        print(str(exc), file=sys.stderr)
        return None
    finally:
        await client.aclose()


@app.command
def version(*, remote: RemoteFlag = False) -> int:
    """Print the version and check for a newer release.

    With ``--remote`` only the exit code reports the result: 0 current,
    70 outdated, 20 check failed.

    Parameters
    ----------
    remote
        Report through the exit code for the scheduled workflow.

    """
    config = _startup()
    info = asyncio.run(_release_info(config))
    if remote:
        return int(remote_exit_code(info, __version__))

    print(f"nexus-badges v{__version__}")
    if info is None:
        return EXIT_FAILURE
    notice = info.notice_for(__version__)
    if notice:
        print(notice)
    return EXIT_OK


def _report_rotation(result: Rotated) -> int:
    print(f"Cache key set to {result.new_key}")
    if result.partial:
        _warn(f"Old cache {result.old_key} could not be deleted")
        return EXIT_PARTIAL
    if result.old_key_deleted:
        print(f"Old cache {result.old_key} deleted")
    return EXIT_OK


async def _promote(
    config: AppConfig, registry: Registry, new: str, old: str | None
) -> Rotated:
    async with _session(registry, config) as session:
        actions = session.require_actions()
        manager = CacheKeyManager(
            index=ActionsCacheIndex(actions), record=ActionsKeyRecord(actions)
        )
        return await manager.promote(new, old)


@app.command(name="update-cache-key")
def update_cache_key(
    *, new: str, old: str | None = None, remote: RemoteFlag = False
) -> int:
    """Point ``CACHED_BIN`` at a freshly saved cache and delete the old one.

    Parameters
    ----------
    new
        Key the workflow just saved the tool under.
    old
        Key being replaced, if any.
    remote
        Read state from the workflow environment; write nothing locally.

    """
    config = _startup()
    try:
        registry = registry_from_env() if remote else store.load(config.registry_path)
        result = asyncio.run(_promote(config, registry, new, old or None))
    except _COMMAND_ERRORS as exc:
        return _fail(exc)

    if not remote:
        store.save(
            config.registry_path,
            msgspec.structs.replace(registry, cache_key=result.new_key),
        )
    return _report_rotation(result)


async def _rotate(
    config: AppConfig,
    registry: Registry,
    cache_dir: Path,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> CacheDecision:
    """Rotate the wheel cached in ``cache_dir`` against the registry record.

    The directory is both the stager and the index, and the record is the
    registry's ``cache_key``, so every transition touches one store.
    """
    async with contextlib.AsyncExitStack() as stack:
        artifacts = DirectoryArtifactCache(
            cache_dir, timeout_s=config.http_timeout_s, http_client=http_client
        )
        stack.push_async_callback(artifacts.aclose)
        releases = ReleaseInfoClient(
            timeout_s=config.http_timeout_s, http_client=http_client
        )
        stack.push_async_callback(releases.aclose)

        env = WorkflowEnvironment.from_env()
        manager = CacheKeyManager(
            index=artifacts,
            stager=artifacts,
            record=MemoryKeyRecord(registry.cache_key),
            latest_version=releases.latest_version,
            key_factory=lambda current, version: mint_cache_key(
                env, current=current, version=version
            ),
        )
        await manager.observe()
        return await manager.rotate_if_stale(manager.current_key)


@app.command(name="rotate-cache")
def rotate_cache(*, cache_dir: Path) -> int:
    """Replace the locally cached release wheel when a newer release exists.

    The scheduled workflow rotates its own cache with ``version --remote``
    and ``update-cache-key``.

    Parameters
    ----------
    cache_dir
        Directory holding cached wheels as ``<key>.whl``.

    """
    config = _startup()
    try:
        registry = store.load(config.registry_path)
        decision = asyncio.run(_rotate(config, registry, cache_dir))
    except _COMMAND_ERRORS as exc:
        return _fail(exc)

    if isinstance(decision, NoAction):
        print(f"Cached artifact is current: {decision.key}")
        return EXIT_OK
    store.save(
        config.registry_path,
        msgspec.structs.replace(registry, cache_key=decision.new_key),
    )
    return _report_rotation(decision)


def main() -> int:
    """Entry point for the CLI."""
    return app()


if __name__ == "__main__":
    sys.exit(main())
