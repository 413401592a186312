"""
Tool permissions service.

ToolPermissionsService owns the currently loaded PolicySet, keeps it in sync
with permissions.yaml, and answers permission checks for the agent runtime.
Construct one per session and pass it to whatever needs it:

    service = ToolPermissionsService(ServiceSettings(permissions_path=path))
    await service.initialize()
    result = service.check_permission(tool, {"command": "git push"})
    ...
    await service.dispose()

Lifecycle:
    uninitialized -> initializing -> active <-> reloading -> active
    any load failure -> disabled (every call resolves to allow)
    dispose() -> disposed

Concurrency:
    Readers take the current PolicySet reference once per call and evaluate
    against that snapshot. Reloads build a complete new PolicySet and swap
    the reference in one assignment; a lock serializes reloaders only.
"""

import logging
import threading
from enum import Enum
from typing import Any, Iterable, Mapping, TypeVar

from toolgate.errors import PolicyConfigError, WatchSetupError
from toolgate.policy.engine import PolicyEngine
from toolgate.policy.loader import ensure_permissions_file, load_policy_set
from toolgate.policy.watcher import ConfigWatcher
from toolgate.schema import (
    EvaluationResult,
    PolicySet,
    ReloadFailureMode,
    ServiceSettings,
)
from toolgate.tools.base import Tool

logger = logging.getLogger(__name__)

ToolT = TypeVar("ToolT", bound=Tool)


class ServiceState(str, Enum):
    """Lifecycle state of a ToolPermissionsService."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    ACTIVE = "active"
    RELOADING = "reloading"
    DISABLED = "disabled"
    DISPOSED = "disposed"


class ToolPermissionsService:
    """
    Loads, hot-reloads and enforces permissions.yaml.

    Attributes:
        settings: Where the permissions file lives and how it is watched
    """

    def __init__(self, settings: ServiceSettings | None = None) -> None:
        self.settings = settings or ServiceSettings.from_env()
        self._policy_set: PolicySet | None = None
        self._state = ServiceState.UNINITIALIZED
        self._watcher: ConfigWatcher | None = None
        self._reload_lock = threading.Lock()
        self._reload_count = 0
        self._failed_reloads = 0
        self._initialized = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def initialize(self) -> None:
        """
        Create the permissions file if needed, load it and start watching.

        Idempotent. Never raises: a failure leaves the service disabled, and
        a watcher that can't be set up only costs live reload.
        """
        if self._initialized or self._state is ServiceState.DISPOSED:
            return

        self._initialized = True
        self._state = ServiceState.INITIALIZING
        path = self.settings.permissions_path
        try:
            ensure_permissions_file(path)
        except OSError as e:
            logger.error("Failed to initialize tool permissions service: %s", e)
            self._state = ServiceState.DISABLED
            return

        self.reload()

        if self.settings.watch:
            watcher = ConfigWatcher(
                path,
                on_change=lambda _path: self._on_file_changed(),
                poll_interval=self.settings.poll_interval,
            )
            try:
                await watcher.start()
                self._watcher = watcher
            except WatchSetupError as e:
                logger.warning("Permissions will not hot-reload: %s", e.message)

        logger.info(
            "Tool permissions service initialized (path=%s, rules=%d, state=%s)",
            path,
            len(self._policy_set) if self._policy_set is not None else 0,
            self._state.value,
        )

    async def dispose(self) -> None:
        """Stop watching and release the policies. Safe to call repeatedly."""
        if self._state is ServiceState.DISPOSED:
            return

        watcher, self._watcher = self._watcher, None
        if watcher is not None:
            await watcher.stop()

        with self._reload_lock:
            self._policy_set = None
            self._state = ServiceState.DISPOSED
        logger.info("Tool permissions service disposed")

    close = dispose

    async def __aenter__(self) -> "ToolPermissionsService":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.dispose()

    # =========================================================================
    # Reloading
    # =========================================================================

    def reload(self) -> bool:
        """
        Re-read permissions.yaml and swap in the new PolicySet.

        All-or-nothing: either a complete new PolicySet replaces the old one
        or the reload failure mode decides what happens. A missing or empty
        file is a successful read that leaves no policies loaded.

        Returns:
            True if the file was read successfully, False otherwise
        """
        with self._reload_lock:
            if self._state is ServiceState.DISPOSED:
                return False

            path = self.settings.permissions_path
            if self._state is ServiceState.ACTIVE:
                self._state = ServiceState.RELOADING

            try:
                policy_set = load_policy_set(path)
            except (PolicyConfigError, OSError) as e:
                self._failed_reloads += 1
                logger.error("Failed to reload permissions from %s: %s", path, e)
                self._apply_failure()
                return False

            self._policy_set = policy_set
            self._reload_count += 1
            if policy_set is None:
                self._state = ServiceState.DISABLED
                logger.debug("No permissions config found, permissions checking disabled")
            else:
                self._state = ServiceState.ACTIVE
                logger.debug("Reloaded permissions (%d rules)", len(policy_set))
            return True

    def _apply_failure(self) -> None:
        """Settle the store after a failed reload. Caller holds the lock."""
        keep = self.settings.on_reload_error is ReloadFailureMode.KEEP_LAST_GOOD
        if keep and self._policy_set is not None:
            logger.warning(
                "Keeping previously loaded permissions (%d rules)",
                len(self._policy_set),
            )
            self._state = ServiceState.ACTIVE
            return
        self._policy_set = None
        self._state = ServiceState.DISABLED

    def _on_file_changed(self) -> None:
        logger.debug("Permissions file changed, reloading")
        self.reload()

    # =========================================================================
    # Checking
    # =========================================================================

    def check_permission(
        self,
        tool: Tool,
        arguments: Mapping[str, Any] | None = None,
        normalized_arguments: Mapping[str, Any] | None = None,
    ) -> EvaluationResult:
        """
        Check a tool call against the loaded permissions.

        Args:
            tool: The tool definition
            arguments: The arguments passed to the tool
            normalized_arguments: The preprocessed arguments (e.g., resolved paths)

        Returns:
            The evaluation result; allow with no matched rule when disabled
        """
        policy_set = self._policy_set
        if policy_set is None:
            return EvaluationResult.permissive()
        return PolicyEngine(policy_set).evaluate(
            tool.name,
            arguments,
            normalized_arguments,
            tool,
        )

    def filter_tools(self, tools: Iterable[ToolT]) -> list[ToolT]:
        """Drop excluded tools from a tool list before it reaches the planner."""
        policy_set = self._policy_set
        if policy_set is None:
            return list(tools)
        return PolicyEngine(policy_set).filter_excluded(tools)

    # =========================================================================
    # Introspection
    # =========================================================================

    def is_enabled(self) -> bool:
        """Whether permission checks currently apply any policies."""
        return self._policy_set is not None and self._state in (
            ServiceState.ACTIVE,
            ServiceState.RELOADING,
        )

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def policy_set(self) -> PolicySet | None:
        """The current snapshot (for debugging/testing)."""
        return self._policy_set

    @property
    def reload_count(self) -> int:
        """Number of successful reloads."""
        return self._reload_count

    @property
    def failed_reloads(self) -> int:
        return self._failed_reloads

    @property
    def is_watching(self) -> bool:
        return self._watcher is not None and self._watcher.is_running
