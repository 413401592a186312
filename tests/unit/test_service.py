"""
Unit tests for ToolPermissionsService.

Tests cover:
- Initialization (default file creation, idempotence)
- Reload semantics and the reload failure modes
- Permission checks and tool filtering while active and disabled
- Disposal
- Hot reload through the file watcher
- Consistent snapshots while reloading from another thread
"""

import asyncio
import os
import threading
from pathlib import Path

import pytest

from toolgate.policy import ServiceState, ToolPermissionsService
from toolgate.policy.loader import DEFAULT_PERMISSIONS_YAML
from toolgate.policy.watcher import FileFingerprint
from toolgate.schema import Decision, ReloadFailureMode, ServiceSettings
from toolgate.tools import TerminalCommandTool, ToolSpec


def _no_watch(permissions_path: Path, **kwargs) -> ServiceSettings:
    return ServiceSettings(permissions_path=permissions_path, watch=False, **kwargs)


async def _wait_for(predicate, timeout: float = 5.0) -> None:
    """Poll until predicate() is true or fail after timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not met before timeout")
        await asyncio.sleep(0.01)


# =============================================================================
# Initialization Tests
# =============================================================================


class TestInitialize:
    """Tests for initialize()."""

    @pytest.mark.asyncio
    async def test_creates_default_file(self, permissions_path: Path) -> None:
        """A missing file is created and loads as zero rules, enabled."""
        service = ToolPermissionsService(_no_watch(permissions_path))
        await service.initialize()
        try:
            assert permissions_path.read_text() == DEFAULT_PERMISSIONS_YAML
            assert service.state is ServiceState.ACTIVE
            assert service.is_enabled() is True
            assert service.policy_set is not None
            assert len(service.policy_set) == 0
        finally:
            await service.dispose()

    @pytest.mark.asyncio
    async def test_existing_file_is_loaded(
        self, permissions_path: Path, sample_permissions_yaml: str
    ) -> None:
        permissions_path.write_text(sample_permissions_yaml)
        async with ToolPermissionsService(_no_watch(permissions_path)) as service:
            assert service.policy_set is not None
            assert len(service.policy_set) == 3
            assert permissions_path.read_text() == sample_permissions_yaml

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, permissions_path: Path) -> None:
        service = ToolPermissionsService(_no_watch(permissions_path))
        await service.initialize()
        await service.initialize()
        assert service.reload_count == 1
        await service.dispose()

    @pytest.mark.asyncio
    async def test_empty_file_disables(self, permissions_path: Path) -> None:
        """A file with no document leaves the service disabled."""
        permissions_path.write_text("")
        async with ToolPermissionsService(_no_watch(permissions_path)) as service:
            assert service.state is ServiceState.DISABLED
            assert service.is_enabled() is False

    @pytest.mark.asyncio
    async def test_invalid_file_disables(self, permissions_path: Path) -> None:
        """With nothing loaded yet, an invalid file disables checking."""
        permissions_path.write_text("allow: [unclosed\n")
        async with ToolPermissionsService(_no_watch(permissions_path)) as service:
            assert service.state is ServiceState.DISABLED
            assert service.failed_reloads == 1
            result = service.check_permission(ToolSpec("anything"))
            assert result.decision is Decision.ALLOW

    @pytest.mark.asyncio
    async def test_unwritable_location_disables(self, temp_dir: Path) -> None:
        """If the file can't be created the service stays disabled."""
        blocker = temp_dir / "blocker"
        blocker.write_text("not a directory")
        service = ToolPermissionsService(_no_watch(blocker / "permissions.yaml"))
        await service.initialize()
        assert service.state is ServiceState.DISABLED
        assert service.check_permission(ToolSpec("x")).decision is Decision.ALLOW
        await service.dispose()

    @pytest.mark.asyncio
    async def test_watching_starts(self, settings: ServiceSettings) -> None:
        async with ToolPermissionsService(settings) as service:
            assert service.is_watching is True
        assert service.is_watching is False


# =============================================================================
# Reload Tests
# =============================================================================


class TestReload:
    """Tests for reload() and the failure modes."""

    @pytest.mark.asyncio
    async def test_reload_picks_up_new_rules(self, permissions_path: Path) -> None:
        async with ToolPermissionsService(_no_watch(permissions_path)) as service:
            tool = ToolSpec("read_file")
            assert service.check_permission(tool).decision is Decision.ALLOW

            permissions_path.write_text("exclude:\n  - read_file\n")
            assert service.reload() is True
            assert service.check_permission(tool).decision is Decision.EXCLUDE
            assert service.reload_count == 2

    @pytest.mark.asyncio
    async def test_reload_is_idempotent(self, permissions_path: Path, sample_permissions_yaml: str) -> None:
        """Reloading an unchanged file gives an equal policy set."""
        permissions_path.write_text(sample_permissions_yaml)
        async with ToolPermissionsService(_no_watch(permissions_path)) as service:
            before = service.policy_set
            service.reload()
            assert service.policy_set == before
            assert service.state is ServiceState.ACTIVE

    @pytest.mark.asyncio
    async def test_failed_reload_keeps_last_good(self, permissions_path: Path) -> None:
        permissions_path.write_text("exclude:\n  - read_file\n")
        async with ToolPermissionsService(_no_watch(permissions_path)) as service:
            good = service.policy_set

            permissions_path.write_text("exclude: [broken\n")
            assert service.reload() is False
            assert service.policy_set is good
            assert service.state is ServiceState.ACTIVE
            assert service.failed_reloads == 1
            assert service.check_permission(ToolSpec("read_file")).decision is Decision.EXCLUDE

    @pytest.mark.asyncio
    async def test_failed_reload_disables_when_configured(self, permissions_path: Path) -> None:
        permissions_path.write_text("exclude:\n  - read_file\n")
        settings = _no_watch(permissions_path, on_reload_error=ReloadFailureMode.DISABLE)
        async with ToolPermissionsService(settings) as service:
            permissions_path.write_text("exclude:\n  - 'read_file(('\n")
            assert service.reload() is False
            assert service.policy_set is None
            assert service.state is ServiceState.DISABLED
            assert service.check_permission(ToolSpec("read_file")).decision is Decision.ALLOW

    @pytest.mark.asyncio
    async def test_recovers_after_fix(self, permissions_path: Path) -> None:
        permissions_path.write_text("")
        async with ToolPermissionsService(_no_watch(permissions_path)) as service:
            assert service.is_enabled() is False
            permissions_path.write_text("ask:\n  - read_file\n")
            assert service.reload() is True
            assert service.is_enabled() is True
            assert service.check_permission(ToolSpec("read_file")).decision is Decision.ASK

    @pytest.mark.asyncio
    async def test_deleted_file_disables(self, permissions_path: Path) -> None:
        async with ToolPermissionsService(_no_watch(permissions_path)) as service:
            permissions_path.unlink()
            assert service.reload() is True
            assert service.state is ServiceState.DISABLED


# =============================================================================
# Checking Tests
# =============================================================================


class TestChecking:
    """Tests for check_permission() and filter_tools()."""

    @pytest.mark.asyncio
    async def test_check_before_initialize_is_permissive(self, permissions_path: Path) -> None:
        service = ToolPermissionsService(_no_watch(permissions_path))
        result = service.check_permission(ToolSpec("run_terminal_command"), {"command": "sudo ls"})
        assert result.decision is Decision.ALLOW
        assert result.matched_rule is None

    @pytest.mark.asyncio
    async def test_check_uses_dynamic_evaluation(self, permissions_path: Path) -> None:
        permissions_path.write_text("allow:\n  - '*'\n")
        async with ToolPermissionsService(_no_watch(permissions_path)) as service:
            result = service.check_permission(TerminalCommandTool(), {"command": "sudo rm x"})
            assert result.static_decision is Decision.ALLOW
            assert result.decision is Decision.EXCLUDE

    @pytest.mark.asyncio
    async def test_filter_tools(self, permissions_path: Path) -> None:
        permissions_path.write_text("exclude:\n  - 'mcp__*'\n")
        tools = [ToolSpec("read_file"), ToolSpec("mcp__github"), ToolSpec("grep_search")]
        async with ToolPermissionsService(_no_watch(permissions_path)) as service:
            assert [t.name for t in service.filter_tools(tools)] == ["read_file", "grep_search"]

    @pytest.mark.asyncio
    async def test_filter_tools_when_disabled(self, permissions_path: Path) -> None:
        tools = [ToolSpec("mcp__github")]
        service = ToolPermissionsService(_no_watch(permissions_path))
        assert service.filter_tools(tools) == tools


# =============================================================================
# Disposal Tests
# =============================================================================


class TestDispose:
    """Tests for dispose()."""

    @pytest.mark.asyncio
    async def test_dispose_is_idempotent(self, settings: ServiceSettings) -> None:
        service = ToolPermissionsService(settings)
        await service.initialize()
        await service.dispose()
        await service.dispose()
        assert service.state is ServiceState.DISPOSED
        assert service.policy_set is None

    @pytest.mark.asyncio
    async def test_dispose_before_initialize(self, settings: ServiceSettings) -> None:
        service = ToolPermissionsService(settings)
        await service.dispose()
        assert service.state is ServiceState.DISPOSED

    @pytest.mark.asyncio
    async def test_close_is_dispose(self, settings: ServiceSettings) -> None:
        service = ToolPermissionsService(settings)
        await service.initialize()
        await service.close()
        assert service.state is ServiceState.DISPOSED
        assert service.is_watching is False

    @pytest.mark.asyncio
    async def test_no_reload_after_dispose(self, permissions_path: Path) -> None:
        service = ToolPermissionsService(_no_watch(permissions_path))
        await service.initialize()
        await service.dispose()
        assert service.reload() is False
        await service.initialize()
        assert service.state is ServiceState.DISPOSED
        assert service.check_permission(ToolSpec("x")).decision is Decision.ALLOW


# =============================================================================
# Hot Reload Tests
# =============================================================================


class TestHotReload:
    """Tests for reloading on file changes."""

    @pytest.mark.asyncio
    async def test_file_change_triggers_reload(self, settings: ServiceSettings) -> None:
        async with ToolPermissionsService(settings) as service:
            tool = ToolSpec("read_file")
            assert service.check_permission(tool).decision is Decision.ALLOW

            settings.permissions_path.write_text("exclude:\n  - read_file\n")
            await _wait_for(lambda: service.check_permission(tool).decision is Decision.EXCLUDE)
            assert service.reload_count >= 2

    @pytest.mark.asyncio
    async def test_broken_edit_keeps_serving(self, settings: ServiceSettings) -> None:
        settings.permissions_path.write_text("exclude:\n  - read_file\n")
        async with ToolPermissionsService(settings) as service:
            settings.permissions_path.write_text("exclude: [read_file\n")
            await _wait_for(lambda: service.failed_reloads >= 1)
            assert service.check_permission(ToolSpec("read_file")).decision is Decision.EXCLUDE

    @pytest.mark.asyncio
    async def test_same_size_edit_is_reloaded(self, settings: ServiceSettings) -> None:
        """An edit that keeps size and mtime still reaches the service."""
        path = settings.permissions_path
        path.write_text("exclude: [read_file]\n")
        async with ToolPermissionsService(settings) as service:
            before = path.stat()
            path.write_text("exclude: [grep_file]\n")
            os.utime(path, ns=(before.st_atime_ns, before.st_mtime_ns))

            await _wait_for(lambda: service.check_permission(ToolSpec("grep_file")).decision is Decision.EXCLUDE)
            assert service.check_permission(ToolSpec("read_file")).decision is Decision.ALLOW

    @pytest.mark.asyncio
    async def test_transient_read_error_keeps_watching(
        self, settings: ServiceSettings, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """EACCES while polling neither stops hot reload nor breaks dispose()."""
        path = settings.permissions_path
        path.write_text("exclude: [read_file]\n")
        service = ToolPermissionsService(settings)
        await service.initialize()

        real_of = FileFingerprint.of
        failed = []

        def of(p: Path) -> FileFingerprint:
            if not failed:
                failed.append(p)
                raise PermissionError(13, "transient EACCES")
            return real_of(p)

        monkeypatch.setattr(FileFingerprint, "of", staticmethod(of))
        path.write_text("ask: [read_file]\n")

        await _wait_for(lambda: service.check_permission(ToolSpec("read_file")).decision is Decision.ASK)
        assert failed
        assert service.is_watching is True

        await service.dispose()
        assert service.state is ServiceState.DISPOSED


# =============================================================================
# Concurrency Tests
# =============================================================================


class TestConcurrentReload:
    """Readers always see one complete generation of the rules."""

    EXCLUDE_DOC = "exclude:\n  - read_file\n"
    ASK_DOC = "ask:\n  - read_file\n  - grep_search\n"

    def test_checks_during_reloads_see_whole_snapshots(self, permissions_path: Path) -> None:
        permissions_path.write_text(self.EXCLUDE_DOC)
        service = ToolPermissionsService(_no_watch(permissions_path))
        assert service.reload() is True

        done = threading.Event()
        problems: list[str] = []
        tool = ToolSpec("read_file")

        def writer() -> None:
            try:
                for i in range(200):
                    permissions_path.write_text(self.ASK_DOC if i % 2 == 0 else self.EXCLUDE_DOC)
                    if not service.reload():
                        problems.append(f"reload {i} failed")
            finally:
                done.set()

        def reader() -> None:
            while not done.is_set():
                result = service.check_permission(tool)
                if result.decision not in (Decision.EXCLUDE, Decision.ASK):
                    problems.append(f"unexpected decision {result.decision}")
                elif result.matched_rule is None or result.matched_rule.decision is not result.decision:
                    problems.append(f"result mixes generations: {result}")

                snapshot = service.policy_set
                if snapshot is None:
                    problems.append("no snapshot during reload")
                    continue
                expected = 1 if snapshot.rules[0].decision is Decision.EXCLUDE else 2
                if len(snapshot) != expected:
                    problems.append(f"partial snapshot: {list(snapshot)}")

        threads = [threading.Thread(target=reader) for _ in range(3)]
        threads.append(threading.Thread(target=writer))
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert not any(thread.is_alive() for thread in threads)
        assert problems == []
        assert service.reload_count == 201
        assert service.state is ServiceState.ACTIVE
