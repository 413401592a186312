"""Change watcher for the permissions file."""

import asyncio
import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional, Union

from toolgate.errors import WatchSetupError

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[Path], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class FileFingerprint:
    """What the watcher remembers about the file between polls.

    Stat fields alone miss a same-size rewrite inside one timestamp tick,
    so the content digest is part of the fingerprint too.
    """
    exists: bool
    mtime_ns: int = 0
    ctime_ns: int = 0
    size: int = 0
    inode: int = 0
    digest: str = ""

    @classmethod
    def of(cls, path: Path) -> "FileFingerprint":
        """Fingerprint the file; OSErrors other than "missing" propagate."""
        try:
            stat = path.stat()
            content = path.read_bytes()
        except (FileNotFoundError, NotADirectoryError):
            return cls(exists=False)
        return cls(
            exists=True,
            mtime_ns=stat.st_mtime_ns,
            ctime_ns=stat.st_ctime_ns,
            size=stat.st_size,
            inode=stat.st_ino,
            digest=hashlib.sha256(content).hexdigest(),
        )


class ConfigWatcher:
    """Watches a single file for changes using polling.

    The callback runs on the watcher's own asyncio task, one change at a
    time, never on a caller's thread. Rapid successive writes are not
    coalesced; a write that lands between two polls is seen once.
    """

    def __init__(
        self,
        path: Path,
        on_change: ChangeCallback,
        poll_interval: float = 1.0,
    ):
        self.path = Path(path)
        self.on_change = on_change
        self.poll_interval = poll_interval

        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._fingerprint: Optional[FileFingerprint] = None
        self._change_count = 0

    async def start(self):
        """Start watching; raises WatchSetupError if the file can't be observed"""
        if self._running:
            return

        try:
            asyncio.get_running_loop()
        except RuntimeError as e:
            raise WatchSetupError(path=str(self.path), underlying_error=str(e)) from e

        if not self.path.parent.is_dir():
            raise WatchSetupError(
                path=str(self.path),
                underlying_error=f"directory does not exist: {self.path.parent}",
            )

        try:
            self._fingerprint = FileFingerprint.of(self.path)
        except OSError as e:
            raise WatchSetupError(path=str(self.path), underlying_error=str(e)) from e
        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.debug(f"Watching {self.path} every {self.poll_interval}s")

    async def stop(self):
        """Stop watching. Safe to call more than once or before start()."""
        self._running = False
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"Permissions watcher task had failed: {e}")
        logger.debug(f"Stopped watching {self.path}")

    async def _poll_loop(self):
        """Main polling loop; only cancellation ends it"""
        while self._running:
            await asyncio.sleep(self.poll_interval)
            if not self._running:
                break
            try:
                await self.check()
            except Exception as e:
                logger.error(f"Error polling {self.path}: {e}")

    async def check(self) -> bool:
        """Poll once; returns True if a change was seen and dispatched"""
        try:
            current = FileFingerprint.of(self.path)
        except OSError as e:
            # Transient (e.g. EACCES mid-save); the next poll retries
            logger.warning(f"Cannot read {self.path}: {e}")
            return False
        if current == self._fingerprint:
            return False

        self._fingerprint = current
        self._change_count += 1
        logger.debug(f"Permissions file changed: {self.path}")
        try:
            result = self.on_change(self.path)
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logger.error(f"Error in permissions watcher callback: {e}")
        return True

    @property
    def is_running(self) -> bool:
        """True while the poll task is alive"""
        return self._running and self._task is not None and not self._task.done()

    @property
    def change_count(self) -> int:
        return self._change_count
