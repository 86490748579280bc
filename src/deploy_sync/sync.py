import datetime
import logging
import sys
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config import Config, LimitsConfig
from .constants import APP_NAME, SVN_ADMIN_DIR
from .svn_wrapper import (
    RepositoryLocation,
    StatusEntry,
    StatusKind,
    SvnClient,
    SvnError,
    get_client,
)

logger = logging.getLogger(APP_NAME)


class SyncStatus(Enum):
    """Outcome of a checkout or commit step."""

    CHECKED_OUT = "checked_out"
    UP_TO_DATE = "up_to_date"
    COMMITTED = "committed"
    NO_CHANGES = "no_changes"
    FAILED = "failed"  # Logged; the loop carries on next tick.


@dataclass
class SyncResult:
    """Result of a single checkout or commit step."""

    status: SyncStatus
    path: Path
    error: str | None = None
    timestamp: datetime.datetime = field(default_factory=datetime.datetime.now)

    @property
    def failed(self) -> bool:
        return self.status is SyncStatus.FAILED


class SyncInterrupted(Exception):
    """Raised when the process is asked to stop. Ends the sync loop."""


@dataclass
class SyncContext:
    """Everything bound once at startup and shared by every cycle.

    Attributes:
        location (RepositoryLocation): The upstream repository.
        working_copy (Path): The local directory kept in sync.
        client (SvnClient): The selected client implementation.
        config (Config): The loaded configuration.
    """

    location: RepositoryLocation
    working_copy: Path
    client: SvnClient
    config: Config = field(default_factory=Config)


def build_context(
    username: str | None,
    password: str | None,
    url: str,
    working_copy: str | Path,
    client_kind: str | None = None,
    config: Config | None = None,
) -> SyncContext:
    """Selects the client, configures credentials and binds it to the repository.

    Raises:
        ValueError: If the repository URL is malformed.
        FileNotFoundError: If the svn executable cannot be found.
    """
    config = config or Config()
    location = RepositoryLocation(url, username=username, password=password)
    client = get_client(client_kind, location, config.svn)
    path = Path(working_copy).expanduser().resolve()
    return SyncContext(location=location, working_copy=path, client=client, config=config)


class SyncLoop:
    """Keeps a working copy and its repository in step, one cycle at a time.

    Each cycle checks the working copy out if it is not versioned yet, then
    schedules local additions and deletions and commits them. Client and
    filesystem errors are logged and turned into FAILED results; only
    SyncInterrupted stops the loop.
    """

    def __init__(
        self,
        context: SyncContext,
        log: logging.Logger | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.context = context
        self.client = context.client
        self.logger = log or logger
        self._sleep = sleep

    @property
    def interval(self) -> int:
        return self.context.config.sync.interval

    @staticmethod
    def is_all_unversioned(entries: Iterable[StatusEntry]) -> bool:
        """True if every entry is unversioned (and for an empty snapshot)."""
        return all(e.kind is StatusKind.UNVERSIONED for e in entries)

    def cleanup_deleted_files(self, entries: Iterable[StatusEntry]) -> list[Path]:
        """Schedules every missing entry for deletion in one batched call.

        Args:
            entries (Iterable[StatusEntry]): A fresh status snapshot.

        Returns:
            list[Path]: The files passed to the remove call (empty if none).
        """
        deletable = []
        for entry in entries:
            if entry.kind is StatusKind.MISSING:
                self.logger.info(f"Scheduling the file: {entry.path} for SVN delete")
                deletable.append(entry.file)

        if deletable:
            self.client.remove(deletable, force=True)
        return deletable

    def _add_unversioned(self, root: Path, entries: list[StatusEntry]) -> None:
        """Adds unversioned entries one by one, descending into new directories.

        Args:
            root (Path): The path the snapshot was taken for.
            entries (list[StatusEntry]): A fresh status snapshot of `root`.
        """
        self.logger.info(f"SVN adding files in {root}")
        for entry in entries:
            if entry.kind is not StatusKind.UNVERSIONED:
                continue

            if not entry.file.is_dir():
                self.logger.info(f" SVN ADD : {entry.file}")
                self.client.add_file(entry.file)
                continue

            # A recursive add would pull in children we want to add one at a time.
            self.client.add_directory(entry.file, recursive=False)
            for child in sorted(entry.file.iterdir()):
                if child.name == SVN_ADMIN_DIR:
                    continue
                self._add_unversioned(child, self.client.status(child))

    def checkout(self, path: Path | None = None) -> SyncResult:
        """Checks the repository out into `path` if it is not versioned yet.

        Missing files are scheduled for deletion first, so that they are not
        restored from the repository.

        Args:
            path (Path | None): The working copy. Defaults to the context's.

        Returns:
            SyncResult: CHECKED_OUT, UP_TO_DATE or FAILED.
        """
        path = path or self.context.working_copy
        url = self.context.location.url
        self.logger.info(f"SVN checking out {path}")

        try:
            self.cleanup_deleted_files(self.client.status(path, get_all=True))

            top = self.client.single_status(path)
            if top.kind is not StatusKind.UNVERSIONED:
                return SyncResult(SyncStatus.UP_TO_DATE, path)

            self.client.checkout(url, path)
            self.logger.info(f"Checked out using {self.client.label} client")
            self.logger.info(f"SVN checked out successfully : {path}")
            return SyncResult(SyncStatus.CHECKED_OUT, path)

        except (SvnError, OSError) as e:
            # The working copy may change under us; retry next tick.
            self.logger.exception(
                f"Error while checking out or updating artifacts from the "
                f"SVN repository {url}: {e}"
            )
            return SyncResult(SyncStatus.FAILED, path, error=str(e))

    def commit(self, path: Path | None = None) -> SyncResult:
        """Schedules local drift under `path` and commits it.

        Steps:
        1. Releases stale locks.
        2. Adds unversioned files and schedules missing files for deletion.
        3. Commits unless nothing but unversioned entries remain.
        4. Re-runs checkout to refresh the working copy.

        Args:
            path (Path | None): The working copy. Defaults to the context's.

        Returns:
            SyncResult: COMMITTED, NO_CHANGES or FAILED.
        """
        path = path or self.context.working_copy
        self.logger.info(f"SVN checking in {path}")

        try:
            self.client.cleanup(path)

            check_status = self.client.status(path)
            if not check_status:
                self.logger.info(f"No changes in the local working copy to commit {path}")
                return SyncResult(SyncStatus.NO_CHANGES, path)

            self._add_unversioned(path, check_status)
            self.cleanup_deleted_files(check_status)

            status = self.client.status(path)
            # Only unversioned entries left means the adds did not take.
            if not status or self.is_all_unversioned(status):
                self.logger.info("No changes in the local working copy")
                return SyncResult(SyncStatus.NO_CHANGES, path)

            self.client.commit([path], self.context.config.sync.commit_message)
            self.logger.info(f"SVN checked in successfully {path}")

        except (SvnError, OSError) as e:
            self.logger.exception(
                f"Error while committing artifacts to the SVN repository: {e}"
            )
            return SyncResult(SyncStatus.FAILED, path, error=str(e))

        # Refresh the working copy so the next commit is not out of date.
        self.logger.info("Updating the working copy after the commit.")
        self.checkout(path)
        self.logger.info("Updated the working copy after the commit.")
        return SyncResult(SyncStatus.COMMITTED, path)

    def run_cycle(self) -> tuple[SyncResult, SyncResult]:
        """Runs one checkout followed by one commit."""
        return self.checkout(), self.commit()

    def run(self, max_cycles: int | None = None) -> int:
        """The main sync loop.

        Args:
            max_cycles (int | None, optional): Stop after this many cycles.
                                               Defaults to None (run forever).

        Returns:
            int: The number of completed cycles.

        Raises:
            SyncInterrupted: If the process is interrupted.
        """
        cycles = 0
        try:
            while max_cycles is None or cycles < max_cycles:
                self.run_cycle()
                cycles += 1
                if max_cycles is not None and cycles >= max_cycles:
                    break
                self._sleep(self.interval)
        except KeyboardInterrupt as e:
            raise SyncInterrupted("Interrupted by user") from e
        return cycles


def setup_logging(
    log_file: Path | None = None,
    verbose: bool = False,
    limits: LimitsConfig | None = None,
) -> None:
    """Configures the logging subsystem.

    Args:
        log_file (Path | None): If given, also log to this file with rotation.
        verbose (bool): Log svn command lines at DEBUG level.
        limits (LimitsConfig | None): Rotation settings for the log file.
    """
    limits = limits or LimitsConfig()
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=limits.max_log_size,
            backupCount=limits.log_backups,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
