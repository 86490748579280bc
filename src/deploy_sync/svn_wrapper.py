import logging
import shutil
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from urllib.parse import urlsplit
from xml.etree import ElementTree

from .config import SvnConfig
from .constants import (
    APP_NAME,
    CMDLINE_CLIENT,
    HEAD_REVISION,
    NOT_WORKING_COPY_CODES,
    SUPPORTED_URL_SCHEMES,
    XML_CLIENT,
    XML_CLIENT_ALIASES,
)

logger = logging.getLogger(APP_NAME)


class StatusKind(Enum):
    """Text status of a working copy item, as reported by `svn status`."""

    NONE = "none"
    NORMAL = "normal"
    ADDED = "added"
    CONFLICTED = "conflicted"
    DELETED = "deleted"
    EXTERNAL = "external"
    IGNORED = "ignored"
    INCOMPLETE = "incomplete"
    MERGED = "merged"
    MISSING = "missing"
    MODIFIED = "modified"
    OBSTRUCTED = "obstructed"
    REPLACED = "replaced"
    UNVERSIONED = "unversioned"

    @classmethod
    def from_item(cls, item: str) -> "StatusKind":
        """Maps the `item` attribute of `<wc-status>` to a kind."""
        try:
            return cls(item)
        except ValueError:
            return cls.NONE

    @classmethod
    def from_code(cls, code: str) -> "StatusKind":
        """Maps the first column of plain-text `svn status` output to a kind."""
        return _STATUS_CODES.get(code, cls.NONE)


_STATUS_CODES = {
    " ": StatusKind.NORMAL,
    "A": StatusKind.ADDED,
    "C": StatusKind.CONFLICTED,
    "D": StatusKind.DELETED,
    "I": StatusKind.IGNORED,
    "M": StatusKind.MODIFIED,
    "R": StatusKind.REPLACED,
    "X": StatusKind.EXTERNAL,
    "?": StatusKind.UNVERSIONED,
    "!": StatusKind.MISSING,
    "~": StatusKind.OBSTRUCTED,
}


@dataclass(frozen=True)
class StatusEntry:
    """One line of a status snapshot.

    Attributes:
        path (str): The path exactly as reported by svn.
        kind (StatusKind): The text status of the item.
        file (Path): The filesystem path of the item.
    """

    path: str
    kind: StatusKind
    file: Path


@dataclass(frozen=True)
class RepositoryLocation:
    """An upstream repository URL plus optional credentials.

    Attributes:
        url (str): The repository URL.
        username (str | None): The user to authenticate as, if any.
        password (str | None): The password for `username`. Never shown in repr.
    """

    url: str
    username: str | None = None
    password: str | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        scheme = urlsplit(self.url).scheme.lower()
        if scheme not in SUPPORTED_URL_SCHEMES:
            raise ValueError(f"Provided SVN URL is malformed: {self.url}")
        # An empty username on the command line means anonymous access.
        if not self.username:
            object.__setattr__(self, "username", None)
            object.__setattr__(self, "password", None)

    @property
    def has_credentials(self) -> bool:
        """Whether a username was configured."""
        return self.username is not None

    def mask(self, text: str) -> str:
        """Replaces the password in `text` with `***`."""
        if self.password:
            return text.replace(self.password, "***")
        return text


class SvnError(RuntimeError):
    """Raised when an svn command fails.

    Attributes:
        command (list[str]): The command line that failed (password masked).
        returncode (int | None): The exit code, or None if svn never ran.
        stderr (str): The error output of the command.
    """

    def __init__(
        self,
        message: str,
        command: list[str] | None = None,
        returncode: int | None = None,
        stderr: str = "",
    ):
        super().__init__(message)
        self.command = command or []
        self.returncode = returncode
        self.stderr = stderr

    @property
    def is_not_working_copy(self) -> bool:
        """True if svn rejected the target because it is not a working copy."""
        return any(code in self.stderr for code in NOT_WORKING_COPY_CODES)


def _target(path: Path) -> str:
    """Formats a path as an svn target, escaping peg revision markers."""
    text = str(path)
    # svn reads the last '@' as a peg revision; a trailing '@' disables that.
    return f"{text}@" if "@" in text else text


class SvnClient(ABC):
    """Base class wrapping the Subversion command-line client for one repository.

    Subclasses decide how status output is parsed and which options a
    checkout uses. Everything else is shared.

    Attributes:
        location (RepositoryLocation): The repository this client is bound to.
        binary (str): The `svn` executable.
        trust_server_cert (bool): Whether unknown server certificates are accepted.
    """

    kind = "base"
    label = "SVN"

    def __init__(
        self,
        location: RepositoryLocation,
        binary: str = "svn",
        trust_server_cert: bool = False,
    ):
        self.location = location
        self.binary = binary
        self.trust_server_cert = trust_server_cert

    def _global_args(self) -> list[str]:
        """Options appended to every command (authentication, prompts)."""
        args = ["--non-interactive"]
        if self.location.has_credentials:
            args += ["--username", self.location.username or ""]
            if self.location.password is not None:
                args += ["--password", self.location.password, "--no-auth-cache"]
        if self.trust_server_cert:
            args.append("--trust-server-cert")
        return args

    def _exec(self, args: list[str]) -> subprocess.CompletedProcess:
        """Executes an svn command.

        Args:
            args (list[str]): The subcommand and its arguments.

        Returns:
            subprocess.CompletedProcess: The finished process (text mode).

        Raises:
            SvnError: If svn cannot be started, exits with a non-zero code or
                      prints output that is not valid in the locale encoding.
        """
        cmd = [self.binary, *args, *self._global_args()]
        shown = [self.location.mask(part) for part in cmd]
        logger.debug(f"Running: {' '.join(shown)}")
        try:
            return subprocess.run(cmd, capture_output=True, text=True, check=True)
        except subprocess.CalledProcessError as e:
            stderr = self.location.mask(e.stderr or "").strip()
            raise SvnError(
                f"svn {args[0]} failed: {stderr or e.returncode}",
                command=shown,
                returncode=e.returncode,
                stderr=stderr,
            ) from e
        except UnicodeDecodeError as e:
            raise SvnError(
                f"svn {args[0]} printed undecodable output: {e}", command=shown
            ) from e
        except OSError as e:
            raise SvnError(f"Could not run {self.binary}: {e}", command=shown) from e

    def _run(self, args: list[str]) -> str:
        """Executes an svn command and returns its stripped stdout."""
        return self._exec(args).stdout.strip()

    def _query_status(self, args: list[str]) -> str | None:
        """Runs `svn status`, returning None when the target is not a working copy."""
        try:
            res = self._exec(["status", *args])
        except SvnError as e:
            if e.is_not_working_copy:
                return None
            raise
        # Older clients only warn and still exit cleanly.
        if any(code in (res.stderr or "") for code in NOT_WORKING_COPY_CODES):
            return None
        return res.stdout

    @abstractmethod
    def status(self, path: Path, get_all: bool = False) -> list[StatusEntry]:
        """Recursively queries the status of `path`.

        Args:
            path (Path): The root of the query.
            get_all (bool, optional): Include unmodified entries. Defaults to False.

        Returns:
            list[StatusEntry]: A fresh snapshot; empty if `path` is not a working copy.
        """
        raise NotImplementedError

    @abstractmethod
    def single_status(self, path: Path) -> StatusEntry:
        """Queries the status of `path` itself, without descending.

        Paths outside any working copy are reported as UNVERSIONED.
        """
        raise NotImplementedError

    @abstractmethod
    def checkout(self, url: str, path: Path, revision: str = HEAD_REVISION) -> None:
        """Checks out `url` at `revision` into `path`, recursively."""
        raise NotImplementedError

    def add_file(self, path: Path) -> None:
        """Schedules a single file for addition."""
        self._run(["add", _target(path)])

    def add_directory(self, path: Path, recursive: bool) -> None:
        """Schedules a directory for addition.

        Args:
            path (Path): The directory.
            recursive (bool): If False, only the directory itself is added.
        """
        cmd = ["add"]
        if not recursive:
            cmd += ["--depth", "empty"]
        cmd.append(_target(path))
        self._run(cmd)

    def remove(self, paths: list[Path], force: bool = True) -> None:
        """Schedules `paths` for deletion in one batched call."""
        if not paths:
            return
        cmd = ["delete"]
        if force:
            cmd.append("--force")
        cmd.extend(_target(p) for p in paths)
        self._run(cmd)

    def cleanup(self, path: Path) -> None:
        """Releases stale working copy locks under `path`."""
        self._run(["cleanup", _target(path)])

    def commit(self, paths: list[Path], message: str, recursive: bool = True) -> str:
        """Commits `paths` with the given log message.

        Returns:
            str: The output of `svn commit` (empty when nothing was sent).
        """
        cmd = ["commit", "-m", message]
        if not recursive:
            cmd += ["--depth", "empty"]
        cmd.extend(_target(p) for p in paths)
        return self._run(cmd)


class XmlSvnClient(SvnClient):
    """Client reading the structured `--xml` output of `svn status`."""

    kind = XML_CLIENT
    label = "SVN-XML"

    def _parse(self, output: str) -> list[StatusEntry]:
        """Parses `svn status --xml` output into status entries.

        Raises:
            SvnError: If the output is not valid XML.
        """
        try:
            root = ElementTree.fromstring(output)
        except ElementTree.ParseError as e:
            raise SvnError(f"Unreadable svn status output: {e}") from e

        entries = []
        for entry in root.iter("entry"):
            name = entry.get("path", "")
            wc_status = entry.find("wc-status")
            item = wc_status.get("item", "none") if wc_status is not None else "none"
            entries.append(StatusEntry(name, StatusKind.from_item(item), Path(name)))
        return entries

    def status(self, path: Path, get_all: bool = False) -> list[StatusEntry]:
        args = ["--xml"]
        if get_all:
            args.append("--verbose")
        output = self._query_status([*args, _target(path)])
        if output is None:
            return []
        return self._parse(output)

    def single_status(self, path: Path) -> StatusEntry:
        output = self._query_status(
            ["--xml", "--verbose", "--depth", "empty", _target(path)]
        )
        entries = self._parse(output) if output is not None else []
        if not entries:
            return StatusEntry(str(path), StatusKind.UNVERSIONED, path)
        return entries[0]

    def checkout(self, url: str, path: Path, revision: str = HEAD_REVISION) -> None:
        self._run(
            [
                "checkout",
                "-r",
                revision,
                "--depth",
                "infinity",
                "--force",
                url,
                _target(path),
            ]
        )


class CmdLineSvnClient(SvnClient):
    """Client reading the plain-text columns of `svn status`."""

    kind = CMDLINE_CLIENT
    label = "CMD-LINE"

    @staticmethod
    def _parse(output: str, verbose: bool = False) -> list[StatusEntry]:
        """Parses plain-text `svn status` output into status entries.

        Lines that are not item lines (changelist headers, conflict summaries,
        tree conflict details) are skipped.
        """
        entries = []
        for line in output.splitlines():
            if len(line) < 9 or line[7] != " " or line.lstrip().startswith(">"):
                continue
            code = line[0]
            if code not in _STATUS_CODES:
                continue
            kind = StatusKind.from_code(code)
            rest = line[8:]
            if verbose and kind is not StatusKind.UNVERSIONED:
                # Verbose lines carry: working rev, last changed rev, author, path.
                parts = rest.split(None, 3)
                name = parts[3] if len(parts) == 4 else rest.strip()
            elif verbose:
                name = rest.strip()
            else:
                name = rest
            entries.append(StatusEntry(name, kind, Path(name)))
        return entries

    def status(self, path: Path, get_all: bool = False) -> list[StatusEntry]:
        args = ["--verbose"] if get_all else []
        output = self._query_status([*args, _target(path)])
        if output is None:
            return []
        return self._parse(output, verbose=get_all)

    def single_status(self, path: Path) -> StatusEntry:
        output = self._query_status(["--depth", "empty", _target(path)])
        if output is None:
            return StatusEntry(str(path), StatusKind.UNVERSIONED, path)
        entries = self._parse(output)
        if not entries:
            # Quiet output for a versioned path means nothing changed.
            return StatusEntry(str(path), StatusKind.NORMAL, path)
        return entries[0]

    def checkout(self, url: str, path: Path, revision: str = HEAD_REVISION) -> None:
        # The legacy invocation: revision and implicit full recursion only.
        self._run(["checkout", "-r", revision, url, _target(path)])


def get_client(
    kind: str | None,
    location: RepositoryLocation,
    svn_config: SvnConfig | None = None,
) -> SvnClient:
    """Factory function selecting the client implementation.

    An absent or empty `kind` falls back to the configured default client.
    The structured client is chosen for its aliases, any other value selects
    the plain-text client.

    Args:
        kind (str | None): The client kind requested on the command line.
        location (RepositoryLocation): The repository to bind the client to.
        svn_config (SvnConfig | None): Client settings. Defaults to SvnConfig().

    Returns:
        SvnClient: An XmlSvnClient or CmdLineSvnClient instance.

    Raises:
        FileNotFoundError: If the svn executable cannot be found.
    """
    svn_config = svn_config or SvnConfig()
    if shutil.which(svn_config.binary) is None:
        raise FileNotFoundError(f"svn executable not found: {svn_config.binary}")

    selected = (kind or "").strip() or svn_config.default_client
    cls: type[SvnClient]
    if selected.lower() in XML_CLIENT_ALIASES:
        cls = XmlSvnClient
    else:
        cls = CmdLineSvnClient
    return cls(
        location,
        binary=svn_config.binary,
        trust_server_cert=svn_config.trust_server_cert,
    )
