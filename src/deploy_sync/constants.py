import os
from pathlib import Path

"""Global constants and configuration path definitions for Deploy Sync.

This module defines the filesystem layout (adhering to XDG standards where applicable),
application identifiers, and the Subversion defaults used across the application.
"""

# --- Identity ---
APP_NAME = "deploy-sync"
"""str: The human-readable application name (also the logger name)."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "deploy-sync"
"""Path: The directory for runtime state data (logs)."""

LOG_FILE = STATE_DIR / "sync.log"
"""Path: The default file path for daemon logs when file logging is enabled."""

CONFIG_DIR: Path = Path.home() / ".config/deploy-sync"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The main configuration file path."""

# --- Sync Constants ---
DEFAULT_INTERVAL = 15
"""int: Seconds to sleep between two synchronization cycles."""

COMMIT_MESSAGE = "Commit initiated by deployment synchronizer"
"""str: The log message attached to every commit."""

SVN_ADMIN_DIR = ".svn"
"""str: The Subversion metadata directory, never passed to `svn add`."""

HEAD_REVISION = "HEAD"
"""str: The revision keyword for the latest revision in the repository."""

# --- Client Kinds ---
XML_CLIENT = "xml"
"""str: Client kind for the structured (`--xml`) Subversion client."""

CMDLINE_CLIENT = "cmdline"
"""str: Client kind for the plain-text Subversion client."""

XML_CLIENT_ALIASES = (XML_CLIENT, "svnkit")
"""tuple[str, ...]: Explicit client kinds that select the structured client."""

SUPPORTED_URL_SCHEMES = ("http", "https", "svn", "svn+ssh", "file")
"""tuple[str, ...]: Repository URL schemes understood by the `svn` client."""

NOT_WORKING_COPY_CODES = ("E155007", "W155007", "E155010", "W155010")
"""
tuple[str, ...]: svn error codes reported when a path is not
(or not yet) part of a working copy.
"""
