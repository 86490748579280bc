"""Deploy Sync: keep a local directory and a Subversion repository in step.

This package provides the command-line interface, the Subversion client
wrappers and the polling loop that checks out a working copy and commits its
local drift on a fixed interval.
"""

from . import (
    cli,
    config,
    constants,
    svn_wrapper,
    sync,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "svn_wrapper",
    "sync",
]
