"""End-to-end tests against a real file:// repository.

Skipped when the Subversion command-line tools are not installed.
"""

import shutil
import subprocess
from pathlib import Path

import pytest

from deploy_sync.svn_wrapper import StatusKind
from deploy_sync.sync import SyncLoop, SyncStatus, build_context

pytestmark = pytest.mark.skipif(
    shutil.which("svn") is None or shutil.which("svnadmin") is None,
    reason="Subversion command-line tools are not installed",
)


@pytest.fixture
def repo_url(tmp_path: Path) -> str:
    repo = tmp_path / "repo"
    subprocess.run(["svnadmin", "create", str(repo)], check=True)
    return repo.as_uri()


def _list_repo(url: str) -> list[str]:
    out = subprocess.run(
        ["svn", "list", "-R", "--non-interactive", url],
        capture_output=True,
        text=True,
        check=True,
    )
    return out.stdout.split()


@pytest.mark.parametrize("client_kind", ["xml", "cmdline"])
def test_fresh_working_copy_is_checked_out(
    tmp_path: Path, repo_url: str, client_kind: str
) -> None:
    """Verifies that an unversioned path becomes a working copy."""
    wc = tmp_path / "wc"
    wc.mkdir()
    context = build_context("", "", repo_url, wc, client_kind=client_kind)
    loop = SyncLoop(context, sleep=lambda _: None)

    assert context.client.single_status(wc).kind is StatusKind.UNVERSIONED

    result = loop.checkout()

    assert result.status is SyncStatus.CHECKED_OUT
    assert (wc / ".svn").is_dir()
    assert context.client.single_status(wc).kind is not StatusKind.UNVERSIONED
    assert loop.checkout().status is SyncStatus.UP_TO_DATE


@pytest.mark.parametrize("client_kind", ["xml", "cmdline"])
def test_local_drift_is_committed(
    tmp_path: Path, repo_url: str, client_kind: str
) -> None:
    """Verifies additions (nested) and deletions reach the repository."""
    wc = tmp_path / "wc"
    wc.mkdir()
    context = build_context("", "", repo_url, wc, client_kind=client_kind)
    loop = SyncLoop(context, sleep=lambda _: None)
    loop.checkout()

    (wc / "app.war").write_text("v1")
    (wc / "conf" / "nested").mkdir(parents=True)
    (wc / "conf" / "nested" / "settings.xml").write_text("<settings/>")

    assert loop.commit().status is SyncStatus.COMMITTED
    assert context.client.status(wc) == []
    assert set(_list_repo(repo_url)) == {
        "app.war",
        "conf/",
        "conf/nested/",
        "conf/nested/settings.xml",
    }

    (wc / "app.war").unlink()
    checkout_result, commit_result = loop.run_cycle()

    assert checkout_result.status is SyncStatus.UP_TO_DATE
    assert commit_result.status is SyncStatus.COMMITTED
    assert "app.war" not in _list_repo(repo_url)

    assert loop.commit().status is SyncStatus.NO_CHANGES
