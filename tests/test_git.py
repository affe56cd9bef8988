"""Tests for the subprocess-backed git transport."""

import datetime
import subprocess
from unittest.mock import patch

import pytest

from crate_shield.advisories.database import AdvisoryDatabase
from crate_shield.advisories.git import GitError, GitTransport
from crate_shield.core.errors import FetchFailedError

URL = "https://example.com/advisory-db.git"


def completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestGitTransport:
    """Test the git commands issued for mirror operations."""

    @patch("crate_shield.advisories.git.subprocess.run")
    def test_sync_clones_missing_mirror(self, mock_run, tmp_path):
        mock_run.return_value = completed()
        path = tmp_path / "advisory-db"

        GitTransport().sync(path, URL)

        assert mock_run.call_count == 1
        assert mock_run.call_args[0][0] == ["git", "clone", "--quiet", URL, str(path)]

    @patch("crate_shield.advisories.git.subprocess.run")
    def test_sync_fetches_existing_mirror(self, mock_run, tmp_path):
        mock_run.return_value = completed()
        path = tmp_path / "advisory-db"
        (path / ".git").mkdir(parents=True)

        GitTransport().sync(path, URL)

        commands = [call[0][0] for call in mock_run.call_args_list]
        assert commands == [
            ["git", "fetch", "--quiet", URL, "HEAD"],
            ["git", "reset", "--quiet", "--hard", "FETCH_HEAD"],
        ]
        assert all(call[1]["cwd"] == str(path) for call in mock_run.call_args_list)

    @patch("crate_shield.advisories.git.subprocess.run")
    def test_nonzero_exit_raises(self, mock_run, tmp_path):
        mock_run.return_value = completed(returncode=128, stderr="fatal: repository not found")

        with pytest.raises(GitError, match="repository not found"):
            GitTransport().sync(tmp_path / "advisory-db", URL)

    @patch("crate_shield.advisories.git.subprocess.run")
    def test_missing_git_executable_raises(self, mock_run, tmp_path):
        mock_run.side_effect = FileNotFoundError("git")

        with pytest.raises(GitError):
            GitTransport().sync(tmp_path / "advisory-db", URL)

    @patch("crate_shield.advisories.git.subprocess.run")
    def test_failed_fetch_becomes_fetch_failed(self, mock_run, tmp_path):
        mock_run.return_value = completed(returncode=128, stderr="fatal: unable to access")

        with pytest.raises(FetchFailedError) as exc_info:
            AdvisoryDatabase.open(tmp_path / "advisory-db", url=URL, transport=GitTransport())

        assert "unable to access" in exc_info.value.message
        assert exc_info.value.details["url"] == URL
        assert not (tmp_path / "advisory-db.lock").exists()

    @patch("crate_shield.advisories.git.subprocess.run")
    def test_head_timestamp(self, mock_run, tmp_path):
        mock_run.return_value = completed(stdout="1717243200\n")

        timestamp = GitTransport().head_timestamp(tmp_path)

        assert timestamp == datetime.datetime(2024, 6, 1, 12, 0, tzinfo=datetime.timezone.utc)
        assert mock_run.call_args[0][0] == ["git", "log", "-1", "--format=%ct", "HEAD"]

    @patch("crate_shield.advisories.git.subprocess.run")
    def test_head_timestamp_unavailable(self, mock_run, tmp_path):
        mock_run.return_value = completed(returncode=128, stderr="fatal: not a git repository")

        assert GitTransport().head_timestamp(tmp_path) is None

    @patch("crate_shield.advisories.git.subprocess.run")
    def test_head_timestamp_empty_repository(self, mock_run, tmp_path):
        mock_run.return_value = completed(stdout="")

        assert GitTransport().head_timestamp(tmp_path) is None
