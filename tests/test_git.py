"""Tests for git metadata lookup."""

import subprocess
from unittest.mock import patch

from session_vault.git import get_current_branch, get_git_info


def completed(stdout, returncode=0):
    return subprocess.CompletedProcess(args=["git"], returncode=returncode, stdout=stdout, stderr="")


def test_git_info():
    def fake_run(args, **kwargs):
        if "--abbrev-ref" in args:
            return completed("feature/login\n")
        return completed("abc1234\n")

    with patch("session_vault.git.subprocess.run", side_effect=fake_run):
        assert get_git_info("/repo") == ("feature/login", "abc1234")


def test_not_a_repository():
    with patch("session_vault.git.subprocess.run", return_value=completed("", returncode=128)):
        assert get_git_info("/tmp") == (None, None)


def test_git_missing():
    with patch("session_vault.git.subprocess.run", side_effect=FileNotFoundError("git")):
        assert get_current_branch("/repo") is None


def test_timeout():
    with patch(
        "session_vault.git.subprocess.run",
        side_effect=subprocess.TimeoutExpired(cmd="git", timeout=5),
    ):
        assert get_git_info("/repo") == (None, None)
