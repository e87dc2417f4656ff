"""Git branch/commit lookup for saved conversations.

Every lookup is best effort: outside a repository, without git installed, or
on timeout the result is None.
"""

import logging
import subprocess
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

logger = logging.getLogger(__name__)

GIT_TIMEOUT = 5  # seconds


def _git(args: list[str], cwd: str | Path | None = None) -> str | None:
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT,
        )
    except subprocess.TimeoutExpired:
        logger.debug("git %s timed out after %ss in %s", " ".join(args), GIT_TIMEOUT, cwd)
        return None
    except OSError as e:
        logger.debug("git %s failed in %s: %s", " ".join(args), cwd, e)
        return None

    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def get_current_branch(cwd: str | Path | None = None) -> str | None:
    return _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd)


def get_current_commit(cwd: str | Path | None = None) -> str | None:
    return _git(["rev-parse", "--short", "HEAD"], cwd)


def get_git_info(cwd: str | Path | None = None) -> tuple[str | None, str | None]:
    """Return (branch, short commit), looked up concurrently."""
    with ThreadPoolExecutor(max_workers=2) as pool:
        branch = pool.submit(get_current_branch, cwd)
        commit = pool.submit(get_current_commit, cwd)
        return branch.result(), commit.result()
