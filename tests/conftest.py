"""Shared test fixtures for session-vault."""

import json
from unittest.mock import patch

import pytest

from session_vault.index import IndexCache
from session_vault.vault import Vault


def user_line(text, wrapped=True):
    if wrapped:
        return {"type": "user", "message": {"role": "user", "content": text}, "uuid": "u1"}
    return {"role": "user", "content": text}


def assistant_line(text, wrapped=True):
    blocks = [{"type": "text", "text": text}]
    if wrapped:
        return {"type": "assistant", "message": {"role": "assistant", "content": blocks}}
    return {"role": "assistant", "content": blocks}


@pytest.fixture
def write_jsonl(tmp_path):
    """Write JSONL lines (dicts or raw strings) to a file and return its path."""

    def _write(lines, name="session.jsonl"):
        path = tmp_path / name
        rendered = [line if isinstance(line, str) else json.dumps(line) for line in lines]
        path.write_text("\n".join(rendered) + "\n", encoding="utf-8")
        return path

    return _write


@pytest.fixture
def sample_session(write_jsonl):
    """A short session with tool noise mixed in."""
    return write_jsonl([
        {"type": "file-history-snapshot", "snapshot": {}},
        user_line("How do I fix the login bug in auth.py?"),
        assistant_line("We decided to validate the token first because it was expired.\n\n```python\nvalidate(token)\n```"),
        {
            "type": "user",
            "message": {
                "role": "user",
                "content": [{"type": "tool_result", "tool_use_id": "t1", "content": "ok"}],
            },
        },
        {"type": "system", "content": "hook ran"},
        user_line("Thanks, that works"),
    ])


@pytest.fixture
def vault_dir(tmp_path):
    return tmp_path / "vault"


@pytest.fixture
def vault(vault_dir):
    return Vault(vault_dir)


@pytest.fixture
def cache(vault):
    return IndexCache(vault)


@pytest.fixture(autouse=True)
def no_git():
    """Keep git lookups out of unit tests."""
    with patch("session_vault.operations.get_git_info", return_value=("main", "abc1234")):
        yield


@pytest.fixture
def make_record(vault, cache):
    """Save a transcript directly through the vault and index it."""

    def _make(summary="A conversation", project_path="/home/user/app", tags=(), note="", markdown=None):
        record = vault.save_transcript(
            markdown if markdown is not None else f"# Session: {summary}\n\n## User\n{summary}\n",
            project_path=project_path,
            summary=summary,
            message_count=2,
            session_id="sess-1",
            tags=tags,
            note=note,
        )
        cache.add(record)
        return record

    return _make
