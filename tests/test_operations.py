"""Tests for the vault operations used by the CLI and the API."""

import json
from datetime import datetime, timezone

import pytest

from session_vault import operations
from session_vault.config import VaultConfig
from session_vault.core import RedactionRule
from session_vault.errors import (
    ConversationNotFound,
    CorruptRecord,
    InvalidRequest,
    TranscriptTooLarge,
    VaultError,
)
from session_vault.index import IndexCache
from session_vault.vault import Vault


class TestSave:
    def test_save_conversation(self, vault_dir, sample_session):
        record = operations.save_conversation(
            vault_dir, sample_session, "/home/user/app", tags=["bug"], note="login fix"
        )
        assert record.message_count == 3
        assert record.summary == "How do I fix the login bug in auth.py?"
        assert record.git_branch == "main"
        assert record.git_commit == "abc1234"
        assert record.project == "app"

        body = Vault(vault_dir).read_transcript("/home/user/app", record.transcript_file)
        assert body.startswith("# Session: How do I fix the login bug in auth.py?")
        assert "**Branch:** main" in body
        assert "**Tags:** bug" in body
        assert "## Assistant" in body

        entries = IndexCache(Vault(vault_dir)).load().entries
        assert [e.id for e in entries] == [record.id]

    def test_redaction_rules_from_config(self, vault_dir, write_jsonl):
        path = write_jsonl([{"role": "user", "content": "my key is sk-secret123"}])
        config = VaultConfig(redaction_rules=[RedactionRule(pattern=r"sk-\w+")])
        record = operations.save_conversation(vault_dir, path, "/p", config=config)
        body = Vault(vault_dir).read_transcript("/p", record.transcript_file)
        assert "my key is [REDACTED]" in body
        assert "sk-secret123" not in body
        assert record.summary == "my key is [REDACTED]"
        assert body.startswith("# Session: my key is [REDACTED]")
        [entry] = IndexCache(Vault(vault_dir)).load().entries
        assert "sk-secret123" not in entry.summary

    def test_empty_transcript(self, vault_dir, write_jsonl):
        path = write_jsonl([{"type": "system", "content": "nothing"}])
        with pytest.raises(VaultError) as excinfo:
            operations.save_conversation(vault_dir, path, "/p")
        assert excinfo.value.kind == "empty"
        assert not vault_dir.exists()

    def test_too_large(self, vault_dir, sample_session):
        with pytest.raises(TranscriptTooLarge):
            operations.save_conversation(
                vault_dir, sample_session, "/p", config=VaultConfig(max_transcript_size_mb=0.0001)
            )


class TestAutoSave:
    def payload(self, path):
        return {"session_id": "sess-42", "transcript_path": str(path), "cwd": "/home/user/app"}

    def test_disabled(self, vault_dir, sample_session):
        assert operations.auto_save(vault_dir, self.payload(sample_session), VaultConfig()) is None

    def test_below_threshold(self, vault_dir, sample_session):
        config = VaultConfig(auto_save=True, auto_save_min_messages=5)
        assert operations.auto_save(vault_dir, self.payload(sample_session), config) is None

    def test_missing_transcript(self, vault_dir, tmp_path):
        config = VaultConfig(auto_save=True, auto_save_min_messages=1)
        assert operations.auto_save(vault_dir, {"session_id": "x"}, config) is None
        assert operations.auto_save(vault_dir, self.payload(tmp_path / "gone.jsonl"), config) is None

    def test_saves(self, vault_dir, sample_session):
        config = VaultConfig(auto_save=True, auto_save_min_messages=3)
        record = operations.auto_save(vault_dir, self.payload(sample_session), config)
        assert record.source == "auto"
        assert record.tags == ["auto"]
        assert record.note == "Auto-saved on session end"
        assert record.session_id == "sess-42"
        assert record.project_path == "/home/user/app"


class TestListAndSearch:
    def test_list_pagination_and_filters(self, vault_dir, make_record):
        for i in range(5):
            make_record(summary=f"conversation {i}", tags=["Work"] if i % 2 else [])
        make_record(summary="elsewhere", project_path="/home/user/other")

        page, total = operations.list_conversations(vault_dir, limit=2, offset=1)
        assert total == 6
        assert len(page) == 2

        page, total = operations.list_conversations(vault_dir, tag="work")
        assert total == 2
        page, total = operations.list_conversations(vault_dir, project="OTHER")
        assert [e.summary for e in page] == ["elsewhere"]

        page, total = operations.list_conversations(vault_dir, limit=1000)
        assert len(page) == 6

    def test_filter_dates(self, vault_dir, make_record):
        record = make_record()
        entries = IndexCache(Vault(vault_dir)).load().entries
        assert operations.filter_entries(entries, date_from="2000-01-01") == entries
        assert operations.filter_entries(entries, date_to="2000-01-01") == []
        assert operations.filter_entries(entries, date_from=record.saved_at, date_to=record.saved_at) == entries
        with pytest.raises(InvalidRequest):
            operations.filter_entries(entries, date_from="last tuesday")

    def test_search_scoring(self, vault_dir, make_record):
        in_summary = make_record(summary="Fix the parser")
        in_note = make_record(summary="Other", note="parser notes")
        in_body = make_record(summary="Third", markdown="## User\nline one\nthe Parser broke\nline three\n")
        make_record(summary="Unrelated")

        results = operations.search_conversations(vault_dir, "parser")
        assert [r.id for r in results] == [in_summary.id, in_note.id, in_body.id]
        assert [r.score for r in results] == [3, 2, 1]
        assert results[0].match_context == "Fix the parser"
        assert results[1].match_context == "parser notes"
        assert "the Parser broke" in results[2].match_context

    def test_search_tags(self, vault_dir, make_record):
        record = make_record(summary="x", tags=["database"])
        [result] = operations.search_conversations(vault_dir, "DATA")
        assert result.id == record.id
        assert result.score == 2
        assert result.match_context == "Tags: database"

    def test_search_empty_query(self, vault_dir):
        with pytest.raises(InvalidRequest):
            operations.search_conversations(vault_dir, "  ")

    def test_extract_context(self):
        content = "a\nb\nc\nneedle\nd\ne\nf"
        assert operations.extract_context(content, "NEEDLE") == "b\nc\nneedle\nd\ne"
        assert operations.extract_context(content, "missing") is None


class TestGet:
    def test_get_by_prefix(self, vault_dir, make_record):
        record = make_record(markdown="## Assistant\nWe decided to use JSON because it is simple.\n")
        entry, text = operations.get_conversation(vault_dir, record.id[:8])
        assert entry.id == record.id
        assert text.startswith("## Assistant")

        _, decisions = operations.get_conversation(vault_dir, record.id, section="decisions")
        assert "We decided to use JSON" in decisions

    def test_get_unknown(self, vault_dir):
        with pytest.raises(ConversationNotFound):
            operations.get_conversation(vault_dir, "deadbeef")

    def test_read_conversation(self, vault_dir, make_record):
        record = make_record(note="n")
        got, body = operations.read_conversation(vault_dir, record.id)
        assert got == record
        assert body.startswith("# Session:")

    def test_read_corrupt_metadata(self, vault_dir, make_record):
        record = make_record()
        meta_path = vault_dir / "projects" / "home-user-app" / record.metadata_file
        meta_path.write_text("{broken", encoding="utf-8")

        with pytest.raises(CorruptRecord) as excinfo:
            operations.read_conversation(vault_dir, record.id)
        assert excinfo.value.kind == "corrupt"
        assert record.metadata_file in str(excinfo.value)


class TestDelete:
    def test_parse_older_than(self):
        now = datetime(2026, 6, 1, tzinfo=timezone.utc)
        assert operations.parse_older_than("30d", now) == datetime(2026, 5, 2, tzinfo=timezone.utc)
        assert operations.parse_older_than("12h", now) == datetime(2026, 5, 31, 12, tzinfo=timezone.utc)
        assert operations.parse_older_than("1m", now) == datetime(2026, 5, 2, tzinfo=timezone.utc)
        with pytest.raises(InvalidRequest):
            operations.parse_older_than("a week", now)

    def test_preview_then_confirm(self, vault_dir, make_record):
        keep = make_record(summary="keep")
        drop = make_record(summary="drop", tags=["tmp"])

        preview = operations.delete_conversations(vault_dir, tag="TMP")
        assert preview.deleted is False
        assert [e.id for e in preview.entries] == [drop.id]
        assert len(IndexCache(Vault(vault_dir)).load().entries) == 2

        result = operations.delete_conversations(vault_dir, tag="tmp", confirm=True)
        assert result.deleted is True
        entries = IndexCache(Vault(vault_dir)).load().entries
        assert [e.id for e in entries] == [keep.id]
        with pytest.raises(ConversationNotFound):
            Vault(vault_dir).read_transcript(drop.project_path, drop.transcript_file)

    def test_by_ids_reports_missing(self, vault_dir, make_record):
        record = make_record()
        result = operations.delete_conversations(
            vault_dir, ids=[record.id[:8], record.id, "nope-nope"], confirm=True
        )
        assert [e.id for e in result.entries] == [record.id]
        assert result.missing == ["nope-nope"]
        assert IndexCache(Vault(vault_dir)).load().entries == []

    def test_older_than(self, vault_dir, make_record):
        make_record()
        assert operations.delete_conversations(vault_dir, older_than="1d").entries == []

    def test_delete_single(self, vault_dir, make_record):
        record = make_record()
        assert operations.delete_conversation(vault_dir, record.id).id == record.id
        with pytest.raises(ConversationNotFound):
            operations.delete_conversation(vault_dir, record.id)


class TestExportAndRebuild:
    def test_export_one(self, vault_dir, make_record, tmp_path):
        record = make_record(summary="exported")
        out = tmp_path / "out"
        [path] = operations.export_conversations(vault_dir, record.id[:8], fmt="json", output_dir=out)
        assert path.name == f"{record.saved_at[:10]}_{record.id[:8]}.json"
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["metadata"]["id"] == record.id
        assert data["transcript"].startswith("# Session: exported")

    def test_export_all_skips_missing_files(self, vault_dir, make_record, tmp_path):
        first = make_record()
        second = make_record()
        Vault(vault_dir).delete_entry(second.project_path, second.transcript_file, second.metadata_file)

        paths = operations.export_conversations(vault_dir, "all", fmt="md", output_dir=tmp_path / "out")
        assert [p.name for p in paths] == [f"{first.saved_at[:10]}_{first.id[:8]}.md"]

    def test_export_all_skips_corrupt_metadata(self, vault_dir, make_record, tmp_path):
        first = make_record()
        second = make_record()
        (vault_dir / "projects" / "home-user-app" / second.metadata_file).write_bytes(b"\xff\xfe")

        paths = operations.export_conversations(vault_dir, "all", fmt="json", output_dir=tmp_path / "out")
        assert [p.name for p in paths] == [f"{first.saved_at[:10]}_{first.id[:8]}.json"]

        with pytest.raises(CorruptRecord):
            operations.export_conversations(vault_dir, second.id, fmt="json", output_dir=tmp_path / "out")

    def test_export_bad_format(self, vault_dir):
        with pytest.raises(InvalidRequest):
            operations.export_conversations(vault_dir, "all", fmt="html")

    def test_rebuild_index(self, vault_dir, make_record):
        record = make_record()
        (vault_dir / "index.json").write_text('{"version": 1, "entries": []}', encoding="utf-8")
        assert [e.id for e in operations.rebuild_index(vault_dir).entries] == [record.id]
