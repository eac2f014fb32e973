"""Tests for the Decision Ledger Store."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from trace_kernel.errors import ChainConflict, InvalidArgument
from trace_kernel.lineage.chain import GENESIS_PREV_HASH, create_entry, export_signed
from trace_kernel.lineage.store import LedgerStore
from trace_kernel.models.ledger import LedgerEntryDraft


def _make_draft(
    i: int = 0,
    action_type: str = "add_edge",
    approver: str = "alice",
    rules: list = None,
) -> LedgerEntryDraft:
    return LedgerEntryDraft(
        commit_id=f"dl_{i}",
        timestamp=datetime(2026, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=i),
        purpose="Reduce cart abandonment by 15%",
        action_type=action_type,
        selected_option=f"option {i}",
        rationale=f"Rationale {i} long enough",
        approver=approver,
        impact_summary=f"impact {i}",
        rules_matched=rules or ["R001"],
    )


class TestLedgerStore:
    def setup_method(self):
        self.store = LedgerStore(db_path=":memory:", signer_fingerprint="fp:test")

    def teardown_method(self):
        self.store.close()

    def test_empty_store(self):
        assert self.store.count() == 0
        assert self.store.tip() == GENESIS_PREV_HASH
        assert self.store.verify().valid is True

    def test_append_and_retrieve(self):
        entry = self.store.append(_make_draft())
        assert entry.prev_hash == GENESIS_PREV_HASH
        assert entry.signature.public_key_fingerprint == "fp:test"
        assert self.store.tip() == entry.hash

        retrieved = self.store.get_by_commit_id("dl_0")
        assert retrieved == entry
        assert self.store.get_by_commit_id("missing") is None

    def test_signer_override(self):
        entry = self.store.append(_make_draft(), signer_fingerprint="fp:hsm")
        assert entry.signature.public_key_fingerprint == "fp:hsm"

    def test_hash_chaining(self):
        entries = [self.store.append(_make_draft(i)) for i in range(5)]
        for i in range(1, len(entries)):
            assert entries[i].prev_hash == entries[i - 1].hash

    def test_chain_integrity_100_entries(self):
        for i in range(110):
            self.store.append(_make_draft(i))
        assert self.store.count() == 110
        assert self.store.verify().valid is True

    def test_stale_prev_hash_conflicts(self):
        first = self.store.append(_make_draft(0))
        with pytest.raises(ChainConflict) as exc_info:
            self.store.append(_make_draft(1), expected_prev_hash=GENESIS_PREV_HASH)
        assert exc_info.value.current_tip == first.hash
        assert exc_info.value.retryable is True
        assert self.store.count() == 1

    def test_racing_writers_one_wins(self):
        observed_tip = self.store.tip()
        self.store.append(_make_draft(0), expected_prev_hash=observed_tip)
        with pytest.raises(ChainConflict) as exc_info:
            self.store.append(_make_draft(1), expected_prev_hash=observed_tip)

        # Retry against the reported tip
        retried = self.store.append(_make_draft(1), expected_prev_hash=exc_info.value.current_tip)
        assert retried.prev_hash == exc_info.value.current_tip
        assert self.store.count() == 2
        assert self.store.verify().valid is True

    def test_duplicate_commit_id(self):
        self.store.append(_make_draft(0))
        with pytest.raises(InvalidArgument):
            self.store.append(_make_draft(0))
        assert self.store.count() == 1

    def test_malformed_draft(self):
        with pytest.raises(InvalidArgument):
            self.store.append({"commit_id": "dl_x"})

    def test_append_prebuilt_entry(self):
        entry = create_entry(_make_draft(0), GENESIS_PREV_HASH, "fp:external")
        self.store.append_entry(entry)
        assert self.store.tip() == entry.hash

    def test_append_prebuilt_entry_must_extend_tip(self):
        self.store.append(_make_draft(0))
        stale = create_entry(_make_draft(1), GENESIS_PREV_HASH, "fp")
        with pytest.raises(ChainConflict):
            self.store.append_entry(stale)

    def test_append_prebuilt_entry_must_verify(self):
        entry = create_entry(_make_draft(0), GENESIS_PREV_HASH, "fp")
        forged = entry.model_copy(update={"approver": "mallory"})
        with pytest.raises(InvalidArgument):
            self.store.append_entry(forged)
        assert self.store.count() == 0

    def test_queries(self):
        self.store.append(_make_draft(0, approver="alice", rules=["R001"]))
        self.store.append(_make_draft(1, approver="bob", rules=["R005"]))
        self.store.append(_make_draft(2, action_type="delete_edge", approver="alice"))

        assert len(self.store.query_by_approver("alice")) == 2
        assert len(self.store.query_by_action_type("delete_edge")) == 1
        assert [e.commit_id for e in self.store.query_by_rule("R005")] == ["dl_1"]

    def test_query_recent(self):
        for i in range(20):
            self.store.append(_make_draft(i))
        recent = self.store.query_recent(limit=5)
        assert [e.commit_id for e in recent] == [f"dl_{i}" for i in range(15, 20)]

    def test_verify_detects_tampered_row(self):
        for i in range(4):
            self.store.append(_make_draft(i))

        row = self.store._conn.execute(
            "SELECT entry_json FROM ledger WHERE commit_id = 'dl_2'"
        ).fetchone()
        data = json.loads(row["entry_json"])
        data["rationale"] = "Rewritten after the fact"
        self.store._conn.execute(
            "UPDATE ledger SET entry_json = ? WHERE commit_id = 'dl_2'",
            (json.dumps(data),),
        )

        result = self.store.verify()
        assert result.valid is False
        assert result.broken_at == 2

    def test_verify_reports_corrupted_row(self):
        self.store.append(_make_draft(0))
        self.store.append(_make_draft(1))
        self.store._conn.execute(
            "UPDATE ledger SET entry_json = '{truncated' WHERE commit_id = 'dl_0'"
        )
        result = self.store.verify()
        assert result.broken_at == 0
        assert result.violations[0].kind == "structure"


class TestExportImport:
    def setup_method(self):
        self.store = LedgerStore()
        for i in range(3):
            self.store.append(_make_draft(i))

    def test_round_trip(self):
        text = self.store.export("ecommerce-auth", "alice")
        fresh = LedgerStore()
        assert fresh.import_export(text) == 3
        assert fresh.tip() == self.store.tip()
        assert fresh.verify().valid is True
        assert fresh.entries() == self.store.entries()

    def test_import_requires_empty_store(self):
        text = self.store.export("p", "alice")
        with pytest.raises(InvalidArgument):
            self.store.import_export(text)

    def test_import_rejects_broken_chain(self):
        data = json.loads(self.store.export("p", "alice"))
        data["entries"][0]["approver"] = "mallory"
        fresh = LedgerStore()
        with pytest.raises(InvalidArgument):
            fresh.import_export(json.dumps(data))
        assert fresh.count() == 0

    def test_import_is_all_or_nothing(self):
        first = create_entry(_make_draft(1), GENESIS_PREV_HASH, "fp")
        reused_id = _make_draft(2).model_copy(update={"commit_id": "dl_1"})
        second = create_entry(reused_id, first.hash, "fp")
        text = export_signed([first, second], {
            "project_name": "p",
            "exported_at": datetime(2026, 1, 2, tzinfo=timezone.utc),
            "exported_by": "alice",
        })

        fresh = LedgerStore()
        with pytest.raises(InvalidArgument):
            fresh.import_export(text)
        assert fresh.count() == 0
        assert fresh.tip() == GENESIS_PREV_HASH

        # The store is still usable after the failed import
        assert fresh.import_export(self.store.export("p", "alice")) == 3

    def test_failed_insert_rolls_back_whole_batch(self):
        fresh = LedgerStore()
        first = create_entry(_make_draft(1), GENESIS_PREV_HASH, "fp")
        second = create_entry(_make_draft(1), first.hash, "fp")
        with pytest.raises(InvalidArgument):
            fresh._insert([first, second])
        assert fresh.count() == 0


class TestFileBackedStore:
    def test_tip_survives_reopen(self, tmp_path):
        db = str(tmp_path / "ledger.db")
        store = LedgerStore(db_path=db)
        last = [store.append(_make_draft(i)) for i in range(3)][-1]
        store.close()

        reopened = LedgerStore(db_path=db)
        assert reopened.tip() == last.hash
        assert reopened.count() == 3
        reopened.append(_make_draft(3), expected_prev_hash=last.hash)
        assert reopened.verify().valid is True
        reopened.close()
