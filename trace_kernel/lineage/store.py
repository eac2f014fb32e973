"""
Decision Ledger Store: append-only, hash-chained record of approved changes.

Behavioral Contract:
- Append-only. No entry is ever modified or deleted.
- Each entry is chained to the current tip (compare-and-append): an append
  against a stale prev_hash is rejected with ChainConflict, never overwritten.
- Appends are serialized; the store is the single writer of its chain.
- Queryable by commit id, action type, approver and matched rule.
"""

import json
import logging
import sqlite3
import threading
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional, Sequence, Union

from trace_kernel.errors import ChainConflict, InvalidArgument
from trace_kernel.lineage.chain import (
    GENESIS_PREV_HASH,
    compute_entry_hash,
    create_entry,
    export_signed,
    parse_entry,
    parse_export,
    verify_chain,
)
from trace_kernel.models.ledger import (
    ChainVerification,
    DecisionLedgerEntry,
    ExportMetadata,
    LedgerEntryDraft,
)

logger = logging.getLogger(__name__)


class LedgerStore:
    """
    Append-only decision ledger.
    Prototype: SQLite. Persistence beyond that belongs to the host application.
    """

    def __init__(self, db_path: str = ":memory:", signer_fingerprint: str = "unsigned"):
        self.db_path = db_path
        self.signer_fingerprint = signer_fingerprint
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        """Create the ledger table if it doesn't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS ledger (
                commit_id TEXT PRIMARY KEY,
                action_type TEXT NOT NULL,
                approver TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                prev_hash TEXT NOT NULL,
                hash TEXT NOT NULL,
                entry_json TEXT NOT NULL,
                created_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_ledger_action_type ON ledger(action_type)
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_ledger_approver ON ledger(approver)
        """)
        self._conn.commit()

    def tip(self) -> str:
        """Hash of the most recent entry, or the genesis sentinel."""
        row = self._conn.execute(
            "SELECT hash FROM ledger ORDER BY rowid DESC LIMIT 1"
        ).fetchone()
        return row["hash"] if row else GENESIS_PREV_HASH

    def append(
        self,
        draft: Union[LedgerEntryDraft, Mapping[str, Any]],
        expected_prev_hash: Optional[str] = None,
        signer_fingerprint: Optional[str] = None,
    ) -> DecisionLedgerEntry:
        """
        Chain a draft onto the current tip and store it.

        If expected_prev_hash is given it must still be the tip; otherwise
        ChainConflict is raised carrying the current tip for a retry.
        """
        with self._lock:
            tip = self.tip()
            if expected_prev_hash is not None and expected_prev_hash != tip:
                logger.warning(
                    "Ledger append conflict: expected tip %s, current tip %s",
                    expected_prev_hash[:12], tip[:12],
                )
                raise ChainConflict(
                    "Ledger tip moved since the entry was prepared",
                    current_tip=tip,
                    supplied_prev_hash=expected_prev_hash,
                )
            entry = create_entry(
                draft, tip, signer_fingerprint or self.signer_fingerprint
            )
            self._insert([entry])
        logger.info(
            "Appended ledger entry %s (%s by %s)",
            entry.commit_id, entry.action_type, entry.approver,
        )
        return entry

    def append_entry(self, entry: DecisionLedgerEntry) -> DecisionLedgerEntry:
        """Store an entry chained elsewhere, if it extends the current tip and verifies."""
        with self._lock:
            tip = self.tip()
            if entry.prev_hash != tip:
                logger.warning(
                    "Ledger append conflict for %s: prev_hash %s, current tip %s",
                    entry.commit_id, entry.prev_hash[:12], tip[:12],
                )
                raise ChainConflict(
                    f"Entry {entry.commit_id} does not extend the current tip",
                    current_tip=tip,
                    supplied_prev_hash=entry.prev_hash,
                )
            if compute_entry_hash(entry, entry.prev_hash) != entry.hash:
                raise InvalidArgument(f"Entry {entry.commit_id} hash does not match its content")
            self._insert([entry])
        logger.info("Appended pre-built ledger entry %s", entry.commit_id)
        return entry

    def _insert(self, entries: Sequence[DecisionLedgerEntry]) -> None:
        """Insert entries in one transaction: all of them or none."""
        entry = None
        try:
            with self._conn:
                for entry in entries:
                    self._conn.execute(
                        """
                        INSERT INTO ledger (
                            commit_id, action_type, approver, timestamp,
                            prev_hash, hash, entry_json
                        ) VALUES (?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            entry.commit_id,
                            entry.action_type,
                            entry.approver,
                            entry.timestamp.isoformat(),
                            entry.prev_hash,
                            entry.hash,
                            entry.model_dump_json(by_alias=True),
                        ),
                    )
        except sqlite3.IntegrityError as e:
            raise InvalidArgument(f"Duplicate commit id: {entry.commit_id}") from e

    def _deserialize(self, row: sqlite3.Row) -> DecisionLedgerEntry:
        return DecisionLedgerEntry.model_validate_json(row["entry_json"])

    def get_by_commit_id(self, commit_id: str) -> Optional[DecisionLedgerEntry]:
        """Get a specific entry by commit id."""
        row = self._conn.execute(
            "SELECT entry_json FROM ledger WHERE commit_id = ?", (commit_id,)
        ).fetchone()
        return self._deserialize(row) if row else None

    def entries(self) -> List[DecisionLedgerEntry]:
        """The whole chain, in append order."""
        rows = self._conn.execute(
            "SELECT entry_json FROM ledger ORDER BY rowid"
        ).fetchall()
        return [self._deserialize(r) for r in rows]

    def query_by_action_type(self, action_type: str) -> List[DecisionLedgerEntry]:
        rows = self._conn.execute(
            "SELECT entry_json FROM ledger WHERE action_type = ? ORDER BY rowid",
            (action_type,),
        ).fetchall()
        return [self._deserialize(r) for r in rows]

    def query_by_approver(self, approver: str) -> List[DecisionLedgerEntry]:
        rows = self._conn.execute(
            "SELECT entry_json FROM ledger WHERE approver = ? ORDER BY rowid",
            (approver,),
        ).fetchall()
        return [self._deserialize(r) for r in rows]

    def query_by_rule(self, rule_id: str) -> List[DecisionLedgerEntry]:
        """All entries whose evaluation matched a given guardrail rule."""
        return [e for e in self.entries() if rule_id in (e.rules_matched or [])]

    def query_recent(self, limit: int = 50) -> List[DecisionLedgerEntry]:
        """Get the most recent entries, oldest first."""
        rows = self._conn.execute(
            "SELECT entry_json FROM ledger ORDER BY rowid DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [self._deserialize(r) for r in reversed(rows)]

    def verify(self) -> ChainVerification:
        """Verify the stored chain. Corrupted rows are reported, not raised."""
        rows = self._conn.execute(
            "SELECT entry_json FROM ledger ORDER BY rowid"
        ).fetchall()
        raw = []
        for row in rows:
            try:
                raw.append(json.loads(row["entry_json"]))
            except json.JSONDecodeError:
                raw.append(row["entry_json"])
        return verify_chain(raw)

    def export(self, project_name: str, exported_by: str) -> str:
        """Export the chain as a re-verifiable JSON bundle."""
        metadata = ExportMetadata(
            project_name=project_name,
            exported_at=datetime.now(timezone.utc),
            exported_by=exported_by,
        )
        return export_signed(self.entries(), metadata)

    def import_export(self, text: str) -> int:
        """
        Load an exported bundle into an empty store.

        The bundle must verify; returns the number of entries loaded. The
        import is atomic: on any failure the store stays empty.
        """
        bundle = parse_export(text)
        result = verify_chain(bundle.entries)
        if not result.valid:
            raise InvalidArgument(
                f"Refusing to import a broken chain (entry {result.broken_at}): {result.error}"
            )
        entries = [parse_entry(raw) for raw in bundle.entries]
        seen = set()
        for entry in entries:
            if entry.commit_id in seen:
                raise InvalidArgument(f"Duplicate commit id in export: {entry.commit_id}")
            seen.add(entry.commit_id)

        with self._lock:
            if self.count():
                raise InvalidArgument("Ledger import requires an empty store")
            self._insert(entries)
        logger.info(
            "Imported %d ledger entries exported by %s",
            len(bundle.entries), bundle.metadata.exported_by,
        )
        return len(bundle.entries)

    def count(self) -> int:
        """Total number of ledger entries."""
        row = self._conn.execute("SELECT COUNT(*) as cnt FROM ledger").fetchone()
        return row["cnt"]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
