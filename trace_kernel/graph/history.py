"""Commit History: graph snapshots bundled with the ledger entries behind them."""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence
from uuid import uuid4

from trace_kernel.models.graph import KnowledgeGraph
from trace_kernel.models.ledger import Commit, DecisionLedgerEntry

logger = logging.getLogger(__name__)


class CommitHistory:
    """Linear commit history. Each commit points at its parent."""

    def __init__(self):
        self._commits: List[Commit] = []
        self._by_id: Dict[str, Commit] = {}

    def create_commit(
        self,
        message: str,
        author: str,
        graph_snapshot: KnowledgeGraph,
        entries: Sequence[DecisionLedgerEntry] = (),
    ) -> Commit:
        parent = self.latest()
        commit = Commit(
            commit_id=f"c_{uuid4().hex[:12]}",
            timestamp=datetime.now(timezone.utc),
            message=message,
            author=author,
            graph_snapshot=graph_snapshot,
            decision_ledger_entries=list(entries),
            parent_commit_id=parent.commit_id if parent else None,
        )
        self._commits.append(commit)
        self._by_id[commit.commit_id] = commit
        logger.info(
            "Commit %s by %s bundles %d ledger entries",
            commit.commit_id, author, len(commit.decision_ledger_entries),
        )
        return commit

    def get(self, commit_id: str) -> Optional[Commit]:
        return self._by_id.get(commit_id)

    def latest(self) -> Optional[Commit]:
        return self._commits[-1] if self._commits else None

    def list_commits(self) -> List[Commit]:
        return list(self._commits)
