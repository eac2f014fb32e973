"""
Approval Workflow: from proposed edge to ledger entry.

    propose_edge → GuardrailEngine.evaluate → PENDING → approve | reject
                                                   approve → ledger append → graph edge

Behavioral Contract:
- No proposal without a purpose; no approval without purpose alignment
- Power-mode-only rules cannot be proposed in safe mode
- Every approval needs a rationale of minimum length and enough distinct approvers
- The ledger entry is appended before the graph changes. Approvers may pin
  the ledger tip they reviewed; if it moved, the chain conflict leaves the
  graph untouched and the proposal pending
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import uuid4

from trace_kernel.errors import ForbiddenConnection, InvalidArgument, NotFound
from trace_kernel.governance.engine import GuardrailEngine, infer_edge_type
from trace_kernel.graph.history import CommitHistory
from trace_kernel.graph.store import GraphStore
from trace_kernel.lineage.store import LedgerStore
from trace_kernel.models.approval import ApprovalData, ApprovalStatus, PendingApproval
from trace_kernel.models.config import KernelConfig
from trace_kernel.models.graph import EdgeType, KnowledgeEdge
from trace_kernel.models.ledger import Commit, DecisionLedgerEntry, LedgerEntryDraft
from trace_kernel.models.purpose import Purpose, PurposeMode

logger = logging.getLogger(__name__)

ADD_EDGE = "add_edge"


class ApprovalWorkflow:
    """Holds pending proposals and turns approvals into ledger entries."""

    def __init__(
        self,
        engine: GuardrailEngine,
        ledger_store: LedgerStore,
        graph_store: GraphStore,
        config: Optional[KernelConfig] = None,
        history: Optional[CommitHistory] = None,
    ):
        self.engine = engine
        self.ledger = ledger_store
        self.graph = graph_store
        self.config = config or KernelConfig()
        self.history = history or CommitHistory()

        self._approvals: Dict[str, PendingApproval] = {}
        self._uncommitted: List[DecisionLedgerEntry] = []

    def pending(self) -> List[PendingApproval]:
        """All proposals awaiting a decision."""
        return [a for a in self._approvals.values() if a.status == ApprovalStatus.PENDING]

    def get(self, approval_id: str) -> Optional[PendingApproval]:
        return self._approvals.get(approval_id)

    def _require_pending(self, approval_id: str) -> PendingApproval:
        approval = self._approvals.get(approval_id)
        if not approval or approval.status != ApprovalStatus.PENDING:
            raise NotFound(f"No pending approval {approval_id}")
        return approval

    def propose_edge(
        self,
        source_id: str,
        target_id: str,
        purpose: Purpose,
        edge_type: Optional[EdgeType] = None,
    ) -> PendingApproval:
        """Evaluate a proposed edge and queue it for approval."""
        if not purpose.is_set:
            raise InvalidArgument("Set a purpose before proposing changes")

        source = self.graph.get_node(source_id)
        target = self.graph.get_node(target_id)
        if not source or not target:
            missing = source_id if not source else target_id
            raise InvalidArgument(f"Unknown node: {missing}")

        evaluation = self.engine.evaluate(
            source.type, target.type, source.label, target.label,
            source_id=source.id, target_id=target.id,
        )

        requirement = evaluation.matched_rule.approval_requirement
        if requirement.power_mode_only and purpose.mode != PurposeMode.POWER:
            logger.warning(
                "Rejected proposal %s -> %s: %s requires power mode",
                source_id, target_id, evaluation.matched_rule.rule_id,
            )
            raise ForbiddenConnection(
                f"{evaluation.message} Switch to power mode to propose this connection.",
                evaluation=evaluation,
            )

        approval = PendingApproval(
            id=f"apr_{uuid4().hex[:12]}",
            source_id=source_id,
            target_id=target_id,
            edge_type=edge_type or infer_edge_type(source.type, target.type),
            purpose=purpose,
            evaluation=evaluation,
            created_at=datetime.now(timezone.utc),
        )
        self._approvals[approval.id] = approval
        logger.info(
            "Proposal %s: %s -> %s is %s under %s",
            approval.id, source_id, target_id,
            evaluation.verdict.value, evaluation.matched_rule.rule_id,
        )
        return approval

    def _check_approval(self, approval: PendingApproval, data: ApprovalData) -> None:
        if not data.purpose_alignment:
            raise InvalidArgument("Confirm that the change is aligned with the purpose")

        min_length = self.config.min_rationale_length
        if len(data.rationale.strip()) < min_length:
            raise InvalidArgument(f"Rationale must be at least {min_length} characters")

        required = approval.evaluation.matched_rule.approval_requirement.approver_count
        approvers = {a.strip() for a in data.approvers if a.strip()}
        if len(approvers) < required:
            raise InvalidArgument(
                f"Rule {approval.evaluation.matched_rule.rule_id} requires "
                f"{required} distinct approver(s), got {len(approvers)}"
            )

    def approve(self, approval_id: str, data: ApprovalData) -> DecisionLedgerEntry:
        """Sign off a pending proposal, record it in the ledger, then apply it."""
        approval = self._require_pending(approval_id)
        self._check_approval(approval, data)

        evaluation = approval.evaluation
        rule = evaluation.matched_rule
        source_id, target_id, edge_type = approval.source_id, approval.target_id, approval.edge_type
        normalized = False
        if data.apply_normalization and evaluation.normalization and evaluation.normalization.can_normalize:
            source_id, target_id = target_id, source_id
            normalized = True

        source = self.graph.get_node(source_id)
        target = self.graph.get_node(target_id)
        if not source or not target:
            raise InvalidArgument(f"Node removed since proposal {approval_id} was made")
        if normalized:
            edge_type = infer_edge_type(source.type, target.type)

        impact = (
            f"Adds {edge_type.value} edge {source_id} -> {target_id}; "
            f"guardrail {evaluation.verdict.value} under {rule.rule_id}"
        )
        if normalized:
            impact += f"; normalized from {approval.source_id} -> {approval.target_id}"

        evidence = [f"rationale_type:{data.rationale_type.value}"]
        if data.reference:
            evidence.append(data.reference)

        draft = LedgerEntryDraft(
            commit_id=f"dl_{uuid4().hex[:12]}",
            timestamp=datetime.now(timezone.utc),
            purpose=approval.purpose.goal,
            action_type=ADD_EDGE,
            alternatives=data.alternatives,
            selected_option=f"{source.label} -> {target.label} ({edge_type.value})",
            rationale=data.rationale.strip(),
            approver=", ".join(dict.fromkeys(a.strip() for a in data.approvers if a.strip())),
            impact_summary=impact,
            rollback_condition=data.rollback_condition,
            confidence=data.confidence,
            rules_matched=[rule.rule_id],
            evidence=evidence,
        )

        entry = self.ledger.append(draft, expected_prev_hash=data.expected_prev_hash)

        self.graph.add_edge(KnowledgeEdge(
            id=f"edge_{approval.id}",
            source=source_id,
            target=target_id,
            type=edge_type,
        ))
        self._uncommitted.append(entry)

        approval.status = ApprovalStatus.APPROVED
        approval.resolved_at = datetime.now(timezone.utc)
        approval.ledger_commit_id = entry.commit_id
        logger.info("Approved %s as ledger entry %s", approval.id, entry.commit_id)
        return entry

    def reject(self, approval_id: str, reason: str) -> PendingApproval:
        """Drop a pending proposal. Nothing is written to the ledger."""
        approval = self._require_pending(approval_id)
        approval.status = ApprovalStatus.REJECTED
        approval.rejection_reason = reason
        approval.resolved_at = datetime.now(timezone.utc)
        logger.info("Rejected %s: %s", approval.id, reason)
        return approval

    def commit(self, message: str, author: str) -> Commit:
        """Bundle the current graph with the entries approved since the last commit."""
        commit = self.history.create_commit(
            message=message,
            author=author,
            graph_snapshot=self.graph.snapshot(),
            entries=self._uncommitted,
        )
        self._uncommitted = []
        return commit

    def rollback(self, commit_id: str) -> Commit:
        """Restore the graph of a commit. The ledger is append-only and stays as is."""
        commit = self.history.get(commit_id)
        if not commit:
            raise NotFound(f"Commit {commit_id} not found")
        self.graph.restore(commit.graph_snapshot)
        logger.info("Rolled graph back to commit %s", commit_id)
        return commit
