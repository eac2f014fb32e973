"""Tests for core data models."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from trace_kernel.models import (
    ApprovalRequirement,
    DecisionLedgerEntry,
    GuardrailRule,
    GuardrailVerdict,
    KernelConfig,
    KnowledgeGraph,
    KnowledgeNode,
    LedgerEntryDraft,
    NodeType,
    Purpose,
    PurposeMode,
    RulePattern,
)
from trace_kernel.models.approval import ApprovalData

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


class TestRulePattern:
    def test_exact_pattern(self):
        pattern = RulePattern(source_type=NodeType.REQUIREMENT, target_type=NodeType.FEATURE)
        assert pattern.is_exact
        assert pattern.matches(NodeType.REQUIREMENT, NodeType.FEATURE)
        assert not pattern.matches(NodeType.FEATURE, NodeType.REQUIREMENT)

    def test_wildcard_pattern(self):
        pattern = RulePattern(source_type="*", target_type=NodeType.TEST)
        assert not pattern.is_exact
        assert pattern.matches(NodeType.FEATURE, NodeType.TEST)
        assert pattern.matches(NodeType.TEST, NodeType.TEST)
        assert not pattern.matches(NodeType.TEST, NodeType.FEATURE)

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            RulePattern(source_type="epic", target_type="*")


class TestGuardrailRule:
    def test_rules_are_immutable(self):
        rule = GuardrailRule(
            rule_id="R100",
            name="Custom",
            pattern=RulePattern(source_type="*", target_type="*"),
            verdict=GuardrailVerdict.WARNING,
            edge_color="#EAB308",
            rationale="Anything goes, with a reason",
        )
        with pytest.raises(ValidationError):
            rule.verdict = GuardrailVerdict.ALLOWED

    def test_approver_count_limited(self):
        assert ApprovalRequirement().approver_count == 1
        with pytest.raises(ValidationError):
            ApprovalRequirement(approver_count=3)


class TestPurpose:
    def test_defaults_to_safe_mode(self):
        purpose = Purpose(goal="Reduce cart abandonment by 15%")
        assert purpose.mode == PurposeMode.SAFE
        assert purpose.is_set

    def test_blank_goal_is_unset(self):
        assert not Purpose(goal="  ").is_set


class TestLedgerModels:
    def _draft(self) -> LedgerEntryDraft:
        return LedgerEntryDraft(
            commit_id="dl_1",
            timestamp=T0,
            purpose="Reduce cart abandonment by 15%",
            action_type="add_edge",
            selected_option="BR-001 -> Feature-001 (implements)",
            rationale="Standard traceability",
            approver="alice",
            impact_summary="Adds one edge",
        )

    def test_camel_case_wire_format(self):
        data = self._draft().model_dump(mode="json", by_alias=True)
        assert data["commitId"] == "dl_1"
        assert data["selectedOption"].startswith("BR-001")
        assert "commit_id" not in data

    def test_accepts_both_field_styles(self):
        draft = self._draft()
        snake = LedgerEntryDraft.model_validate(draft.model_dump())
        camel = LedgerEntryDraft.model_validate(draft.model_dump(by_alias=True))
        assert snake == camel == draft

    def test_confidence_bounds(self):
        data = self._draft().model_dump()
        data["confidence"] = -0.1
        with pytest.raises(ValidationError):
            LedgerEntryDraft.model_validate(data)

    def test_committed_entry_requires_chain_fields(self):
        with pytest.raises(ValidationError):
            DecisionLedgerEntry.model_validate(self._draft().model_dump())


class TestApprovalData:
    def test_requires_an_approver(self):
        with pytest.raises(ValidationError):
            ApprovalData(approvers=[], rationale="Standard traceability")

    def test_alignment_defaults_off(self):
        data = ApprovalData(approvers=["alice"], rationale="Standard traceability")
        assert data.purpose_alignment is False
        assert data.apply_normalization is False


class TestKernelConfig:
    def test_defaults(self):
        config = KernelConfig()
        assert config.rule_table == "strict"
        assert config.unmatched_verdict == GuardrailVerdict.ALLOWED
        assert config.min_rationale_length == 10
        assert config.ledger_db_path == ":memory:"

    def test_unknown_table_rejected(self):
        with pytest.raises(ValidationError):
            KernelConfig(rule_table="anything-goes")


class TestKnowledgeGraph:
    def test_empty_graph(self):
        graph = KnowledgeGraph(metadata={"project_name": "p", "last_updated": T0})
        assert graph.nodes == {}
        assert graph.edges == {}

    def test_node_round_trip(self):
        node = KnowledgeNode(id="req-001", type="requirement", label="BR-001")
        assert node.type == NodeType.REQUIREMENT
        assert KnowledgeNode.model_validate_json(node.model_dump_json()) == node
