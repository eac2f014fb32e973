"""
Guardrail Engine: classifies proposed graph edges.

Evaluates a proposed (source type, target type) connection against an
immutable rule table. Returns allowed/warning/forbidden with a rendered
explanation and the approval requirements of the matched rule.

Behavioral Contract:
- Pure and total: the same input always yields the same evaluation
- Exact patterns take precedence over wildcard patterns; table order breaks ties
- Never mutates the rule table or the caller's data
- Every accepted edge requires at least one human approver
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from trace_kernel.errors import InvalidArgument
from trace_kernel.governance.rules import FALLBACK_RULE_ID, STRICT_RULES, fallback_rule
from trace_kernel.models.graph import EdgeType, NodeType
from trace_kernel.models.guardrail import (
    GuardrailEvaluation,
    GuardrailRule,
    GuardrailVerdict,
    NormalizationSuggestion,
)

logger = logging.getLogger(__name__)

# Reversed traceability pairs and the reason offered for swapping them.
REVERSED_PAIRS = {
    (NodeType.FEATURE, NodeType.REQUIREMENT),
    (NodeType.FEATURE, NodeType.TEST),
}
NORMALIZATION_REASON = (
    "Reversed traceability direction. Swap source and target to restore the canonical flow."
)

_DEFAULT_EDGE_TYPES = {
    (NodeType.REQUIREMENT, NodeType.FEATURE): EdgeType.IMPLEMENTS,
    (NodeType.TEST, NodeType.FEATURE): EdgeType.TESTS,
    (NodeType.TEST, NodeType.REQUIREMENT): EdgeType.VERIFIES,
}


def _coerce_node_type(value, role: str) -> NodeType:
    try:
        return NodeType(value)
    except ValueError:
        raise InvalidArgument(f"Unknown {role} node type: {value!r}") from None


def infer_edge_type(source_type: NodeType, target_type: NodeType) -> EdgeType:
    """Semantic edge type for a pair; reversed or novel pairs default to implements."""
    return _DEFAULT_EDGE_TYPES.get((source_type, target_type), EdgeType.IMPLEMENTS)


def _render_message(
    verdict: GuardrailVerdict,
    source_label: str,
    target_label: str,
    source_type: NodeType,
    target_type: NodeType,
    rule: GuardrailRule,
) -> str:
    """Explain a verdict. Always names both endpoint labels verbatim."""
    pair = (source_type, target_type)
    connection = f"{source_label} -> {target_label}"

    if verdict == GuardrailVerdict.ALLOWED:
        if pair == (NodeType.REQUIREMENT, NodeType.FEATURE):
            return (
                f"Valid connection: requirement '{source_label}' is implemented by "
                f"feature '{target_label}'. Traceability established."
            )
        if pair == (NodeType.TEST, NodeType.FEATURE):
            return (
                f"Valid connection: test '{source_label}' verifies feature "
                f"'{target_label}'. Quality assurance strengthened."
            )
        if pair == (NodeType.TEST, NodeType.REQUIREMENT):
            return (
                f"Valid connection: test '{source_label}' verifies requirement "
                f"'{target_label}'. Acceptance criteria clarified."
            )
        return f"New connection: {connection}"

    if verdict == GuardrailVerdict.WARNING:
        if pair == (NodeType.REQUIREMENT, NodeType.TEST):
            return (
                f"Warning: test -> requirement is the usual direction, but a reference "
                f"from requirement '{source_label}' to test '{target_label}' is also "
                f"valid. Record an approval reason."
            )
        return f"Warning: {connection}. {rule.rationale or 'Record an approval reason.'}"

    approvers = rule.approval_requirement.approver_count
    if pair == (NodeType.FEATURE, NodeType.REQUIREMENT):
        return (
            f"Forbidden: feature '{source_label}' -> requirement '{target_label}' is a "
            f"reversed connection. The usual direction is requirement -> feature. "
            f"Requires power mode and {approvers} approver(s)."
        )
    if pair == (NodeType.FEATURE, NodeType.TEST):
        return (
            f"Forbidden: feature '{source_label}' -> test '{target_label}' is a "
            f"reversed connection. A test depending on a feature is not recommended. "
            f"Requires power mode and {approvers} approver(s)."
        )
    return f"Forbidden: {connection}. {rule.rationale or 'Power mode is required.'}"


class GuardrailEngine:
    """
    Table-driven connection policy.

    Construct one per rule table; strict and lenient engines can coexist.
    """

    def __init__(
        self,
        rules: Iterable[GuardrailRule] = STRICT_RULES,
        unmatched_verdict: GuardrailVerdict = GuardrailVerdict.ALLOWED,
    ):
        self._rules: Tuple[GuardrailRule, ...] = tuple(rules)
        self._fallback = fallback_rule(GuardrailVerdict(unmatched_verdict))
        self._exact: Dict[Tuple[NodeType, NodeType], GuardrailRule] = {}
        self._wildcards: List[GuardrailRule] = []
        self._index_rules()

    def _index_rules(self) -> None:
        """Validate the table and build the exact-pair index."""
        seen = set()
        for rule in self._rules:
            if rule.rule_id == FALLBACK_RULE_ID:
                raise InvalidArgument(f"Rule id {FALLBACK_RULE_ID} is reserved for the fallback rule")
            if rule.rule_id in seen:
                raise InvalidArgument(f"Duplicate rule id: {rule.rule_id}")
            seen.add(rule.rule_id)

            if rule.pattern.is_exact:
                key = (rule.pattern.source_type, rule.pattern.target_type)
                # First occurrence wins, matching a linear first-match scan
                self._exact.setdefault(key, rule)
            else:
                self._wildcards.append(rule)

    @property
    def fallback(self) -> GuardrailRule:
        return self._fallback

    def get_rules(self) -> List[GuardrailRule]:
        """All rules in table order."""
        return list(self._rules)

    def get_rule(self, rule_id: str) -> Optional[GuardrailRule]:
        """Look up a rule by id. The fallback rule is reachable as R000."""
        if rule_id == FALLBACK_RULE_ID:
            return self._fallback
        return next((r for r in self._rules if r.rule_id == rule_id), None)

    def match(self, source_type: NodeType, target_type: NodeType) -> GuardrailRule:
        """Find the governing rule for a pair, falling back to R000."""
        rule = self._exact.get((source_type, target_type))
        if rule is not None:
            return rule
        for rule in self._wildcards:
            if rule.pattern.matches(source_type, target_type):
                return rule
        return self._fallback

    def evaluate(
        self,
        source_type,
        target_type,
        source_label: str,
        target_label: str,
        source_id: Optional[str] = None,
        target_id: Optional[str] = None,
    ) -> GuardrailEvaluation:
        """
        Evaluate a proposed edge.

        Node types may be NodeType members or their string values; anything
        else raises InvalidArgument.
        """
        src = _coerce_node_type(source_type, "source")
        tgt = _coerce_node_type(target_type, "target")

        rule = self.match(src, tgt)
        logger.debug(
            "Edge %s(%s) -> %s(%s) matched %s (%s)",
            source_label, src.value, target_label, tgt.value, rule.rule_id, rule.verdict.value,
        )

        normalization = None
        if (src, tgt) in REVERSED_PAIRS:
            normalization = NormalizationSuggestion(
                can_normalize=True,
                normalized_source=target_id if target_id is not None else target_label,
                normalized_target=source_id if source_id is not None else source_label,
                reason=NORMALIZATION_REASON,
            )

        return GuardrailEvaluation(
            verdict=rule.verdict,
            matched_rule=rule,
            edge_color=rule.edge_color,
            message=_render_message(rule.verdict, source_label, target_label, src, tgt, rule),
            approval_required=True,
            reason_required=rule.approval_requirement.reason_required,
            normalization=normalization,
        )
