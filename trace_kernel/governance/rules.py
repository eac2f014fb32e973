"""
Guardrail rule tables.

STRICT_RULES is the canonical table: reversed traceability edges are
forbidden and need two approvers in power mode. LENIENT_RULES downgrades the
same patterns to warnings with a single approver. The engine is entirely
table-driven, so choosing a table is the only strictness switch.
"""

from typing import Tuple

from trace_kernel.errors import InvalidArgument
from trace_kernel.models.graph import NodeType
from trace_kernel.models.guardrail import (
    WILDCARD,
    ApprovalRequirement,
    GuardrailRule,
    GuardrailVerdict,
    RulePattern,
)

COLOR_ALLOWED = "#3B82F6"
COLOR_WARNING = "#EAB308"
COLOR_FORBIDDEN = "#EF4444"

VERDICT_COLORS = {
    GuardrailVerdict.ALLOWED: COLOR_ALLOWED,
    GuardrailVerdict.WARNING: COLOR_WARNING,
    GuardrailVerdict.FORBIDDEN: COLOR_FORBIDDEN,
}

FALLBACK_RULE_ID = "R000"

_ALLOW_ONE = ApprovalRequirement(approver_count=1, reason_required=False)
_WARN_ONE = ApprovalRequirement(approver_count=1, reason_required=True)
_FORBID_TWO = ApprovalRequirement(approver_count=2, reason_required=True, power_mode_only=True)


def _rule(rule_id, name, source, target, verdict, requirement, rationale, references=()):
    return GuardrailRule(
        rule_id=rule_id,
        name=name,
        pattern=RulePattern(source_type=source, target_type=target),
        verdict=verdict,
        edge_color=VERDICT_COLORS[verdict],
        approval_requirement=requirement,
        rationale=rationale,
        references=list(references),
    )


_FORWARD_RULES = (
    _rule(
        "R001", "Requirement to feature is allowed",
        NodeType.REQUIREMENT, NodeType.FEATURE,
        GuardrailVerdict.ALLOWED, _ALLOW_ONE,
        "Standard traceability pattern per ISO/IEC/IEEE 29148.",
        ["ISO/IEC/IEEE 29148:2018 Section 5.2.6"],
    ),
    _rule(
        "R002", "Test to feature is allowed",
        NodeType.TEST, NodeType.FEATURE,
        GuardrailVerdict.ALLOWED, _ALLOW_ONE,
        "Standard pattern establishing quality assurance for a feature.",
    ),
    _rule(
        "R003", "Test to requirement is allowed",
        NodeType.TEST, NodeType.REQUIREMENT,
        GuardrailVerdict.ALLOWED, _ALLOW_ONE,
        "Verifies the acceptance criteria (Given-When-Then) of a requirement.",
    ),
    _rule(
        "R004", "Requirement to test raises a warning",
        NodeType.REQUIREMENT, NodeType.TEST,
        GuardrailVerdict.WARNING, _WARN_ONE,
        "Test to requirement is the usual direction, but a reference from a "
        "requirement to its test is also valid.",
    ),
)

STRICT_RULES: Tuple[GuardrailRule, ...] = _FORWARD_RULES + (
    _rule(
        "R005", "Feature to requirement is forbidden",
        NodeType.FEATURE, NodeType.REQUIREMENT,
        GuardrailVerdict.FORBIDDEN, _FORBID_TWO,
        "Reversed connections invert traceability and are forbidden in principle.",
    ),
    _rule(
        "R006", "Feature to test is forbidden",
        NodeType.FEATURE, NodeType.TEST,
        GuardrailVerdict.FORBIDDEN, _FORBID_TWO,
        "A test depending on a feature is not recommended.",
    ),
)

LENIENT_RULES: Tuple[GuardrailRule, ...] = _FORWARD_RULES + (
    _rule(
        "R005", "Feature to requirement raises a warning",
        NodeType.FEATURE, NodeType.REQUIREMENT,
        GuardrailVerdict.WARNING, _WARN_ONE,
        "Reversed connection; normalize to requirement -> feature or record a reason.",
    ),
    _rule(
        "R006", "Feature to test raises a warning",
        NodeType.FEATURE, NodeType.TEST,
        GuardrailVerdict.WARNING, _WARN_ONE,
        "Reversed connection; normalize to test -> feature or record a reason.",
    ),
)

_TABLES = {
    "strict": STRICT_RULES,
    "lenient": LENIENT_RULES,
}


def rule_table(name: str) -> Tuple[GuardrailRule, ...]:
    """Resolve a named rule table ("strict" or "lenient")."""
    try:
        return _TABLES[name]
    except KeyError:
        raise InvalidArgument(
            f"Unknown rule table '{name}'. Expected one of {sorted(_TABLES)}."
        ) from None


def fallback_rule(verdict: GuardrailVerdict = GuardrailVerdict.ALLOWED) -> GuardrailRule:
    """
    The rule reported when nothing in the table matches.

    Its approval requirement scales with the chosen verdict, so a deny-by-default
    deployment asks for the same sign-off as an explicit forbidden rule.
    """
    requirement = {
        GuardrailVerdict.ALLOWED: _ALLOW_ONE,
        GuardrailVerdict.WARNING: _WARN_ONE,
        GuardrailVerdict.FORBIDDEN: _FORBID_TWO,
    }[verdict]
    return GuardrailRule(
        rule_id=FALLBACK_RULE_ID,
        name=f"Default {verdict.value}",
        pattern=RulePattern(source_type=WILDCARD, target_type=WILDCARD),
        verdict=verdict,
        edge_color=VERDICT_COLORS[verdict],
        approval_requirement=requirement,
        rationale=f"Unmatched patterns are {verdict.value} by default.",
    )
