"""Guardrail rules and evaluations: the connection policy vocabulary."""

from enum import Enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict

from trace_kernel.models.graph import EdgeType, NodeType

WILDCARD = "*"


class GuardrailVerdict(str, Enum):
    ALLOWED = "allowed"
    WARNING = "warning"
    FORBIDDEN = "forbidden"


class RulePattern(BaseModel):
    """(source type, target type) pair a rule applies to. `*` matches any type."""

    model_config = ConfigDict(frozen=True)

    source_type: Union[NodeType, Literal["*"]]
    target_type: Union[NodeType, Literal["*"]]
    edge_type: Optional[EdgeType] = None

    @property
    def is_exact(self) -> bool:
        return self.source_type != WILDCARD and self.target_type != WILDCARD

    def matches(self, source_type: NodeType, target_type: NodeType) -> bool:
        return (
            (self.source_type == WILDCARD or self.source_type == source_type)
            and (self.target_type == WILDCARD or self.target_type == target_type)
        )


class ApprovalRequirement(BaseModel):
    model_config = ConfigDict(frozen=True)

    approver_count: Literal[1, 2] = 1
    reason_required: bool = False
    power_mode_only: bool = False


class GuardrailRule(BaseModel):
    """
    One entry of a rule table.

    Tables are ordered; the engine gives exact patterns precedence over
    wildcard patterns and otherwise keeps table order.
    """

    model_config = ConfigDict(frozen=True)

    rule_id: str                            # e.g., "R001"
    name: str
    pattern: RulePattern
    verdict: GuardrailVerdict
    edge_color: str                         # Display hint, e.g. "#3B82F6"
    approval_requirement: ApprovalRequirement = ApprovalRequirement()
    rationale: str
    references: List[str] = []


class NormalizationSuggestion(BaseModel):
    """Advisory swap for a structurally reversed edge."""

    can_normalize: bool = True
    normalized_source: str
    normalized_target: str
    reason: str


class GuardrailEvaluation(BaseModel):
    """Transient result of evaluating one proposed edge. Never persisted."""

    verdict: GuardrailVerdict
    matched_rule: GuardrailRule
    edge_color: str
    message: str
    approval_required: bool = True
    reason_required: bool
    normalization: Optional[NormalizationSuggestion] = None
