"""Approval requests: proposed edges awaiting a human decision."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from trace_kernel.models.graph import EdgeType
from trace_kernel.models.guardrail import GuardrailEvaluation
from trace_kernel.models.ledger import Alternative
from trace_kernel.models.purpose import Purpose


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RationaleType(str, Enum):
    STANDARD_COMPLIANCE = "standard_compliance"
    MINIMAL_IMPACT = "minimal_impact"
    SCHEDULE_PRIORITY = "schedule_priority"
    QUALITY_PRIORITY = "quality_priority"
    SECURITY_PRIORITY = "security_priority"
    OTHER = "other"


class PendingApproval(BaseModel):
    """A proposed edge, its evaluation, and where it stands."""

    id: str
    source_id: str
    target_id: str
    edge_type: EdgeType
    purpose: Purpose
    evaluation: GuardrailEvaluation
    status: ApprovalStatus = ApprovalStatus.PENDING
    created_at: datetime
    resolved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    ledger_commit_id: Optional[str] = None


class ApprovalData(BaseModel):
    """What the approving humans sign off with."""

    approvers: List[str] = Field(min_length=1)
    rationale: str
    rationale_type: RationaleType = RationaleType.STANDARD_COMPLIANCE
    reference: Optional[str] = None         # Issue, standard or design document
    rollback_condition: Optional[str] = None
    purpose_alignment: bool = False         # Approver confirms the change serves the purpose
    apply_normalization: bool = False
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    alternatives: Optional[List[Alternative]] = None
    # Ledger tip the approvers reviewed; approval fails with a conflict if it moved
    expected_prev_hash: Optional[str] = None
