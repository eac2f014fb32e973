"""Trace Kernel data models."""

from trace_kernel.models.config import KernelConfig
from trace_kernel.models.graph import (
    EdgeType,
    GraphMetadata,
    KnowledgeEdge,
    KnowledgeGraph,
    KnowledgeNode,
    NodeMetadata,
    NodeType,
)
from trace_kernel.models.guardrail import (
    WILDCARD,
    ApprovalRequirement,
    GuardrailEvaluation,
    GuardrailRule,
    GuardrailVerdict,
    NormalizationSuggestion,
    RulePattern,
)
from trace_kernel.models.ledger import (
    Alternative,
    AlternativeRationale,
    ChainIntegrityViolation,
    ChainVerification,
    Change,
    Commit,
    CoverageDelta,
    DecisionLedgerEntry,
    ExportMetadata,
    LedgerEntryDraft,
    LedgerExport,
    LedgerSignature,
)
from trace_kernel.models.purpose import Purpose, PurposeMode

__all__ = [
    "WILDCARD",
    "Alternative",
    "AlternativeRationale",
    "ApprovalRequirement",
    "ChainIntegrityViolation",
    "ChainVerification",
    "Change",
    "Commit",
    "CoverageDelta",
    "DecisionLedgerEntry",
    "EdgeType",
    "ExportMetadata",
    "GraphMetadata",
    "GuardrailEvaluation",
    "GuardrailRule",
    "GuardrailVerdict",
    "KernelConfig",
    "KnowledgeEdge",
    "KnowledgeGraph",
    "KnowledgeNode",
    "LedgerEntryDraft",
    "LedgerExport",
    "LedgerSignature",
    "NodeMetadata",
    "NodeType",
    "NormalizationSuggestion",
    "Purpose",
    "PurposeMode",
    "RulePattern",
]
