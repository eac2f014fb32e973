"""Decision Ledger: append-only, hash-linked records of approved changes."""

from datetime import datetime
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from trace_kernel.models.graph import KnowledgeGraph
from trace_kernel.models.guardrail import GuardrailVerdict


class LedgerModel(BaseModel):
    """Base for ledger wire types: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EntryModel(LedgerModel):
    """
    Ledger entry content. Immutable, and unknown keys are rejected so
    nothing can ride along unverified.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")


class Change(EntryModel):
    op: str                                 # "add_edge" | "delete_edge" | "add_node" | "update_node"
    data: dict = {}


class CoverageDelta(EntryModel):
    requirements_covered: int
    tests_missing: int


class AlternativeRationale(EntryModel):
    """Why an alternative was put forward."""

    rules_matched: Tuple[str, ...] = ()
    evidence: Tuple[str, ...] = ()          # e.g., "case#123"
    risk_notes: Optional[Tuple[str, ...]] = None
    coverage_delta: Optional[CoverageDelta] = None
    confidence: float = Field(ge=0.0, le=1.0)


class Alternative(EntryModel):
    """An option considered before the decision was taken."""

    id: str                                 # e.g., "alt-001"
    label: str                              # e.g., "recommended", "conservative"
    changes: Tuple[Change, ...] = ()
    rationale: Optional[AlternativeRationale] = None
    guardrail: GuardrailVerdict


class LedgerSignature(EntryModel):
    """
    Attribution block. Not a cryptographic signature: it names who signed
    off and which key fingerprint they claim, and is excluded from the hash.
    """

    signer_id: str
    public_key_fingerprint: str
    timestamp: datetime


class LedgerEntryDraft(EntryModel):
    """The hashed content of a ledger entry, before it is chained."""

    commit_id: str
    timestamp: datetime
    purpose: str
    action_type: str                        # e.g., "add_edge"
    alternatives: Optional[Tuple[Alternative, ...]] = None
    selected_option: str
    rationale: str
    approver: str
    impact_summary: str
    rollback_condition: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    rules_matched: Optional[Tuple[str, ...]] = None
    evidence: Optional[Tuple[str, ...]] = None


class DecisionLedgerEntry(LedgerEntryDraft):
    """A committed ledger entry. Immutable once created."""

    prev_hash: str
    hash: str
    signature: LedgerSignature


class ChainIntegrityViolation(LedgerModel):
    """One integrity failure found while walking a chain. Reported, never raised."""

    index: int
    kind: str                               # "link" | "content" | "structure"
    reason: str


class ChainVerification(LedgerModel):
    valid: bool
    broken_at: Optional[int] = None
    error: Optional[str] = None
    violations: List[ChainIntegrityViolation] = []


class ExportMetadata(LedgerModel):
    project_name: str
    exported_at: datetime
    exported_by: str


class LedgerExport(LedgerModel):
    metadata: ExportMetadata
    entries: List[Any]                      # Kept raw so re-verification sees exactly what was shipped
    chain_valid: bool
    version: str


class Commit(LedgerModel):
    """A graph snapshot bundled with the ledger entries approved since the last commit."""

    commit_id: str
    timestamp: datetime
    message: str
    author: str
    graph_snapshot: KnowledgeGraph
    decision_ledger_entries: List[DecisionLedgerEntry] = []
    parent_commit_id: Optional[str] = None
