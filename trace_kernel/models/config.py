"""Kernel configuration."""

from typing import Literal

from pydantic import BaseModel, Field

from trace_kernel.models.guardrail import GuardrailVerdict


class KernelConfig(BaseModel):
    """Configuration shared by the workflow and the API."""

    rule_table: Literal["strict", "lenient"] = "strict"
    # Verdict for node-type pairs no rule covers. "allowed" treats novel
    # patterns as benign; stricter deployments can raise it.
    unmatched_verdict: GuardrailVerdict = GuardrailVerdict.ALLOWED
    min_rationale_length: int = Field(ge=0, default=10)
    signer_fingerprint: str = "unsigned"
    ledger_db_path: str = ":memory:"
    project_name: str = "untitled"
