"""
Error taxonomy for the trace kernel.

Every exception carries a stable machine-readable `code` and a `retryable`
flag so transport layers can map it without parsing messages. Chain
integrity failures are not exceptions: `verify_chain` returns them as
`ChainIntegrityViolation` records.
"""

from typing import Optional


class TraceKernelError(Exception):
    """Base class for all kernel errors."""

    code = "trace_kernel_error"
    retryable = False
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def as_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "retryable": self.retryable}


class InvalidArgument(TraceKernelError, ValueError):
    """Malformed rule, entry or request input."""

    code = "invalid_argument"
    http_status = 400


class NotFound(TraceKernelError):
    """Referenced node, proposal or commit does not exist."""

    code = "not_found"
    http_status = 404


class ChainConflict(TraceKernelError):
    """An append raced another: the supplied prev_hash is no longer the chain tip."""

    code = "chain_conflict"
    retryable = True
    http_status = 409

    def __init__(self, message: str, current_tip: str, supplied_prev_hash: Optional[str] = None):
        super().__init__(message)
        self.current_tip = current_tip
        self.supplied_prev_hash = supplied_prev_hash

    def as_dict(self) -> dict:
        d = super().as_dict()
        d["current_tip"] = self.current_tip
        return d


class ForbiddenConnection(TraceKernelError):
    """A power-mode-only connection was proposed outside power mode."""

    code = "forbidden_connection"
    http_status = 403

    def __init__(self, message: str, evaluation=None):
        super().__init__(message)
        self.evaluation = evaluation

    def as_dict(self) -> dict:
        d = super().as_dict()
        if self.evaluation is not None:
            d["evaluation"] = self.evaluation.model_dump(mode="json")
        return d
