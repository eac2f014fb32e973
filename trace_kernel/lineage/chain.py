"""
Ledger Hash Chain: tamper-evident linking of Decision Ledger entries.

Each entry's hash commits to its canonical content and to the previous
entry's hash, so any edit or reordering breaks every later link.

    hash_i = SHA256(prev_hash_i || canonical(entry_i minus {hash, prev_hash, signature}))

Behavioral Contract:
- Canonical form is sorted-key, whitespace-free UTF-8 JSON
- The first entry links to the genesis sentinel "0"
- verify_chain never raises: integrity failures come back as data
"""

import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any, List, Mapping, Sequence, Union

from pydantic import BaseModel, ValidationError

from trace_kernel.errors import InvalidArgument
from trace_kernel.models.ledger import (
    ChainIntegrityViolation,
    ChainVerification,
    DecisionLedgerEntry,
    ExportMetadata,
    LedgerEntryDraft,
    LedgerExport,
    LedgerSignature,
)

logger = logging.getLogger(__name__)

GENESIS_PREV_HASH = "0"
EXPORT_VERSION = "2.0"
SUPPORTED_EXPORT_MAJOR = "2"

# Fields bound by the chain link or attribution rather than the content hash.
_UNHASHED_FIELDS = ("hash", "prev_hash", "signature")

_REQUIRED_TEXT_FIELDS = (
    "commit_id", "purpose", "action_type", "selected_option",
    "rationale", "approver", "impact_summary",
)


def compute_hash(data: Union[bytes, str]) -> str:
    """SHA-256 hex digest."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def canonicalize(entry: Union[BaseModel, Mapping[str, Any]]) -> bytes:
    """
    Byte-stable serialization of an entry's hashed content.

    Accepts a ledger model or a plain mapping. Key order never affects the
    result; `hash`, `prev_hash` and `signature` are dropped.
    """
    if isinstance(entry, BaseModel):
        payload = entry.model_dump(mode="json")
    else:
        payload = dict(entry)
    for key in _UNHASHED_FIELDS:
        payload.pop(key, None)
    return json.dumps(
        payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str
    ).encode("utf-8")


def compute_entry_hash(entry: Union[BaseModel, Mapping[str, Any]], prev_hash: str) -> str:
    """Hash of prev_hash followed by the canonical entry. prev_hash goes first."""
    return compute_hash(prev_hash.encode("utf-8") + canonicalize(entry))


def create_entry(
    draft: Union[LedgerEntryDraft, Mapping[str, Any]],
    prev_hash: str,
    signer_fingerprint: str,
) -> DecisionLedgerEntry:
    """
    Chain a draft onto prev_hash.

    Raises InvalidArgument if required fields are missing or blank.
    """
    if not isinstance(draft, LedgerEntryDraft):
        try:
            draft = LedgerEntryDraft.model_validate(draft)
        except ValidationError as e:
            raise InvalidArgument(f"Malformed ledger entry: {e}") from e

    blank = [name for name in _REQUIRED_TEXT_FIELDS if not getattr(draft, name).strip()]
    if blank:
        raise InvalidArgument(f"Ledger entry fields must not be blank: {', '.join(blank)}")
    if not prev_hash:
        raise InvalidArgument("prev_hash is required; use the genesis sentinel for the first entry")

    content = draft.model_dump(include=set(LedgerEntryDraft.model_fields))
    return DecisionLedgerEntry(
        **content,
        prev_hash=prev_hash,
        hash=compute_entry_hash(draft, prev_hash),
        signature=LedgerSignature(
            signer_id=draft.approver,
            public_key_fingerprint=signer_fingerprint,
            timestamp=datetime.now(timezone.utc),
        ),
    )


def parse_entry(item: Any) -> DecisionLedgerEntry:
    """
    Parse a wire entry exactly as shipped: strict JSON types, no unknown keys.
    Anything the hash could not have covered fails validation.
    """
    if isinstance(item, DecisionLedgerEntry):
        return item
    if isinstance(item, BaseModel):
        item = item.model_dump(mode="json", by_alias=True)
    return DecisionLedgerEntry.model_validate_json(json.dumps(item), strict=True)


def verify_chain(entries: Sequence[Any]) -> ChainVerification:
    """
    Walk the chain from index 0 and report integrity.

    Each expected hash is recomputed from the entry's own content plus the
    previous entry's *stored* hash. The first violation is reported as
    broken_at/error; the walk continues so later, independent violations
    are listed too. Malformed entries are reported, not raised.
    """
    violations: List[ChainIntegrityViolation] = []
    prev_stored_hash = GENESIS_PREV_HASH

    for i, item in enumerate(entries):
        try:
            entry = parse_entry(item)
        except (ValidationError, TypeError, ValueError) as e:
            violations.append(ChainIntegrityViolation(
                index=i, kind="structure", reason=f"Entry {i} is malformed: {e}",
            ))
            # Its stored hash is unknown; the next link cannot be trusted either.
            prev_stored_hash = None
            continue

        if prev_stored_hash is None or entry.prev_hash != prev_stored_hash:
            reason = (
                f"Entry {i} must link to the genesis sentinel"
                if i == 0
                else f"Entry {i} prev_hash does not match the hash of entry {i - 1}"
            )
            violations.append(ChainIntegrityViolation(index=i, kind="link", reason=reason))

        link_hash = prev_stored_hash if prev_stored_hash is not None else entry.prev_hash
        expected = compute_entry_hash(entry, link_hash)
        if entry.hash != expected:
            violations.append(ChainIntegrityViolation(
                index=i, kind="content", reason=f"Entry {i} content does not match its hash",
            ))

        prev_stored_hash = entry.hash

    if not violations:
        return ChainVerification(valid=True)

    first = violations[0]
    logger.warning(
        "Ledger chain broken at entry %d (%s): %d violation(s)",
        first.index, first.kind, len(violations),
    )
    return ChainVerification(
        valid=False,
        broken_at=first.index,
        error=first.reason,
        violations=violations,
    )


def export_signed(
    entries: Sequence[DecisionLedgerEntry],
    metadata: Union[ExportMetadata, Mapping[str, Any]],
) -> str:
    """Serialize entries with export metadata and a computed integrity assertion."""
    if not isinstance(metadata, ExportMetadata):
        try:
            metadata = ExportMetadata.model_validate(metadata)
        except ValidationError as e:
            raise InvalidArgument(f"Malformed export metadata: {e}") from e

    bundle = LedgerExport(
        metadata=metadata,
        entries=[parse_entry(e).model_dump(mode="json", by_alias=True) for e in entries],
        chain_valid=verify_chain(entries).valid,
        version=EXPORT_VERSION,
    )
    return bundle.model_dump_json(by_alias=True, indent=2)


def parse_export(text: Union[str, bytes]) -> LedgerExport:
    """
    Parse an exported bundle.

    Raises InvalidArgument on malformed JSON or an unsupported major version.
    The entries are returned raw; pass them to verify_chain to re-check them.
    """
    try:
        bundle = LedgerExport.model_validate_json(text)
    except ValidationError as e:
        raise InvalidArgument(f"Malformed ledger export: {e}") from e

    major = bundle.version.split(".", 1)[0]
    if major != SUPPORTED_EXPORT_MAJOR:
        raise InvalidArgument(
            f"Unsupported ledger export version {bundle.version}; "
            f"expected major version {SUPPORTED_EXPORT_MAJOR}"
        )
    return bundle
