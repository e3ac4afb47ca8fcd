"""Evidence integrity (SHA-256) and the evidence storage collaborator."""
import hashlib
import hmac
import logging
import os
import re
import time
from dataclasses import dataclass
from typing import Optional

from sealtrack.errors import EvidenceIntegrityError, ValidationError
from sealtrack.settings import settings

logger = logging.getLogger(__name__)

HEX_DIGEST_RE = re.compile(r"^[0-9a-fA-F]{64}$")
REFERENCE_PREFIX = "/evidence/"


def compute_hash(data: bytes) -> str:
    """SHA-256 hex digest (64 lowercase hex chars)."""
    return hashlib.sha256(data).hexdigest()


def verify(declared_hash: str, data: bytes) -> bool:
    """Constant-time check of a declared digest against the bytes."""
    if not declared_hash:
        return False
    return hmac.compare_digest(declared_hash.strip().lower(), compute_hash(data))


@dataclass(frozen=True)
class Evidence:
    """Photo evidence as received from the field agent."""

    content: bytes
    declared_hash: str
    filename: str = "evidence.jpg"


def check_evidence(evidence: Evidence, task_id: int, kind: str) -> str:
    """
    Validate an evidence submission and return the computed digest.

    Raises ValidationError for missing bytes or a malformed digest, and
    EvidenceIntegrityError when the declared digest does not match.
    """
    if not evidence.content:
        raise ValidationError("Evidence image is required")
    declared = (evidence.declared_hash or "").strip()
    if not HEX_DIGEST_RE.match(declared):
        raise ValidationError("Evidence hash must be 64 hexadecimal characters")

    computed = compute_hash(evidence.content)
    if not verify(declared, evidence.content):
        logger.warning(
            "Evidence hash mismatch (possible tampering)",
            extra={
                "task_id": task_id,
                "kind": kind,
                "declared_hash": declared.lower(),
                "computed_hash": computed,
            },
        )
        raise EvidenceIntegrityError(
            f"Declared evidence hash does not match uploaded image for {kind}"
        )
    return computed


class EvidenceStore:
    """Evidence storage collaborator: bytes in, stable reference out."""

    def save(self, task_id: int, kind: str, data: bytes, filename: str) -> str:
        raise NotImplementedError

    def delete(self, ref: str) -> None:
        """Remove evidence written for a submission that was not persisted."""
        raise NotImplementedError


class LocalEvidenceStore(EvidenceStore):
    """Write evidence files under a local directory."""

    def __init__(self, root: Optional[str] = None):
        self.root = root or settings.evidence_dir

    def save(self, task_id: int, kind: str, data: bytes, filename: str) -> str:
        task_dir = os.path.join(self.root, str(task_id))
        os.makedirs(task_dir, exist_ok=True)

        extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else "jpg"
        name = f"{kind.lower()}_{time.time_ns()}.{extension}"
        with open(os.path.join(task_dir, name), "wb") as fh:
            fh.write(data)

        return f"{REFERENCE_PREFIX}{task_id}/{name}"

    def delete(self, ref: str) -> None:
        if not ref.startswith(REFERENCE_PREFIX):
            raise ValueError(f"Not a local evidence reference: {ref}")
        path = os.path.join(self.root, *ref[len(REFERENCE_PREFIX):].split("/"))
        try:
            os.remove(path)
        except FileNotFoundError:
            logger.warning("Evidence file already gone", extra={"ref": ref})


def discard_evidence(store: EvidenceStore, ref: str) -> None:
    """Remove evidence whose record was rolled back; the original error still propagates."""
    try:
        store.delete(ref)
    except OSError:
        logger.exception("Could not remove orphaned evidence", extra={"ref": ref})
