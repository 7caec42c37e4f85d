"""GitHub webhook HMAC verification."""

import hashlib
import hmac
import re
from typing import Optional

_SIGNATURE_RE = re.compile(r"^sha256=([0-9a-f]{64})$", re.IGNORECASE)


def compute_signature(secret: str, payload: bytes) -> str:
    """Signature header value GitHub would send for ``payload``."""
    digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_signature(secret: str, payload: bytes, signature_header: Optional[str]) -> bool:
    """Constant-time check of ``x-hub-signature-256`` against the raw body."""
    if not signature_header:
        return False

    match = _SIGNATURE_RE.match(signature_header.strip())
    if not match:
        return False

    expected = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).digest()
    received = bytes.fromhex(match.group(1))
    return hmac.compare_digest(expected, received)
