"""
Cryptographic Hashing Utilities — SHA-256 payload hashing, HMAC signatures
and random identifiers for certificates and the audit trail.
"""
import hashlib
import hmac
import json
import secrets


def generate_hash(data: dict) -> str:
    """Generate a SHA-256 hash of a dictionary (deterministic, sorted keys)."""
    canonical = json.dumps(data, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(canonical).hexdigest()


def generate_chain_hash(current_data: dict, previous_hash: str = "") -> str:
    """Generate a chain hash: SHA-256(previous_hash + current_payload).
    Creates a tamper-evident linked chain for the audit trail.
    """
    current_hash = generate_hash(current_data)
    chain_input = f"{previous_hash}{current_hash}".encode("utf-8")
    return hashlib.sha256(chain_input).hexdigest()


# ─── Certificate identifiers ────────────────────────────────────────

def generate_certificate_id(year: int) -> str:
    """Human-readable id: CERT-{year}-{8 uppercase hex chars}."""
    return f"CERT-{year}-{secrets.token_hex(4).upper()}"


def generate_serial_number() -> str:
    """16 uppercase hex chars."""
    return secrets.token_hex(8).upper()


def generate_verification_token() -> str:
    """256-bit random token, 64 hex chars. Used as the public lookup key."""
    return secrets.token_hex(32)


# ─── Signatures ─────────────────────────────────────────────────────

def signature_payload(certificate_id: str, serial_number: str, checksum: str) -> str:
    return f"{certificate_id}|{serial_number}|{checksum}"


def compute_signature(secret: str, certificate_id: str, serial_number: str, checksum: str) -> str:
    """HMAC-SHA256(secret, "certificateId|serialNumber|checksum") as hex."""
    payload = signature_payload(certificate_id, serial_number, checksum)
    return hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_signature(
    secret: str,
    signature: str | None,
    certificate_id: str,
    serial_number: str,
    checksum: str,
) -> bool:
    """Re-derive the HMAC and compare in constant time.

    A mismatch means either a different secret or mutated content; the two
    cases are indistinguishable here.
    """
    if not signature:
        return False
    expected = compute_signature(secret, certificate_id, serial_number, checksum)
    return hmac.compare_digest(expected, signature)
