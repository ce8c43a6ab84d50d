from certrbac.utils.hashing import generate_hash, generate_chain_hash
from certrbac.utils.passwords import hash_password, verify_password
from certrbac.utils.timeutil import utcnow
from certrbac.utils.validators import validate_email, validate_password_strength

__all__ = [
    "generate_hash", "generate_chain_hash",
    "hash_password", "verify_password",
    "utcnow",
    "validate_email", "validate_password_strength",
]
