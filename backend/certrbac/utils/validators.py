"""
Validators — Regex and rule-based checks for account and certificate input.
"""
import re

EMAIL_RE = re.compile(r"^\S+@\S+\.\S+$")


def validate_email(email: str | None) -> bool:
    """Loose e-mail shape check: something@something.tld, no whitespace."""
    if not email:
        return False
    return bool(EMAIL_RE.match(email.strip()))


def normalize_email(email: str) -> str:
    return email.strip().lower()


def validate_password_strength(password: str | None) -> tuple[bool, str]:
    """Minimum 8 characters, at least one letter and one digit."""
    if not password or len(password) < 8:
        return False, "Password must be at least 8 characters"
    if not re.search(r"[A-Za-z]", password) or not re.search(r"\d", password):
        return False, "Password must contain letters and numbers"
    return True, "Valid"


def sanitize_name(name: str | None) -> str:
    """Basic sanitization for names: strip and collapse inner whitespace."""
    if not name:
        return ""
    return re.sub(r"\s+", " ", name.strip())
