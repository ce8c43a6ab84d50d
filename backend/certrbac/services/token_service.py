"""
Token Service — Short-lived access tokens and longer-lived refresh tokens.

Each kind is signed with its own secret and carries a `type` discriminator
plus an issuer/audience pair so one can never be used as the other.
"""
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import ExpiredSignatureError, JWTError, jwt

from certrbac.config import Settings, get_settings
from certrbac.errors import TokenExpired, TokenInvalid, TokenTypeInvalid

ACCESS = "access"
REFRESH = "refresh"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int            # access-token lifetime in seconds
    token_type: str = "bearer"


class TokenService:
    """Issues and verifies JWTs bound to a user identity and role snapshot."""

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
        issuer: str = "certificate-rbac-system",
        audience: str = "certificate-rbac-users",
        refresh_audience: str = "certificate-rbac-refresh",
        algorithm: str = "HS256",
    ):
        self.access_secret = access_secret
        self.refresh_secret = refresh_secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.issuer = issuer
        self.audience = audience
        self.refresh_audience = refresh_audience
        self.algorithm = algorithm

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "TokenService":
        settings = settings or get_settings()
        return cls(
            access_secret=settings.JWT_SECRET,
            refresh_secret=settings.JWT_REFRESH_SECRET,
            access_ttl=timedelta(minutes=settings.JWT_ACCESS_EXPIRES_MINUTES),
            refresh_ttl=timedelta(days=settings.JWT_REFRESH_EXPIRES_DAYS),
            issuer=settings.JWT_ISSUER,
            audience=settings.JWT_AUDIENCE,
            refresh_audience=settings.JWT_REFRESH_AUDIENCE,
            algorithm=settings.JWT_ALGORITHM,
        )

    # ─── Issue ───────────────────────────────────────────────────────

    def _encode(self, user, token_type: str, secret: str, audience: str, ttl: timedelta, **extra) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "sub": str(user.id),
            "email": user.email,
            "role": user.role,
            "type": token_type,
            "iss": self.issuer,
            "aud": audience,
            "iat": now,
            "exp": now + ttl,
            **extra,
        }
        return jwt.encode(claims, secret, algorithm=self.algorithm)

    def create_access_token(self, user) -> str:
        return self._encode(user, ACCESS, self.access_secret, self.audience, self.access_ttl)

    def create_refresh_token(self, user) -> str:
        return self._encode(
            user, REFRESH, self.refresh_secret, self.refresh_audience, self.refresh_ttl,
            jti=secrets.token_hex(16),
        )

    def create_token_pair(self, user) -> TokenPair:
        return TokenPair(
            access_token=self.create_access_token(user),
            refresh_token=self.create_refresh_token(user),
            expires_in=int(self.access_ttl.total_seconds()),
        )

    # ─── Verify ──────────────────────────────────────────────────────

    def _decode(self, token: str, secret: str, audience: str, expected_type: str) -> dict:
        try:
            claims = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                audience=audience,
                issuer=self.issuer,
            )
        except ExpiredSignatureError as exc:
            raise TokenExpired() from exc
        except JWTError as exc:
            raise TokenInvalid() from exc

        if claims.get("type") != expected_type:
            raise TokenTypeInvalid()
        if not claims.get("sub"):
            raise TokenInvalid()
        return claims

    def verify_access_token(self, token: str) -> dict:
        """Decoded claims of a valid access token.

        Raises:
            TokenExpired, TokenInvalid, TokenTypeInvalid
        """
        return self._decode(token, self.access_secret, self.audience, ACCESS)

    def verify_refresh_token(self, token: str) -> dict:
        return self._decode(token, self.refresh_secret, self.refresh_audience, REFRESH)


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Token from an `Authorization: Bearer <token>` header, or None."""
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[len("Bearer "):].strip()
    return token or None
