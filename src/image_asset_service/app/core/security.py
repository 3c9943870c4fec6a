import base64
import hashlib
import hmac
import json
import secrets
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from .config import Settings
from .errors import InvalidToken

_HASH_ALGORITHM = "pbkdf2_sha256"
_HASH_ITERATIONS = 120_000


class TokenType(str, Enum):
    ASSET = "asset"
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass(frozen=True)
class TokenClaims:
    token_type: TokenType
    tenant_id: str
    issued_at: int
    expires_at: int
    asset_id: str | None = None
    token_id: str | None = None


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(segment: str) -> bytes:
    padding = "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(segment + padding)


class TokenSigner:
    """HMAC-SHA256 signed, self-contained tokens: ``<payload>.<signature>``."""

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("Token secret must not be empty")
        self._key = secret.encode("utf-8")

    def _signature(self, payload_segment: str) -> str:
        digest = hmac.new(
            self._key, payload_segment.encode("ascii"), hashlib.sha256
        ).digest()
        return _b64encode(digest)

    def sign(self, payload: dict) -> str:
        body = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        payload_segment = _b64encode(body.encode("utf-8"))
        return f"{payload_segment}.{self._signature(payload_segment)}"

    def unsign(self, token: str) -> dict:
        if not isinstance(token, str) or not token.isascii():
            raise InvalidToken("Malformed token")

        try:
            payload_segment, signature = token.split(".")
        except ValueError:
            raise InvalidToken("Malformed token")

        if not hmac.compare_digest(signature, self._signature(payload_segment)):
            raise InvalidToken("Invalid token signature")

        try:
            payload = json.loads(_b64decode(payload_segment))
        except (ValueError, UnicodeDecodeError):
            raise InvalidToken("Malformed token payload")

        if not isinstance(payload, dict):
            raise InvalidToken("Malformed token payload")
        return payload


class TokenService:
    def __init__(
        self,
        settings: Settings,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self._clock = clock
        self._signer = TokenSigner(settings.TOKEN_SECRET)
        self._refresh_signer = TokenSigner(settings.REFRESH_TOKEN_SECRET)

    def _now(self) -> int:
        return int(self._clock())

    def _issue(
        self, signer: TokenSigner, token_type: TokenType, ttl: int, **claims
    ) -> tuple[str, TokenClaims]:
        issued_at = self._now()
        payload = {
            "typ": token_type.value,
            "iat": issued_at,
            "exp": issued_at + ttl,
            **{key: value for key, value in claims.items() if value is not None},
        }
        return signer.sign(payload), self._to_claims(payload)

    def _verify(
        self, signer: TokenSigner, token: str, expected: TokenType
    ) -> TokenClaims:
        if not token:
            raise InvalidToken("Token is required")

        payload = signer.unsign(token)
        if payload.get("typ") != expected.value:
            raise InvalidToken("Invalid token type")

        claims = self._to_claims(payload)
        if claims.expires_at <= self._now():
            raise InvalidToken("Token expired")
        return claims

    @staticmethod
    def _to_claims(payload: dict) -> TokenClaims:
        try:
            return TokenClaims(
                token_type=TokenType(payload["typ"]),
                tenant_id=str(payload["tid"]),
                issued_at=int(payload["iat"]),
                expires_at=int(payload["exp"]),
                asset_id=payload.get("aid"),
                token_id=payload.get("jti"),
            )
        except (KeyError, TypeError, ValueError):
            raise InvalidToken("Malformed token claims")

    def issue_asset_token(self, asset_id: str, tenant_id: str) -> str:
        token, _ = self._issue(
            self._signer,
            TokenType.ASSET,
            self.settings.ASSET_TOKEN_TTL_SECONDS,
            tid=str(tenant_id),
            aid=str(asset_id),
        )
        return token

    def verify_asset_token(self, token: str) -> TokenClaims:
        claims = self._verify(self._signer, token, TokenType.ASSET)
        if not claims.asset_id:
            raise InvalidToken("Token is not bound to an asset")
        return claims

    def issue_access_token(self, tenant_id: str) -> str:
        token, _ = self._issue(
            self._signer,
            TokenType.ACCESS,
            self.settings.ACCESS_TOKEN_TTL_SECONDS,
            tid=str(tenant_id),
        )
        return token

    def verify_access_token(self, token: str) -> TokenClaims:
        return self._verify(self._signer, token, TokenType.ACCESS)

    def issue_refresh_token(self, tenant_id: str) -> tuple[str, TokenClaims]:
        return self._issue(
            self._refresh_signer,
            TokenType.REFRESH,
            self.settings.REFRESH_TOKEN_TTL_SECONDS,
            tid=str(tenant_id),
            jti=uuid.uuid4().hex,
        )

    def verify_refresh_token(self, token: str) -> TokenClaims:
        claims = self._verify(self._refresh_signer, token, TokenType.REFRESH)
        if not claims.token_id:
            raise InvalidToken("Refresh token has no identifier")
        return claims


def generate_api_key() -> str:
    return "ak_" + secrets.token_hex(16)


def generate_api_secret() -> str:
    return secrets.token_hex(32)


def hash_secret(secret: str) -> str:
    salt = secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256", secret.encode("utf-8"), salt, _HASH_ITERATIONS
    )
    return f"{_HASH_ALGORITHM}${_HASH_ITERATIONS}${salt.hex()}${digest.hex()}"


def verify_secret(secret: str, hashed: str) -> bool:
    try:
        algorithm, iterations, salt_hex, digest_hex = hashed.split("$")
        if algorithm != _HASH_ALGORITHM:
            return False
        candidate = hashlib.pbkdf2_hmac(
            "sha256",
            secret.encode("utf-8"),
            bytes.fromhex(salt_hex),
            int(iterations),
        )
    except (AttributeError, ValueError):
        return False
    return hmac.compare_digest(candidate.hex(), digest_hex)
