from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any

import jwt


class IdentityError(RuntimeError):
    pass


class InvalidToken(IdentityError):
    pass


class WebhookVerificationError(IdentityError):
    pass


# ---------- Session tokens ----------

def verify_session_token(
    token: str,
    *,
    key: str,
    algorithms: list[str],
    issuer: str | None = None,
    leeway: int = 5,
) -> dict[str, Any]:
    """
    Verify a provider-issued session JWT and return its claims.
    `key` is a PEM public key for RS256 or the shared secret for HS256.
    """
    if not key:
        raise InvalidToken("AUTH_JWT_KEY is not configured")
    options = {"require": ["sub", "exp"]}
    try:
        claims = jwt.decode(
            token,
            key,
            algorithms=algorithms,
            issuer=issuer or None,
            leeway=leeway,
            options=options,
        )
    except jwt.ExpiredSignatureError as e:
        raise InvalidToken("Token has expired") from e
    except jwt.InvalidTokenError as e:
        raise InvalidToken(f"Invalid token: {e}") from e
    if not str(claims.get("sub") or "").strip():
        raise InvalidToken("Token has no subject")
    return claims


@dataclass(frozen=True)
class IdentityProfile:
    """Provider-neutral subset of an account profile."""

    subject: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    image_url: str | None = None


def profile_from_claims(claims: dict[str, Any]) -> IdentityProfile:
    return IdentityProfile(
        subject=str(claims["sub"]),
        email=(claims.get("email") or "").strip().lower(),
        first_name=claims.get("first_name") or claims.get("given_name"),
        last_name=claims.get("last_name") or claims.get("family_name"),
        image_url=claims.get("image_url") or claims.get("picture"),
    )


def profile_from_clerk_user(data: dict[str, Any]) -> IdentityProfile:
    """Map a Clerk user object (API response or webhook `data`) to a profile."""
    addresses = data.get("email_addresses") or []
    primary_id = data.get("primary_email_address_id")
    primary = next((a for a in addresses if a.get("id") == primary_id), None)
    if primary is None and addresses:
        primary = addresses[0]
    email = (primary or {}).get("email_address") or ""
    return IdentityProfile(
        subject=str(data.get("id") or ""),
        email=email.strip().lower(),
        first_name=data.get("first_name"),
        last_name=data.get("last_name"),
        image_url=data.get("image_url"),
    )


# ---------- Provider API ----------

@dataclass(frozen=True)
class ClerkClient:
    secret_key: str
    base_url: str = "https://api.clerk.com/v1"
    timeout_seconds: int = 15

    def request_json(self, path: str, *, params: dict[str, Any] | None = None) -> dict[str, Any]:
        url = self.base_url.rstrip("/") + path
        if params:
            url += "?" + urllib.parse.urlencode({k: v for k, v in params.items() if v is not None})
        req = urllib.request.Request(url, method="GET")
        req.add_header("Authorization", f"Bearer {self.secret_key}")
        req.add_header("Accept", "application/json")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as e:
            try:
                body = e.read().decode("utf-8", errors="ignore")
            except Exception:
                body = ""
            raise IdentityError(f"HTTP {e.code} from identity provider: {body[:300]}") from e
        except urllib.error.URLError as e:
            raise IdentityError(f"Identity provider unreachable: {e.reason}") from e
        try:
            j = json.loads(raw.decode("utf-8"))
        except ValueError as e:
            raise IdentityError(f"Invalid JSON from identity provider ({path})") from e
        return j if isinstance(j, dict) else {}

    def get_user(self, user_id: str) -> IdentityProfile:
        data = self.request_json(f"/users/{urllib.parse.quote(user_id)}")
        if not data.get("id"):
            raise IdentityError(f"User {user_id} not found at identity provider")
        return profile_from_clerk_user(data)


# ---------- Webhooks ----------

WEBHOOK_TOLERANCE_SECONDS = 5 * 60


def _webhook_key(secret: str) -> bytes:
    if secret.startswith("whsec_"):
        return base64.b64decode(secret[len("whsec_"):])
    return secret.encode("utf-8")


def sign_webhook(secret: str, msg_id: str, timestamp: str, body: bytes) -> str:
    """Signature in the svix `v1,<base64>` format."""
    to_sign = f"{msg_id}.{timestamp}.".encode("utf-8") + body
    digest = hmac.new(_webhook_key(secret), to_sign, hashlib.sha256).digest()
    return "v1," + base64.b64encode(digest).decode("ascii")


def verify_webhook(
    secret: str,
    *,
    msg_id: str,
    timestamp: str,
    signature_header: str,
    body: bytes,
    now: float | None = None,
) -> dict[str, Any]:
    """Check a svix-signed webhook and return the decoded payload."""
    try:
        ts = int(timestamp)
    except ValueError as e:
        raise WebhookVerificationError("Invalid timestamp header") from e
    now = time.time() if now is None else now
    if abs(now - ts) > WEBHOOK_TOLERANCE_SECONDS:
        raise WebhookVerificationError("Timestamp outside tolerance")

    expected = sign_webhook(secret, msg_id, timestamp, body).split(",", 1)[1]
    # Header carries space-separated "v1,<sig>" entries (key rotation).
    for entry in signature_header.split():
        version, _, sig = entry.partition(",")
        if version == "v1" and hmac.compare_digest(sig, expected):
            break
    else:
        raise WebhookVerificationError("No matching signature")

    try:
        payload = json.loads(body.decode("utf-8"))
    except ValueError as e:
        raise WebhookVerificationError("Body is not JSON") from e
    if not isinstance(payload, dict):
        raise WebhookVerificationError("Body is not a JSON object")
    return payload
