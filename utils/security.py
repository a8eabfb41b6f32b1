"""Security helpers for headers, bearer tokens, webhook signatures, and passwords."""
import hashlib
import hmac
import secrets
from datetime import datetime, timedelta

from flask import current_app, request
from jose import ExpiredSignatureError, JWTError, jwt

from utils.errors import AuthenticationError


def apply_security_headers(response, force_https: bool = False):
    """Apply headers suitable for a JSON API behind a browser frontend."""
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("Cache-Control", "no-store")
    if force_https or request.is_secure:
        response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains")
    return response


def generate_token(length: int = 32) -> str:
    return secrets.token_urlsafe(length)


def hash_value(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def password_meets_policy(password: str) -> tuple[bool, str | None]:
    if len(password) < 8:
        return False, "Password must be at least 8 characters long."
    if not any(c.isalpha() for c in password):
        return False, "Include at least one letter."
    if not any(c.isdigit() for c in password):
        return False, "Include at least one digit."
    return True, None


def issue_access_token(user_id: str) -> str:
    """Sign a bearer token whose subject is the user id."""
    now = datetime.utcnow()
    claims = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(days=int(current_app.config.get("JWT_EXPIRES_DAYS", 7)))).timestamp()),
    }
    return jwt.encode(
        claims,
        current_app.config["JWT_SECRET"],
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
    )


def decode_access_token(token: str) -> str:
    """Return the subject of a valid token, raising AuthenticationError otherwise."""
    try:
        claims = jwt.decode(
            token,
            current_app.config["JWT_SECRET"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
        )
    except ExpiredSignatureError as exc:
        raise AuthenticationError("Token has expired") from exc
    except JWTError as exc:
        raise AuthenticationError("Token is not valid") from exc

    subject = str(claims.get("sub") or "")
    if not subject:
        raise AuthenticationError("Invalid token format - missing user ID")
    return subject


def bearer_token_from_request() -> str | None:
    header = request.headers.get("Authorization", "")
    if not header.lower().startswith("bearer "):
        return None
    token = header[7:].strip()
    return token or None


def verify_webhook_signature(secret: str, body: bytes, signature_header: str | None) -> bool:
    """Check an ``sha256=<hex>`` HMAC header over the raw request body."""
    if not signature_header or not signature_header.startswith("sha256="):
        return False
    digest = hmac.new(secret.encode("utf-8"), body or b"", hashlib.sha256).hexdigest()
    expected = f"sha256={digest}"
    return hmac.compare_digest(expected, signature_header)
