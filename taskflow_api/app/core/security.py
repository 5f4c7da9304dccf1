"""
Security helpers for password hashing and JWT authentication.

Tokens are HS256 JSON Web Tokens built with ``hmac``/``hashlib`` and
base64url encoding; the ``sub`` claim holds the user's email.
Passwords are hashed with PBKDF2‑HMAC‑SHA256 and stored as
``salthex$hashhex``.

The FastAPI dependencies defined here resolve the requesting identity
(``get_current_user``) and enforce the super administrator role
(``require_super_admin``).  Workspace membership is checked by the
service layer (``WorkspaceService.require_member``).
"""

import base64
import hashlib
import hmac
import json
import logging
import os
import time
from typing import Dict, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import settings
from .db import get_connection

logger = logging.getLogger(__name__)

ROLE_SUPER_ADMIN = 1
ROLE_USER = 3

PBKDF2_ITERATIONS = 100_000


def _b64_url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("utf-8")


def _b64_url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _sign(message: bytes, secret: str) -> bytes:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()


def create_access_token(data: Dict[str, str], expires_delta: Optional[int] = None) -> str:
    """Create a signed JWT with the given claims.

    Parameters
    ----------
    data : dict
        Claims to embed (e.g. ``{"sub": "user@example.com"}``).
    expires_delta : Optional[int]
        Lifetime in seconds.  Defaults to
        ``settings.access_token_expire_minutes * 60``.
    """
    to_encode = data.copy()
    exp_seconds = expires_delta or settings.access_token_expire_minutes * 60
    to_encode["exp"] = int(time.time()) + exp_seconds
    header = {"alg": "HS256", "typ": "JWT"}
    header_b64 = _b64_url_encode(json.dumps(header, separators=(",", ":")).encode("utf-8"))
    payload_b64 = _b64_url_encode(json.dumps(to_encode, separators=(",", ":")).encode("utf-8"))
    signing_input = f"{header_b64}.{payload_b64}".encode("utf-8")
    signature_b64 = _b64_url_encode(_sign(signing_input, settings.secret_key))
    return f"{header_b64}.{payload_b64}.{signature_b64}"


def decode_access_token(token: str) -> Optional[Dict[str, str]]:
    """Verify a token's signature and expiry; return its claims or ``None``."""
    parts = token.split(".")
    if len(parts) != 3:
        return None
    header_b64, payload_b64, signature_b64 = parts
    try:
        signing_input = f"{header_b64}.{payload_b64}".encode("utf-8")
        expected_sig = _sign(signing_input, settings.secret_key)
        if not hmac.compare_digest(expected_sig, _b64_url_decode(signature_b64)):
            return None
        data = json.loads(_b64_url_decode(payload_b64).decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return None
    if not isinstance(data, dict) or data.get("exp") is None or int(data["exp"]) < int(time.time()):
        return None
    return data


def hash_password(password: str) -> str:
    """Hash a password with PBKDF2‑HMAC‑SHA256 and a random 16‑byte salt."""
    salt = os.urandom(16)
    dk = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)
    return f"{salt.hex()}${dk.hex()}"


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Check a plain password against a stored ``salt$hash`` string."""
    if not hashed_password or "$" not in hashed_password:
        return False
    salt_hex, hash_hex = hashed_password.split("$", 1)
    try:
        salt = bytes.fromhex(salt_hex)
        stored_hash = bytes.fromhex(hash_hex)
    except ValueError:
        return False
    dk = hashlib.pbkdf2_hmac("sha256", plain_password.encode("utf-8"), salt, PBKDF2_ITERATIONS)
    return hmac.compare_digest(dk, stored_hash)


security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)) -> Dict:
    """Dependency that resolves the authenticated user.

    Returns a dict with ``user_id``, ``email``, ``full_name`` and
    ``role_id``.  Raises 401 when the header is missing, the token is
    invalid or expired, or the user no longer exists or is disabled.
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")
    token = credentials.credentials

    conn = get_connection()
    try:
        cursor = conn.cursor()
        if settings.super_admin_static_token and hmac.compare_digest(
            token, settings.super_admin_static_token
        ):
            # The static token acts as the first super administrator.
            row = cursor.execute(
                "SELECT id, email, full_name, role_id, disabled FROM users "
                "WHERE role_id = ? ORDER BY id ASC LIMIT 1",
                (ROLE_SUPER_ADMIN,),
            ).fetchone()
            if not row:
                raise _unauthorized("No super administrator configured")
        else:
            payload = decode_access_token(token)
            if not payload:
                raise _unauthorized("Invalid or expired token")
            row = cursor.execute(
                "SELECT id, email, full_name, role_id, disabled FROM users WHERE email = ?",
                (payload.get("sub"),),
            ).fetchone()
            if not row:
                raise _unauthorized("User no longer exists")
        if row["disabled"]:
            raise _unauthorized("User account disabled")
        return {
            "user_id": row["id"],
            "email": row["email"],
            "full_name": row["full_name"],
            "role_id": row["role_id"],
        }
    finally:
        conn.close()


def require_super_admin(current_user: Dict = Depends(get_current_user)) -> Dict:
    """Only super administrators may trigger or inspect background jobs."""
    if current_user.get("role_id") != ROLE_SUPER_ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only super admins can access cron jobs",
        )
    return current_user


def is_super_admin(current_user: Dict) -> bool:
    return current_user.get("role_id") == ROLE_SUPER_ADMIN
