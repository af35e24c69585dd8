import hashlib
import hmac
import logging
import secrets
import threading
from collections import defaultdict
from time import time
from typing import Optional

from fastapi import Request

from config import SECRET_KEY, TOKEN_TTL_SECONDS

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# In-memory rate limiting (per-IP, resets on server restart)
# ---------------------------------------------------------------------------
_rate_lock = threading.Lock()
_login_buckets: dict[str, list[float]] = defaultdict(list)

_LOGIN_WINDOW = 300   # 5 minutes
_LOGIN_MAX = 10       # attempts per window per IP


def _check_rate_limit(bucket: dict, ip: str, window: int, max_attempts: int) -> bool:
    """Return True if the request should be allowed, False if rate limited."""
    now = time()
    with _rate_lock:
        bucket[ip] = [t for t in bucket[ip] if now - t < window]
        if len(bucket[ip]) >= max_attempts:
            return False
        bucket[ip].append(now)
        return True


def _is_login_allowed(ip: str) -> bool:
    return _check_rate_limit(_login_buckets, ip, _LOGIN_WINDOW, _LOGIN_MAX)


def _reset_rate_limits():
    with _rate_lock:
        _login_buckets.clear()


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------

def _hash_password(plaintext: str) -> str:
    salt = secrets.token_bytes(32)
    dk = hashlib.pbkdf2_hmac("sha256", plaintext.encode(), salt, 480_000)
    return salt.hex() + ":" + dk.hex()


def _verify_password(plaintext: str, stored: str) -> bool:
    try:
        salt_hex, dk_hex = stored.split(":")
        dk = hashlib.pbkdf2_hmac("sha256", plaintext.encode(), bytes.fromhex(salt_hex), 480_000)
        return hmac.compare_digest(dk, bytes.fromhex(dk_hex))
    except ValueError:
        return False


# ---------------------------------------------------------------------------
# Bearer tokens: "<user_id>:<exp>:<nonce>:<sig>"
# The signature covers the user's password hash, so changing the password
# invalidates every token issued before it.
# ---------------------------------------------------------------------------

def _sign(payload: str, password_hash: str) -> str:
    return hmac.new(SECRET_KEY.encode(), f"{payload}:{password_hash}".encode(), "sha256").hexdigest()


def _make_token(user_id: int, password_hash: str, ttl: int = TOKEN_TTL_SECONDS) -> str:
    exp = int(time()) + ttl
    nonce = secrets.token_urlsafe(16)
    payload = f"{user_id}:{exp}:{nonce}"
    return f"{payload}:{_sign(payload, password_hash)}"


def _token_user_id(token: str) -> Optional[int]:
    """Claimed user id of a token, before any signature check."""
    parts = (token or "").split(":", 3)
    if len(parts) < 4:
        return None
    try:
        return int(parts[0])
    except ValueError:
        return None


def _verify_token(token: str, user_id: int, password_hash: str) -> bool:
    try:
        token_uid, exp_s, nonce, sig = token.split(":", 3)
        if int(token_uid) != user_id:
            return False
        if int(exp_s) < int(time()):
            return False
    except ValueError:
        return False
    return hmac.compare_digest(sig, _sign(f"{token_uid}:{exp_s}:{nonce}", password_hash))


def _bearer_token(request: Request) -> str:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


def _get_authenticated_user_id(request: Request) -> Optional[int]:
    """Resolve the bearer token on a request to a user id, or None."""
    token = _bearer_token(request)
    if not token:
        return None
    uid = _token_user_id(token)
    if uid is None:
        return None
    with request.app.state.db.connect() as conn:
        row = conn.execute(
            "SELECT id, password_hash FROM users WHERE id = ?", (uid,)
        ).fetchone()
    if not row or not row["password_hash"]:
        return None
    if not _verify_token(token, row["id"], row["password_hash"]):
        logger.info("Rejected bearer token for user %s", uid)
        return None
    return row["id"]
