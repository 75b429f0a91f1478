"""
Identity strategies (trusted headers or signed bearer tokens) and the
decorator that attaches the resulting Identity to handlers.
"""

from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Any, Dict, Mapping, Optional

import jwt
from flask import current_app, g, request

from rxportal.config import AUTH_MODE, ROLES, TOKEN_EXPIRY_HOURS, get_env
from rxportal.errors import Unauthenticated
from rxportal.models import Identity
from rxportal.validation import parse_int

ROLE_HEADER = "X-Role"
USER_ID_HEADER = "X-User-ID"


def parse_role(value: Optional[str]) -> str:
    if value not in ROLES:
        raise Unauthenticated("invalid or missing X-Role header")
    return value


def parse_user_id(value: Optional[str]) -> int:
    if not value:
        raise Unauthenticated("missing X-User-ID header")
    try:
        user_id = parse_int(value)
    except ValueError:
        raise Unauthenticated("invalid X-User-ID header")
    if user_id <= 0:
        raise Unauthenticated("invalid X-User-ID header")
    return user_id


class HeaderAuthenticator:
    """Trust-the-header identity: X-Role and X-User-ID are taken as given."""

    def authenticate(self, headers: Mapping[str, str]) -> Identity:
        role = parse_role(headers.get(ROLE_HEADER))
        try:
            return Identity(role=role, user_id=parse_user_id(headers.get(USER_ID_HEADER)))
        except Unauthenticated as e:
            return Identity(role=role, user_id_error=e.message)


class JWTAuthenticator:
    """Bearer-token identity. The token carries `role` and `sub` (caller id)."""

    def __init__(self, secret_key: str):
        self.secret_key = secret_key

    def authenticate(self, headers: Mapping[str, str]) -> Identity:
        auth_header = headers.get("Authorization", "")
        scheme, _, token = auth_header.partition(" ")
        if scheme.lower() != "bearer" or not token:
            raise Unauthenticated("Authentication token is missing")

        payload = verify_token(token, self.secret_key)
        if payload is None:
            raise Unauthenticated("invalid or expired token")

        role = parse_role(payload.get("role"))
        try:
            return Identity(role=role, user_id=parse_user_id(str(payload.get("sub") or "")))
        except Unauthenticated as e:
            return Identity(role=role, user_id_error=e.message)


def generate_token(role: str, user_id: int, secret_key: str) -> str:
    """Mint a signed token for a role and caller id."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "iat": now,
        "exp": now + timedelta(hours=TOKEN_EXPIRY_HOURS),
    }
    return jwt.encode(payload, secret_key, algorithm="HS256")


def verify_token(token: str, secret_key: str) -> Optional[Dict[str, Any]]:
    """Verify a token and return the decoded payload (or None)."""
    try:
        return jwt.decode(token, secret_key, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def build_authenticator(mode: str = AUTH_MODE):
    """Pick the identity strategy for this process."""
    if mode == "header":
        return HeaderAuthenticator()
    if mode == "jwt":
        return JWTAuthenticator(get_env("JWT_SECRET_KEY"))
    raise ValueError(f"Unknown AUTH_MODE: {mode}")


def identity_required(f):
    """Decorator that resolves the caller's Identity into `g.identity`."""
    @wraps(f)
    def decorated(*args, **kwargs):
        authenticator = current_app.config["AUTHENTICATOR"]
        g.identity = authenticator.authenticate(request.headers)
        return f(*args, **kwargs)

    return decorated
