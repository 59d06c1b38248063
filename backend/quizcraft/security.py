# Owner token signing and the authenticated-owner dependency.
import hashlib
import hmac
from typing import Optional

from fastapi import Header, Request

from quizcraft.errors import Unauthorized


# Sign a user id with HMAC-SHA256 so it can be handed back as a bearer token.
def sign_owner_token(user_id: str, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), user_id.encode("utf-8"), hashlib.sha256)
    return f"{user_id}.{digest.hexdigest()}"


# Return the user id carried by a valid token, or None.
def verify_owner_token(token: str, secret: str) -> Optional[str]:
    user_id, _, signature = token.rpartition(".")
    if not user_id or not signature:
        return None
    expected = sign_owner_token(user_id, secret).rpartition(".")[2]
    if not hmac.compare_digest(expected, signature):
        return None
    return user_id


# Resolve the opaque owner id from the Authorization header.
def get_owner_id(request: Request, authorization: Optional[str] = Header(None)) -> str:
    if not authorization:
        raise Unauthorized("missing credentials")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthorized("invalid credentials")
    owner_id = verify_owner_token(token.strip(), request.app.state.settings.secret_key)
    if owner_id is None:
        raise Unauthorized("invalid credentials")
    return owner_id
