"""Session token verification for API requests."""
from typing import Optional

from fastapi import Request
from jose import JWTError, jwt

from summary_chat import config
from summary_chat.config import AUTH_COOKIE_NAME, JWT_ALGORITHM
from summary_chat.errors import Unauthorized


def _token_from(request: Request) -> Optional[str]:

    token = request.cookies.get(AUTH_COOKIE_NAME)

    if token:
        return token

    header = request.headers.get("Authorization", "")

    if header.lower().startswith("bearer "):
        return header[7:].strip() or None

    return None


def decode_user_id(token: str, secret: Optional[str] = None) -> Optional[str]:
    """Return the user id carried by a valid token, else None."""
    secret = secret or config.JWT_SECRET

    if not secret:
        return None

    try:
        payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None

    user_id = payload.get("userId", payload.get("sub"))

    return str(user_id) if user_id is not None else None


async def authenticate(request: Request) -> str:
    """FastAPI dependency: resolve the calling user or raise Unauthorized."""
    token = _token_from(request)

    if not token:
        raise Unauthorized("Unauthorized")

    user_id = decode_user_id(token)

    if user_id is None:
        raise Unauthorized("Unauthorized")

    request.state.user_id = user_id

    return user_id
