import hashlib
from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from app.config import settings


def identity_key(request: Request) -> str:
    """Rate-limit bucket: the bearer token's hash when present, else the client address"""
    authorization = request.headers.get("authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token:
        return "token:" + hashlib.sha256(token.encode()).hexdigest()
    return "ip:" + get_remote_address(request)


limiter = Limiter(
    key_func=identity_key,
    default_limits=[settings.rate_limit],
    strategy="moving-window",
)
