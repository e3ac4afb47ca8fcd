import hmac
import hashlib
import time
from typing import Optional

from fastapi import Header, HTTPException, Request

from sealtrack.settings import settings

MAX_SKEW = 120  # seconds


def sign(secret: str, ts: int, agent_id: str, path: str) -> str:
    """Signature the mobile app sends in X-Signature."""
    msg = f"{ts}.{agent_id}.{path}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), msg, hashlib.sha256).hexdigest()


async def agent_guard(
    request: Request,
    x_agent_id: str = Header(None),
    x_api_key: str = Header(None),
    x_device_id: str = Header(None),
    x_ts: str = Header(None),
    x_signature: str = Header(None),
) -> Optional[str]:
    """
    Return the trusted agent id of a field submission.

    The identity provider has already authenticated the agent; when
    REQUIRE_SIGNED_SUBMISSIONS is on, the request must also carry a fresh
    HMAC signature from the registered mobile app.
    """
    if not settings.require_signed_submissions:
        return x_agent_id

    if not all([x_agent_id, x_api_key, x_device_id, x_ts, x_signature]):
        raise HTTPException(status_code=401, detail="missing auth headers")
    if x_api_key != getattr(settings, "API_KEY_APP", None):
        raise HTTPException(status_code=401, detail="invalid api key")
    try:
        ts = int(x_ts)
    except ValueError:
        raise HTTPException(status_code=401, detail="bad timestamp")
    if abs(int(time.time()) - ts) > MAX_SKEW:
        raise HTTPException(status_code=401, detail="stale request")

    secret = getattr(settings, "SIGNING_SECRET", None)
    if not secret:
        raise HTTPException(status_code=500, detail="server signing secret not set")
    want = sign(secret, ts, x_agent_id, request.url.path)
    if not hmac.compare_digest(want, x_signature):
        raise HTTPException(status_code=401, detail="bad signature")

    # expose for handler if useful
    request.state.device_id = x_device_id
    request.state.ts = ts
    return x_agent_id
