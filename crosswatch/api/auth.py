import hmac
from typing import List, Optional

from fastapi import HTTPException, Query, Request

from crosswatch.core.config import settings
from crosswatch.core.logger import Logger

logger = Logger("APIAuth")


def candidate_secrets(request: Request, key: Optional[str]) -> List[str]:
    """Bearer token from Authorization and the ?key= query parameter, if present."""
    candidates = []
    auth = request.headers.get("Authorization") or ""
    scheme, _, token = auth.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        candidates.append(token.strip())
    if key:
        candidates.append(key)
    return candidates


def _matches(provided: str, expected: str) -> bool:
    return hmac.compare_digest(provided.encode(), expected.encode())


async def verify_cron_secret(request: Request, key: Optional[str] = Query(None)) -> None:
    """Guard for the cron trigger. Runs before any store or provider access.

    Either credential is enough; a foreign Authorization header does not
    veto a correct ?key=.
    """
    expected = settings.CRON_SECRET

    # If no secret configured, allow all (for dev)
    if not expected:
        logger.warn("CRON_SECRET not set; check-signals is unauthenticated")
        return

    if not any(_matches(c, expected) for c in candidate_secrets(request, key)):
        client = request.client.host if request.client else "unknown"
        logger.warn(f"Unauthorized check-signals attempt from {client}")
        raise HTTPException(status_code=401, detail="Unauthorized")
