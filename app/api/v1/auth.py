from fastapi import Header, HTTPException

from app.core.config import settings
from app.infrastructure.auth.verify import verify_cron_token, verify_session


def get_tenant(x_tenant: str | None = Header(None)) -> str:
    return x_tenant or settings.DEFAULT_TENANT


def require_session(
    x_session: str | None = Header(None),
    x_user_email: str | None = Header(None),
) -> str:
    email = verify_session(x_session, settings.SESSION_SECRET, settings.ENV, x_user_email)
    if email is None:
        if x_session:
            raise HTTPException(status_code=403, detail="Invalid session")
        raise HTTPException(status_code=401, detail="Unauthorized")
    return email


def require_cron(authorization: str | None = Header(None)) -> None:
    if not settings.CRON_SECRET:
        raise HTTPException(status_code=500, detail="CRON_SECRET is not configured")
    if not verify_cron_token(authorization, settings.CRON_SECRET):
        raise HTTPException(status_code=401, detail="Unauthorized")
