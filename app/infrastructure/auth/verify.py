from __future__ import annotations

import hmac
import logging


logger = logging.getLogger(__name__)


def sign_session(email: str, secret: str) -> str:
    signature = hmac.new(secret.encode("utf-8"), email.encode("utf-8"), "sha256").hexdigest()
    return f"{email}.{signature}"


def verify_cron_token(authorization: str | None, cron_secret: str) -> bool:
    if not authorization:
        return False
    try:
        scheme, token = authorization.split(" ", 1)
    except ValueError:
        return False
    if scheme.lower() != "bearer":
        return False
    return hmac.compare_digest(token.strip(), cron_secret)


def verify_session(
    session_header: str | None,
    secret: str | None,
    env: str,
    fallback_email: str | None = None,
) -> str | None:
    """Return the caller's email for a valid session token, else None."""
    if not session_header:
        if env.lower() in {"dev", "local"} and not secret and fallback_email:
            logger.warning("Missing session header; accepting x-user-email in dev mode")
            return fallback_email
        return None

    if not secret:
        logger.error("Missing session secret for signature verification")
        return None

    try:
        email, signature = session_header.rsplit(".", 1)
    except ValueError:
        return None

    expected = hmac.new(secret.encode("utf-8"), email.encode("utf-8"), "sha256").hexdigest()
    if not hmac.compare_digest(expected, signature):
        return None
    return email
