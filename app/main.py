import logging

from fastapi import FastAPI

from app.api.v1.bookings import router as bookings_router
from app.api.v1.cron import router as cron_router
from app.core.config import settings

class ContextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        extras = []
        for key in (
            "calendar_event_id",
            "tenant",
            "event",
            "from_state",
            "to_state",
            "status",
            "actor",
            "dry_run",
            "succeeded",
            "failed",
            "skipped",
            "error",
        ):
            value = getattr(record, key, None)
            if value not in (None, ""):
                extras.append(f"{key}={value}")
        base = super().format(record)
        if extras:
            return f"{base} | " + " ".join(extras)
        return base


handler = logging.StreamHandler()
handler.setFormatter(ContextFormatter("%(levelname)s:%(name)s:%(message)s"))

root = logging.getLogger()
root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
root.handlers.clear()
root.addHandler(handler)

app = FastAPI(title="Room Booking Service", version="1.0.0")

app.include_router(bookings_router, prefix="/api", tags=["bookings"])
app.include_router(cron_router, prefix="/api", tags=["cron"])


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
