"""
Structured Logging Configuration

Features:
  - JSON-formatted logs for centralized log collection (ELK / Loki)
  - Job ID + tenant ID tracking across a workflow unit's execution
  - Secret masking (provider API key, bearer tokens)
  - Environment-aware: JSON in production, human-readable in dev
"""

import json
import logging
import re
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator, Optional

from app.config import settings

# ── Context variables for job / request tracking ──
job_id_ctx: ContextVar[str] = ContextVar("job_id", default="-")
tenant_id_ctx: ContextVar[str] = ContextVar("tenant_id", default="-")


def generate_job_id() -> str:
    return str(uuid.uuid4())[:8]


@contextmanager
def log_context(tenant_id: Optional[str] = None, job_id: Optional[str] = None) -> Iterator[None]:
    """Bind tenant / job identifiers to every log line emitted inside the block."""
    job_token = job_id_ctx.set(job_id or generate_job_id())
    tenant_token = tenant_id_ctx.set(str(tenant_id) if tenant_id else "-")
    try:
        yield
    finally:
        tenant_id_ctx.reset(tenant_token)
        job_id_ctx.reset(job_token)


# ═══════════════════════════════════════════
#  Secret Masking
# ═══════════════════════════════════════════

_REDACT_PATTERNS = [
    (re.compile(r'("?token"?\s*[:=]\s*)"[^"]*"', re.I), r'\1"***"'),
    (re.compile(r'("?secret"?\s*[:=]\s*)"[^"]*"', re.I), r'\1"***"'),
    (re.compile(r'("?api_key"?\s*[:=]\s*)"[^"]*"', re.I), r'\1"***"'),
    (re.compile(r'("?authorization"?\s*[:=]\s*)"[^"]*"', re.I), r'\1"***"'),
    (re.compile(r'(Bearer\s+)[A-Za-z0-9._\-]+'), r'\1***'),
]


def mask_secrets(text: str) -> str:
    """Mask credentials that may leak into provider error messages."""
    for pattern, replacement in _REDACT_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


# ═══════════════════════════════════════════
#  Formatters
# ═══════════════════════════════════════════

class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter for production."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S.000Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": mask_secrets(record.getMessage()),
            "job_id": job_id_ctx.get("-"),
            "tenant_id": tenant_id_ctx.get("-"),
        }

        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)

        # Tenant notifications carry their payload for the host platform's log consumer
        notification = getattr(record, "notification", None)
        if notification:
            log_entry["notification"] = notification

        # Remove empty context
        log_entry = {k: v for k, v in log_entry.items() if v and v != "-"}

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class HumanFormatter(logging.Formatter):
    """Readable formatter for development."""

    FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-28s | [%(job_id)s %(tenant_id)s] %(message)s"

    def format(self, record: logging.LogRecord) -> str:
        record.job_id = job_id_ctx.get("-")
        record.tenant_id = tenant_id_ctx.get("-")
        return mask_secrets(super().format(record))


# ═══════════════════════════════════════════
#  Setup
# ═══════════════════════════════════════════

def setup_logging() -> None:
    """Configure application-wide logging (API process and Celery workers)."""
    root = logging.getLogger()

    # Clear existing handlers
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if settings.is_production or settings.is_staging:
        handler.setFormatter(JSONFormatter())
        root.setLevel(logging.INFO)
    else:
        handler.setFormatter(
            HumanFormatter(HumanFormatter.FORMAT, datefmt="%H:%M:%S")
        )
        root.setLevel(logging.DEBUG)

    root.addHandler(handler)

    # Quiet noisy third-party loggers
    for name in ("uvicorn.access", "httpcore", "httpx", "urllib3", "asyncio", "celery.redirected"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("uvicorn.error").setLevel(logging.INFO)
