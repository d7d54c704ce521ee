"""Log context variables propagated across async boundaries."""

from contextvars import ContextVar
from typing import Dict, Optional

_domain: ContextVar[Optional[str]] = ContextVar("log_domain", default=None)
_stage: ContextVar[Optional[str]] = ContextVar("log_stage", default=None)
_batch_id: ContextVar[Optional[str]] = ContextVar("log_batch_id", default=None)


def set_log_context(
    domain: Optional[str] = None,
    stage: Optional[str] = None,
    batch_id: Optional[str] = None,
) -> None:
    """
    Set context values injected into every log record.

    Only non-None arguments are applied; use clear_log_context() to reset.
    Tasks created after this call inherit the values.
    """
    if domain is not None:
        _domain.set(domain)
    if stage is not None:
        _stage.set(stage)
    if batch_id is not None:
        _batch_id.set(batch_id)


def get_log_context() -> Dict[str, Optional[str]]:
    """Return the current log context as a dict."""
    return {
        "domain": _domain.get(),
        "stage": _stage.get(),
        "batch_id": _batch_id.get(),
    }


def clear_log_context() -> None:
    """Reset all context values."""
    _domain.set(None)
    _stage.set(None)
    _batch_id.set(None)
