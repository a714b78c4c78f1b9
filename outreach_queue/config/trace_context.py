"""Trace ids for batch runs and sync passes.

A trace id is bound for the duration of a run, stamped on every log record,
and sent to the tracker service so both sides of a request can be matched.
"""

import contextvars
import uuid
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from loguru import logger

TRACE_ID_HEADER = "X-Trace-ID"
NO_TRACE = "no-trace"

_current: contextvars.ContextVar[str] = contextvars.ContextVar("trace_id", default="")


def get_trace_id() -> str:
    return _current.get() or NO_TRACE


@contextmanager
def trace_context(trace_id: Optional[str] = None) -> Iterator[str]:
    """Bind a trace id (new if omitted) until the block exits."""
    token = _current.set(trace_id or uuid.uuid4().hex)
    try:
        yield _current.get()
    finally:
        _current.reset(token)


def _stamp(record: dict) -> None:
    record["extra"]["trace_id"] = get_trace_id()


def configure_trace_logging() -> None:
    """Install the loguru patcher that stamps trace ids. Call before adding sinks."""
    logger.configure(patcher=_stamp)


def inject_trace_id_to_headers(headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    headers = dict(headers or {})
    headers[TRACE_ID_HEADER] = get_trace_id()
    return headers
