"""What the client does with each response or transport failure.

The table is kept free of any I/O so it can be read (and tested) on its own:

    status   action
    ------   ------------------------------------------------------
    200/201  DECODE      parse the body as JSON (empty body -> EMPTY_BODY)
    204      NO_CONTENT  return None
    429      RETRY       after Retry-After seconds (1 if absent/invalid)
    502      RETRY       after the fixed backoff
    other    FAIL        raise SpotifyAPIError

Transport errors caused by a connection reset are retried after the fixed
backoff; every other transport error is fatal. Retries are never capped.
"""

import errno
import re
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

import httpx

DEFAULT_BACKOFF_MS = 1000
DEFAULT_RETRY_AFTER_SECONDS = 1

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


class Action(Enum):
    DECODE = "decode"
    NO_CONTENT = "no_content"
    RETRY = "retry"
    FAIL = "fail"


@dataclass(frozen=True)
class Decision:
    action: Action
    delay_ms: int = 0
    reason: str = ""


def retry_after_seconds(headers: Mapping[str, str]) -> int:
    """Read the Retry-After header as whole seconds.

    Only the leading integer is used ("3.5" -> 3). Missing, zero, negative or
    non-numeric values fall back to one second.
    """
    raw = headers.get("retry-after")
    if raw is None:
        raw = headers.get("Retry-After")
    if raw is None:
        return DEFAULT_RETRY_AFTER_SECONDS

    match = _LEADING_INT.match(str(raw))
    if not match:
        return DEFAULT_RETRY_AFTER_SECONDS

    seconds = int(match.group(1))
    return seconds if seconds > 0 else DEFAULT_RETRY_AFTER_SECONDS


def decide(status_code: int, headers: Mapping[str, str], *, backoff_ms: int = DEFAULT_BACKOFF_MS) -> Decision:
    if status_code in (200, 201):
        return Decision(Action.DECODE)
    if status_code == 204:
        return Decision(Action.NO_CONTENT)
    if status_code == 429:
        seconds = retry_after_seconds(headers)
        return Decision(Action.RETRY, delay_ms=seconds * 1000, reason=f"rate limited (retry after {seconds}s)")
    if status_code == 502:
        return Decision(Action.RETRY, delay_ms=backoff_ms, reason="bad gateway")
    return Decision(Action.FAIL, reason=f"status {status_code}")


def is_connection_reset(exc: BaseException) -> bool:
    """True when a transport error was ultimately caused by a connection reset."""
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, ConnectionResetError):
            return True
        if isinstance(current, OSError) and current.errno == errno.ECONNRESET:
            return True
        current = current.__cause__ or current.__context__
    return False


def decide_transport_error(exc: Exception, *, backoff_ms: int = DEFAULT_BACKOFF_MS) -> Decision:
    if isinstance(exc, httpx.TransportError) and is_connection_reset(exc):
        return Decision(Action.RETRY, delay_ms=backoff_ms, reason="connection reset")
    return Decision(Action.FAIL, reason=f"{type(exc).__name__}: {exc}")
