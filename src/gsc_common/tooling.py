from __future__ import annotations

import functools
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional, Protocol

from gsc_common.context import get_request_id, request_scope
from gsc_common.errors import REDACT_TOKEN, typed_error
from gsc_common.telemetry import Telemetry

logger = logging.getLogger(__name__)


_REDACTION_KEYS = {"authorization", "token", "access_token", "refresh_token", "api_key", "apikey"}


def sanitize_args_for_log(args: Any) -> dict:
    """Remove obvious secrets from args (telemetry layer also redacts)."""
    if args is None:
        return {}
    if not isinstance(args, Mapping):
        return {"_raw": repr(args)}
    out: dict[str, Any] = {}
    for k, v in args.items():
        out[str(k)] = REDACT_TOKEN if str(k).lower() in _REDACTION_KEYS else v
    return out


class _Envelope(Protocol):
    text: str
    is_error: bool


@dataclass(frozen=True)
class InstrumentConfig:
    kind: str = "tool"

    # correlation id behavior
    new_corr_id_per_call: bool = True

    # builds the envelope returned when the wrapped call itself raises
    error_envelope: Optional[Callable[[str], _Envelope]] = None


def instrument_dispatch(cfg: InstrumentConfig | None = None):
    """Decorator for ``async def dispatch(self, tool_name, arguments) -> envelope``.

    Times the call and writes one telemetry record to ``self.telemetry``. If the
    wrapped call raises and ``cfg.error_envelope`` is set, the exception becomes
    an error envelope instead of propagating.
    """
    cfg = cfg or InstrumentConfig()

    def decorator(fn: Callable[..., Awaitable[_Envelope]]):
        @functools.wraps(fn)
        async def wrapper(self: Any, tool_name: str, arguments: Mapping[str, Any] | None = None) -> _Envelope:
            with request_scope(None if cfg.new_corr_id_per_call else get_request_id()) as corr_id:
                t0 = time.perf_counter()
                try:
                    envelope = await fn(self, tool_name, arguments)
                except Exception as e:
                    if cfg.error_envelope is None:
                        raise
                    logger.exception("Dispatch of %s failed", tool_name)
                    envelope = cfg.error_envelope(f"Error executing {tool_name}: {e}")
                ms = int((time.perf_counter() - t0) * 1000)

                try:
                    args_for_log: dict[str, Any] = {"args": sanitize_args_for_log(arguments)}
                    if envelope.is_error:
                        args_for_log.update(typed_error("tool_error", envelope.text))

                    telemetry: Telemetry | None = getattr(self, "telemetry", None)
                    if telemetry is not None:
                        telemetry.log_event(
                            cfg.kind, tool_name, args_for_log, ok=not envelope.is_error, ms=ms, corr_id=corr_id
                        )
                except Exception as e:
                    # telemetry never changes the outcome of a call
                    logger.warning("Telemetry for %s skipped: %s", tool_name, e)
            logger.debug("tool %s finished in %sms (error=%s)", tool_name, ms, envelope.is_error)
            return envelope

        return wrapper

    return decorator
