from __future__ import annotations

import datetime as _dt
import json
import logging
from pathlib import Path
from typing import Any

from gsc_common.context import get_request_id
from gsc_common.errors import REDACT_TOKEN

logger = logging.getLogger(__name__)

DEFAULT_TELEMETRY_FILE = "mcp-telemetry.jsonl"

_SECRET_KEYS = {
    "authorization",
    "access_token",
    "refresh_token",
    "id_token",
    "token",
    "client_secret",
    "private_key",
    "private_key_id",
    "api_key",
    "apikey",
}


RECENT_MAX = 200


def _mask(value: Any) -> str:
    # keep the scheme of an Authorization header visible
    if isinstance(value, str) and value[:7].lower() == "bearer ":
        return f"Bearer {REDACT_TOKEN}"
    return REDACT_TOKEN


def _is_secret_key(key: Any) -> bool:
    return isinstance(key, str) and key.strip().lower() in _SECRET_KEYS


def redact_secrets(obj: Any) -> Any:
    """Copy of ``obj`` with the value under every secret-named key masked, at any depth."""
    if isinstance(obj, dict):
        return {k: _mask(v) if _is_secret_key(k) else redact_secrets(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [redact_secrets(item) for item in obj]
    return obj


def _utc_timestamp() -> str:
    return _dt.datetime.now(_dt.timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class Telemetry:
    """Append-only JSONL record of tool calls.

    Writing is best-effort: an unwritable directory is logged and ignored.
    """

    def __init__(self, directory: Path | None, *, enabled: bool = True, filename: str = DEFAULT_TELEMETRY_FILE) -> None:
        self.directory = directory
        self.enabled = enabled and directory is not None
        self.filename = filename

    @property
    def path(self) -> Path | None:
        if self.directory is None:
            return None
        return self.directory / self.filename

    def log_event(
        self,
        kind: str,
        name: str,
        args: dict | None = None,
        ok: bool = True,
        ms: int = 0,
        *,
        corr_id: str | None = None,
    ) -> None:
        path = self.path
        if not self.enabled or path is None:
            return

        request_id = get_request_id()
        line = json.dumps(
            redact_secrets(
                {
                    "ts": _utc_timestamp(),
                    "kind": kind,
                    "name": name,
                    "request_id": request_id,
                    "corr_id": corr_id or request_id,
                    "args": dict(args or {}),
                    "ok": bool(ok),
                    "ms": int(ms),
                }
            ),
            ensure_ascii=False,
            default=str,
        )
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            logger.warning("Telemetry write failed (%s): %s", path, e)

    def recent(self, n: int = 50) -> dict:
        """Last ``n`` records (clamped to 1..200), masked again on the way out."""
        path = self.path
        if path is None or not path.exists():
            return {"records": []}

        try:
            count = max(1, min(int(n), RECENT_MAX))
        except (TypeError, ValueError):
            count = 50

        records = []
        for raw in path.read_text(encoding="utf-8").splitlines()[-count:]:
            try:
                records.append(redact_secrets(json.loads(raw)))
            except json.JSONDecodeError:
                logger.debug("Skipping unreadable telemetry line in %s", path)
        return {"records": records}


NULL_TELEMETRY = Telemetry(None, enabled=False)
