from __future__ import annotations

import json
import math
import logging
import os
import tempfile
import time
from contextlib import suppress
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from gsc_common.errors import TokenPersistenceError

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class TokenRecord:
    """Persisted access/refresh token pair.

    ``expiry_date`` is an absolute epoch timestamp in milliseconds.
    """

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expiry_date: int = 0
    scope: Optional[str] = None

    def is_expired(self, now: int) -> bool:
        return now >= self.expiry_date

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if data["scope"] is None:
            del data["scope"]
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "TokenRecord":
        if not isinstance(data, dict):
            raise ValueError("token record must be a JSON object")

        access_token = data.get("access_token")
        refresh_token = data.get("refresh_token")
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("access_token missing")
        if not isinstance(refresh_token, str) or not refresh_token:
            raise ValueError("refresh_token missing")

        expiry = data.get("expiry_date")
        # bool is an int subclass; reject it explicitly
        if isinstance(expiry, bool) or not isinstance(expiry, (int, float)) or not math.isfinite(expiry):
            raise ValueError("expiry_date must be epoch milliseconds")

        token_type = data.get("token_type") or "Bearer"
        scope = data.get("scope")
        if scope is not None and not isinstance(scope, str):
            raise ValueError("scope must be a string")

        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            token_type=str(token_type),
            expiry_date=int(expiry),
            scope=scope,
        )


class TokenStore:
    """Single token file, replaced whole on every save."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Optional[TokenRecord]:
        """Return the stored record, or None if the file is absent or unreadable."""
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return TokenRecord.from_dict(data)
        except (OSError, UnicodeDecodeError, ValueError, RecursionError) as e:
            # JSONDecodeError is a ValueError; deep nesting raises RecursionError
            logger.warning("Ignoring unreadable token file %s: %s", self.path, e)
            return None

    def save(self, record: TokenRecord) -> None:
        payload = json.dumps(record.to_dict(), indent=2)
        directory = self.path.parent
        tmp_name = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".token-", suffix=".tmp", dir=str(directory))
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            raise TokenPersistenceError(str(self.path), e) from e
        finally:
            if tmp_name is not None:
                with suppress(OSError):
                    os.unlink(tmp_name)
        logger.debug("Token saved to %s", self.path)
