from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from gsc_common.errors import (
    DelegatedCredentialFileMissingError,
    DelegatedCredentialMalformedError,
    MissingCredentialsError,
)
from gsc_config.settings import Settings

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/webmasters"]

GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"

_REQUIRED_DELEGATED_FIELDS = ("client_email", "private_key")


@dataclass(frozen=True)
class InteractiveCredentialConfig:
    client_id: str
    client_secret: str = field(repr=False)


@dataclass(frozen=True)
class DelegatedCredential:
    """Service-account key material loaded from GSC_SERVICE_ACCOUNT_PATH."""

    client_email: str
    private_key: str = field(repr=False)
    private_key_id: Optional[str] = None
    project_id: Optional[str] = None
    client_id: Optional[str] = None
    token_uri: str = GOOGLE_TOKEN_URI
    source: str = field(default="<memory>", compare=False)

    @classmethod
    def from_info(cls, info: Dict[str, Any], *, source: str = "<memory>") -> "DelegatedCredential":
        if not isinstance(info, dict):
            raise DelegatedCredentialMalformedError(source, "expected a JSON object")

        cred_type = info.get("type", "service_account")
        if cred_type != "service_account":
            raise DelegatedCredentialMalformedError(source, f"unsupported credential type {cred_type!r}")

        for name in _REQUIRED_DELEGATED_FIELDS:
            value = info.get(name)
            if not isinstance(value, str) or not value.strip():
                raise DelegatedCredentialMalformedError(source, f"missing or empty field {name!r}")

        return cls(
            client_email=info["client_email"],
            private_key=info["private_key"],
            private_key_id=info.get("private_key_id"),
            project_id=info.get("project_id"),
            client_id=info.get("client_id"),
            token_uri=info.get("token_uri") or GOOGLE_TOKEN_URI,
            source=source,
        )


class CredentialResolver:
    """Reads interactive-app and delegated credentials from Settings."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def resolve_interactive_config(self) -> InteractiveCredentialConfig:
        client_id = self.settings.client_id
        client_secret = self.settings.client_secret
        if not client_id or not client_secret:
            raise MissingCredentialsError()
        return InteractiveCredentialConfig(client_id=client_id, client_secret=client_secret)

    def resolve_delegated_credential(self) -> Optional[DelegatedCredential]:
        """Return the delegated credential, or None when delegated mode is not configured."""
        raw_path = self.settings.service_account_path
        if not raw_path:
            return None

        path = Path(raw_path).expanduser()
        if not path.is_file():
            raise DelegatedCredentialFileMissingError(raw_path)

        try:
            info = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DelegatedCredentialMalformedError(raw_path, str(e)) from e

        credential = DelegatedCredential.from_info(info, source=raw_path)
        logger.debug("Loaded service account credential for %s", credential.client_email)
        return credential
