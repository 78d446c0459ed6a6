from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv


DEFAULT_TOKEN_PATH = "./token.json"
DEFAULT_OAUTH_HOST = "localhost"
DEFAULT_OAUTH_PORT = 3000
DEFAULT_OAUTH_CALLBACK_PATH = "/oauth/callback"
DEFAULT_OAUTH_TIMEOUT_S = 300.0
DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


def _walk_up_for_project(start: Path) -> Optional[Path]:
    """First directory at or above ``start`` holding a pyproject.toml or .git."""
    here = start.resolve()
    return next(
        (d for d in (here, *here.parents) if (d / "pyproject.toml").exists() or (d / ".git").exists()),
        None,
    )


@lru_cache(maxsize=1)
def repo_root() -> Path:
    """Project root used for the default .env and telemetry locations.

    GSC_REPO_ROOT wins when set; otherwise the nearest project directory above
    the working directory, then above this package, then the working directory.
    """
    override = os.getenv("GSC_REPO_ROOT")
    if override:
        root = Path(override).expanduser().resolve()
        if not root.is_dir():
            raise RuntimeError(f"GSC_REPO_ROOT is not a directory: {root}")
        return root
    return _walk_up_for_project(Path.cwd()) or _walk_up_for_project(Path(__file__).parent) or Path.cwd()


def _env_file_candidates() -> list[Path]:
    explicit = os.getenv("GSC_ENV_FILE")
    found = [Path(explicit).expanduser()] if explicit else []
    found.append(repo_root() / ".env")
    return [p.resolve() for p in found]


@lru_cache(maxsize=1)
def load_env_once() -> Optional[Path]:
    """Load the first existing dotenv file (GSC_ENV_FILE, then <repo>/.env).

    Variables already present in the environment are left untouched.
    """
    env_file = next((p for p in _env_file_candidates() if p.is_file()), None)
    if env_file is not None:
        load_dotenv(dotenv_path=env_file, override=False)
    return env_file


def _get(env: Mapping[str, str], name: str) -> Optional[str]:
    value = env.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    try:
        return int(env.get(name, default))
    except (TypeError, ValueError):
        return default


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    try:
        return float(env.get(name, default))
    except (TypeError, ValueError):
        return default


def parse_log_level(value: Optional[str]) -> str:
    level = (value or "").strip().lower()
    return level if level in _LOG_LEVELS else "info"


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, read once at startup and passed by reference."""

    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    service_account_path: Optional[str] = None
    token_path: str = DEFAULT_TOKEN_PATH
    default_site: Optional[str] = None
    log_level: str = "info"
    log_format: str = DEFAULT_LOG_FORMAT
    oauth_host: str = DEFAULT_OAUTH_HOST
    oauth_port: int = DEFAULT_OAUTH_PORT
    oauth_callback_path: str = DEFAULT_OAUTH_CALLBACK_PATH
    oauth_timeout: float = DEFAULT_OAUTH_TIMEOUT_S
    telemetry_dir: Optional[str] = None
    disable_telemetry: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        disable = (env.get("GSC_DISABLE_TELEMETRY", "0") or "").strip().lower() in {"1", "true", "yes", "on"}
        return cls(
            client_id=_get(env, "GOOGLE_CLIENT_ID"),
            client_secret=_get(env, "GOOGLE_CLIENT_SECRET"),
            service_account_path=_get(env, "GSC_SERVICE_ACCOUNT_PATH"),
            token_path=_get(env, "GSC_TOKEN_PATH") or DEFAULT_TOKEN_PATH,
            default_site=_get(env, "GSC_DEFAULT_SITE"),
            log_level=parse_log_level(env.get("GSC_LOG_LEVEL")),
            log_format=_get(env, "GSC_LOG_FORMAT") or DEFAULT_LOG_FORMAT,
            oauth_host=_get(env, "GSC_OAUTH_HOST") or DEFAULT_OAUTH_HOST,
            oauth_port=_get_int(env, "GSC_OAUTH_PORT", DEFAULT_OAUTH_PORT),
            oauth_callback_path=_get(env, "GSC_OAUTH_CALLBACK_PATH") or DEFAULT_OAUTH_CALLBACK_PATH,
            oauth_timeout=_get_float(env, "GSC_OAUTH_TIMEOUT", DEFAULT_OAUTH_TIMEOUT_S),
            telemetry_dir=_get(env, "GSC_TELEMETRY_DIR"),
            disable_telemetry=disable,
        )

    @property
    def redirect_uri(self) -> str:
        return f"http://{self.oauth_host}:{self.oauth_port}{self.oauth_callback_path}"

    def resolved_telemetry_dir(self) -> Path:
        if self.telemetry_dir:
            return Path(self.telemetry_dir).expanduser().resolve()
        return (repo_root() / "artifacts" / "telemetry").resolve()


def configure_logging(settings: Settings) -> None:
    """
    Configure logging explicitly. No import-time side effects.
    Idempotent: if logging is already configured, do nothing.
    Logs go to stderr; stdout belongs to the stdio transport.
    """
    root = logging.getLogger()
    if root.handlers:
        return
    logging.basicConfig(level=_LOG_LEVELS[parse_log_level(settings.log_level)], format=settings.log_format)


def init_runtime(*, configure_logs: bool = True, load_env: bool = True) -> Settings:
    """
    Call this from entrypoints only (servers, CLI).
    """
    if load_env:
        load_env_once()
    settings = Settings.from_env()
    if configure_logs:
        configure_logging(settings)
    return settings
