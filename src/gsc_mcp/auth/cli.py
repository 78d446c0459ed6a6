"""Interactive ``auth`` command: run the consent flow once and persist the token."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Callable

from gsc_common.errors import ConfigurationError, GSCError
from gsc_config.settings import Settings, init_runtime
from gsc_mcp.auth.credentials import CredentialResolver
from gsc_mcp.auth.oauth_flow import OAuthFlowCoordinator
from gsc_mcp.auth.token_store import TokenRecord, TokenStore

logger = logging.getLogger(__name__)

CREDENTIALS_HINT = (
    "Set GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET (in the environment or a .env file).\n"
    "Create an OAuth client ID of type 'Desktop app' in the Google Cloud Console and add\n"
    "{redirect} as an authorized redirect URI."
)


async def run_auth(
    settings: Settings,
    *,
    out: Callable[[str], None] = print,
    coordinator_factory: Callable[..., OAuthFlowCoordinator] = OAuthFlowCoordinator.from_settings,
) -> TokenRecord:
    config = CredentialResolver(settings).resolve_interactive_config()
    store = TokenStore(settings.token_path)
    if store.exists():
        out(f"Existing token found at {store.path}")
        out("Re-authenticating will replace it.\n")

    coordinator = coordinator_factory(settings, config, store)
    url = await coordinator.start()
    try:
        out("Opening your browser to authorize access to Google Search Console.")
        out(f"If it does not open, visit this URL:\n\n{url}\n")
        if not coordinator.open_browser(url):
            logger.info("Could not launch a browser")
        token = await coordinator.await_result()
    finally:
        await coordinator.close()
    out(f"Authentication successful! Token saved to: {store.path}")
    return token


def main() -> int:
    settings = init_runtime()
    try:
        asyncio.run(run_auth(settings))
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        print(CREDENTIALS_HINT.format(redirect=settings.redirect_uri), file=sys.stderr)
        return 1
    except GSCError as e:
        print(f"Authentication failed: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Could not start the OAuth callback listener on {settings.redirect_uri}: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Authentication cancelled.", file=sys.stderr)
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
