from gsc_mcp.auth.credentials import (
    SCOPES,
    CredentialResolver,
    DelegatedCredential,
    InteractiveCredentialConfig,
)
from gsc_mcp.auth.oauth_flow import FlowState, OAuthFlowCoordinator
from gsc_mcp.auth.session import AuthMode, AuthSession, AuthSessionProvider
from gsc_mcp.auth.token_store import TokenRecord, TokenStore

__all__ = [
    "SCOPES",
    "AuthMode",
    "AuthSession",
    "AuthSessionProvider",
    "CredentialResolver",
    "DelegatedCredential",
    "FlowState",
    "InteractiveCredentialConfig",
    "OAuthFlowCoordinator",
    "TokenRecord",
    "TokenStore",
]
