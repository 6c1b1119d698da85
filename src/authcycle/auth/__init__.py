"""
authcycle authentication module.

This module provides the credential model, validity rules, local cache,
login providers, and the reauthentication coordinator.
"""

from authcycle.auth.coordinator import (
    ReauthCoordinator,
    get_reauth_gate,
    reset_reauth_gate,
)
from authcycle.auth.credentials import (
    ConfigurationError,
    Credential,
    CredentialError,
    InteractiveStepRequiredError,
    ProviderError,
    ProviderId,
    SessionTicket,
    TokenRefreshError,
)
from authcycle.auth.providers import (
    GoogleLoginProvider,
    LoginProvider,
    PtcLoginProvider,
    TokenEndpointLoginProvider,
    create_login_provider,
)
from authcycle.auth.session import SessionCollaborators, SessionFacade
from authcycle.auth.store import CredentialStore
from authcycle.auth.validity import ValidityPolicy

__all__ = [
    # Model
    "Credential",
    "SessionTicket",
    "ProviderId",
    # Errors
    "CredentialError",
    "ProviderError",
    "InteractiveStepRequiredError",
    "TokenRefreshError",
    "ConfigurationError",
    # Components
    "ValidityPolicy",
    "CredentialStore",
    "LoginProvider",
    "TokenEndpointLoginProvider",
    "GoogleLoginProvider",
    "PtcLoginProvider",
    "create_login_provider",
    "ReauthCoordinator",
    "get_reauth_gate",
    "reset_reauth_gate",
    # Session
    "SessionCollaborators",
    "SessionFacade",
]
