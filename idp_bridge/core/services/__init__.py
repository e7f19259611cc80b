"""Core services exports."""

# Authentication orchestration
from .authentication_service import AuthenticationService, AuthRedirect, InlineLoginPage

# Configuration
from .configuration_service import ConfigurationService

# Database Service
from .database.db_session import DbSessionService

# User store and reconciliation
from .external_auth_service import ExternalAuth, SqlExternalAuthService

# IdP clients
from .management_client import IdpManagementClient
from .oidc_client_service import OidcClientService
from .protocol_client import OidcProtocolClient
from .user_provision_service import UserProvisionService

__all__ = [
    # Authentication orchestration
    "AuthenticationService",
    "AuthRedirect",
    "InlineLoginPage",
    # Configuration
    "ConfigurationService",
    # Database Service
    "DbSessionService",
    # User store and reconciliation
    "ExternalAuth",
    "SqlExternalAuthService",
    "UserProvisionService",
    # IdP clients
    "IdpManagementClient",
    "OidcClientService",
    "OidcProtocolClient",
]
