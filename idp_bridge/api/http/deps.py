"""FastAPI dependency implementations.

Application-wide services live on `app.state.app_dependencies`; everything that
touches the user's session or the current IdP settings is built per request.
"""

from __future__ import annotations

from collections.abc import Iterator

from fastapi import Depends, Request
from sqlmodel import Session

from idp_bridge.api.http.app_data import ApplicationDependencies
from idp_bridge.core.services import (
    AuthenticationService,
    ConfigurationService,
    IdpManagementClient,
    OidcClientService,
    OidcProtocolClient,
    SqlExternalAuthService,
    UserProvisionService,
)
from idp_bridge.core.storage import SessionTransientStore
from idp_bridge.runtime.config.config_data import IdpSettings
from idp_bridge.runtime.context import get_config


def get_app_dependencies(request: Request) -> ApplicationDependencies:
    return request.app.state.app_dependencies


def get_db_session(request: Request) -> Iterator[Session]:
    """Yield a database session that is closed after the request."""
    app_deps = get_app_dependencies(request)
    db = app_deps.database_service.get_session()
    try:
        yield db
    finally:
        db.close()


def get_configuration_service(request: Request) -> ConfigurationService:
    """Get the IdP configuration service instance."""
    return get_app_dependencies(request).configuration_service


def get_idp_settings(
    configuration: ConfigurationService = Depends(get_configuration_service),
) -> IdpSettings:
    """Resolve the IdP settings for this request, picking up any recent write."""
    return configuration.settings()


def get_oidc_client_service(
    request: Request,
    settings: IdpSettings = Depends(get_idp_settings),
    configuration: ConfigurationService = Depends(get_configuration_service),
) -> OidcClientService:
    """Exchange client bound to the caller's session."""
    timeout = get_config().idp.http_timeout
    protocol_client = OidcProtocolClient(
        settings, SessionTransientStore(request.session), timeout=timeout
    )
    management_client = (
        IdpManagementClient(settings, timeout=timeout) if settings.fetch_idp_roles else None
    )
    return OidcClientService(
        protocol_client,
        settings,
        redirect_uri=configuration.redirect_uri(str(request.base_url)),
        management_client=management_client,
    )


def get_user_provision_service(
    settings: IdpSettings = Depends(get_idp_settings),
    db_session: Session = Depends(get_db_session),
) -> UserProvisionService:
    return UserProvisionService(SqlExternalAuthService(db_session), settings)


def get_authentication_service(
    settings: IdpSettings = Depends(get_idp_settings),
    oidc_client: OidcClientService = Depends(get_oidc_client_service),
    user_provision: UserProvisionService = Depends(get_user_provision_service),
) -> AuthenticationService:
    return AuthenticationService(oidc_client, user_provision, settings)
