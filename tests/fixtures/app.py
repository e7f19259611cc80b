"""Application fixtures: the web app wired to in-memory settings and database."""

from __future__ import annotations

from collections.abc import Generator
from typing import Any

import pytest
from fastapi.testclient import TestClient

from idp_bridge.api.http.app import create_app
from idp_bridge.api.http.app_data import ApplicationDependencies
from idp_bridge.core.services import ConfigurationService, DbSessionService
from idp_bridge.core.storage import InMemoryConfigStorage, InMemorySecretRepository
from idp_bridge.runtime.config.config_data import DatabaseConfig
from tests.utils import CLIENT_ID, CLIENT_SECRET, COOKIE_SECRET, DOMAIN


def stored_idp_settings(**overrides: Any) -> dict[str, Any]:
    """Stored settings of the test tenant; secrets are held by reference."""
    values: dict[str, Any] = {
        "domain": DOMAIN,
        "client_id": CLIENT_ID,
        "client_secret_ref": "client-secret",
        "cookie_secret_ref": "cookie-secret",
        "jwt_signing_algorithm": "HS256",
        "redirect_for_sso": True,
    }
    values.update(overrides)
    return values


@pytest.fixture
def configuration_service() -> ConfigurationService:
    return ConfigurationService(
        InMemoryConfigStorage(stored_idp_settings()),
        InMemorySecretRepository(
            {"client-secret": CLIENT_SECRET, "cookie-secret": COOKIE_SECRET}
        ),
        env_overrides={},
    )


@pytest.fixture
def database_service() -> Generator[DbSessionService]:
    service = DbSessionService(DatabaseConfig(url="sqlite://"))
    service.create_all()
    yield service
    service.engine.dispose()


@pytest.fixture
def app_dependencies(
    configuration_service: ConfigurationService, database_service: DbSessionService
) -> ApplicationDependencies:
    return ApplicationDependencies(
        configuration_service=configuration_service,
        database_service=database_service,
    )


@pytest.fixture
def client(app_dependencies: ApplicationDependencies) -> Generator[TestClient]:
    """Test client that does not follow redirects, so IdP hops can be inspected."""
    with TestClient(create_app(app_dependencies), follow_redirects=False) as test_client:
        yield test_client
