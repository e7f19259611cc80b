from dataclasses import dataclass

from idp_bridge.core.services import ConfigurationService, DbSessionService


@dataclass
class ApplicationDependencies:
    configuration_service: ConfigurationService
    database_service: DbSessionService
