"""Database engine and session factory for the local user store."""

from collections.abc import Iterator
from contextlib import contextmanager

from loguru import logger
from sqlalchemy import text
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from idp_bridge.runtime.config.config_data import DatabaseConfig
from idp_bridge.runtime.context import get_config


class DbSessionService:
    def __init__(self, db_config: DatabaseConfig | None = None):
        """Initialize the shared database engine.

        Args:
            db_config: Database settings; taken from the app config when None
        """
        main_config = get_config()
        db_config = db_config or main_config.database

        engine_kwargs: dict = {
            "echo": db_config.echo,
            "connect_args": self._get_connect_args(db_config.url),
        }
        if db_config.url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise every session sees an empty database.
            engine_kwargs["poolclass"] = StaticPool
        elif "sqlite" not in db_config.url:
            engine_kwargs["pool_pre_ping"] = True

        if "sqlite" in db_config.url and main_config.app.environment == "production":
            logger.warning(
                "SQLite is not recommended for production use. "
                "Consider PostgreSQL for better performance and reliability."
            )

        logger.info("Initializing database engine for {}", db_config.url.split("@")[-1])
        self._engine = create_engine(db_config.url, **engine_kwargs)

    @staticmethod
    def _get_connect_args(url: str) -> dict:
        if "sqlite" in url:
            return {"check_same_thread": False}
        return {}

    @property
    def engine(self):
        return self._engine

    def create_all(self) -> None:
        """Create the user and identity tables."""
        from idp_bridge.core.rows import UserIdentityRow, UserRow  # noqa: F401

        SQLModel.metadata.create_all(self._engine)
        logger.info("Database initialized with tables.")

    def get_session(self) -> Session:
        """Return a new SQLModel session bound to the shared engine."""
        return Session(self._engine, expire_on_commit=False, autoflush=True)

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Context manager style helper for repositories and tests."""
        db = self.get_session()
        try:
            yield db
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(
                "Database transaction failed",
                extra={"error_type": type(e).__name__, "error_message": str(e)},
            )
            raise
        finally:
            db.close()

    def health_check(self) -> bool:
        """Perform a health check on the database connection."""
        try:
            with self._engine.connect() as connection:
                connection.execute(text("SELECT 1"))
                return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False
