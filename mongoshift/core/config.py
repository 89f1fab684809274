from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MigrationSettings(BaseSettings):
    """
    Configuration for the migration runner.

    Values come from MONGOSHIFT_* environment variables or a .env file. A
    settings object is frozen: the runner reads it for a whole run and never
    changes it midway.
    """

    # Runner settings
    enabled: bool = Field(default=True, description="Run migrations at all")

    # MongoDB settings
    mongodb: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI",
    )
    database_name: Optional[str] = Field(
        default=None,
        description="Target database, defaults to the database in the URI",
    )

    # Collections. Renaming the changelog collection on an existing system
    # makes every change unit look new and run again.
    changelog_collection: str = Field(default="dbchangelog", min_length=1)
    lock_collection: str = Field(default="dbchangeloglock", min_length=1)

    # Lock settings
    wait_for_lock: bool = Field(
        default=False,
        description="Poll for the lock when another runner holds it",
    )
    lock_wait_timeout: float = Field(
        default=300.0,
        gt=0,
        description="Maximum time to wait for the lock, in seconds",
    )
    lock_poll_interval: float = Field(
        default=10.0,
        gt=0,
        description="Time between lock attempts, in seconds",
    )
    throw_if_cannot_obtain_lock: bool = Field(
        default=False,
        description="Raise MigrationLockError instead of exiting quietly",
    )

    # Logging settings
    log_level: str = Field(default="INFO")
    json_logs: bool = Field(default=False)

    model_config = SettingsConfigDict(
        env_prefix="MONGOSHIFT_",
        env_file=".env",
        extra="ignore",
        frozen=True,
    )


def get_settings(**overrides) -> MigrationSettings:
    """Load settings from the environment, applying explicit overrides."""
    return MigrationSettings(**overrides)
