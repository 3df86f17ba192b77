import os
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

_CONFIG_PATH = os.getenv("MCDEPLOY_CONFIG", "config.toml")
_ENV_PATH = os.getenv("MCDEPLOY_ENV", ".env")


class DockerSettings(BaseModel):
    base_url: str = "unix://var/run/docker.sock"
    ping_timeout_seconds: float = 5.0
    image_repository: str = "itzg/minecraft-server"
    container_port: int = 25565
    port_range_start: int = 10000
    port_range_end: int = 65535
    port_allocation_attempts: int = 20
    public_host: str = "127.0.0.1"


class MaintenanceSettings(BaseModel):
    sweep_interval_seconds: int = 5 * 60
    clipboard_ttl_seconds: int = 5 * 60
    finished_task_ttl_seconds: int = 10 * 60


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        toml_file=_CONFIG_PATH,
        env_file=_ENV_PATH,
        extra="ignore",
    )

    database_url: str = "sqlite:///./mcdeploy.db"
    servers_path: Path = Field(default=Path("minecraft_servers"))
    logs_dir: Path = Field(default=Path("logs"))

    host: str = "0.0.0.0"
    port: int = 5678

    docker: DockerSettings = Field(default_factory=DockerSettings)
    maintenance: MaintenanceSettings = Field(default_factory=MaintenanceSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Source order: init args > OS env > .env > config.toml > secrets
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )


settings = Settings()
