from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic import Field as PydanticField
from sqlalchemy import TEXT, DateTime, ForeignKey, Integer, String
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from .runtime.base import ContainerState


class TZDatetime(TypeDecorator):
    """Custom DateTime type that ensures timezone-aware datetimes."""

    impl = DateTime(timezone=True)

    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is None:
            raise ValueError(
                "Naive datetime is not allowed. Please provide a timezone-aware datetime."
            )
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            # Assume UTC if no timezone info is present
            return value.replace(tzinfo=timezone.utc)
        return value


class Base(AsyncAttrs, DeclarativeBase):
    """SQLAlchemy declarative base for all ORM models with async support."""

    pass


class User(Base):
    """Owner of deployed servers. Authentication lives outside the engine."""

    __tablename__ = "user"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        TZDatetime(), default=lambda: datetime.now(timezone.utc)
    )


class DockerServer(Base):
    """One deployed, containerized Minecraft server."""

    __tablename__ = "docker_server"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("user.id", ondelete="CASCADE"), index=True
    )
    container_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    port: Mapped[int] = mapped_column(Integer)
    volume_path: Mapped[str] = mapped_column(String(1024))
    version: Mapped[Optional[str]] = mapped_column(String(50))
    loader_type: Mapped[Optional[str]] = mapped_column(String(50))
    loader_version: Mapped[Optional[str]] = mapped_column(String(100))
    status: Mapped[ContainerState] = mapped_column(
        SQLAlchemyEnum(ContainerState), default=ContainerState.CREATED
    )
    client_config_type: Mapped[Optional[str]] = mapped_column(String(50))
    client_config_value: Mapped[Optional[str]] = mapped_column(TEXT)
    created_at: Mapped[datetime] = mapped_column(
        TZDatetime(), default=lambda: datetime.now(timezone.utc)
    )


class PublicServer(Base):
    """Entry of the public server list, linked to a container when docker backed."""

    __tablename__ = "public_server"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255))
    ip_address: Mapped[str] = mapped_column(String(255))
    port: Mapped[int] = mapped_column(Integer, default=25565)
    description: Mapped[Optional[str]] = mapped_column(TEXT)
    container_id: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    created_at: Mapped[datetime] = mapped_column(
        TZDatetime(), default=lambda: datetime.now(timezone.utc)
    )


# Pydantic models for request/response serialization
class RuntimeHints(BaseModel):
    """Already resolved game runtime parameters supplied by the caller."""

    mc_version: Optional[str] = None
    loader_type: Optional[str] = None
    loader_version: Optional[str] = None


class ClientDistribution(BaseModel):
    type: Optional[str] = None
    value: Optional[str] = None


class ServerRecord(BaseModel):
    """Public view of a ``DockerServer`` row."""

    model_config = ConfigDict(from_attributes=True)

    container_id: str
    user_id: int
    name: str
    port: int
    volume_path: str
    version: Optional[str] = None
    loader_type: Optional[str] = None
    loader_version: Optional[str] = None
    status: ContainerState
    client_config_type: Optional[str] = None
    client_config_value: Optional[str] = None
    created_at: datetime

    @property
    def server_root(self) -> str:
        return str(Path(self.volume_path).parent)


class PackSource(BaseModel):
    """An uploaded modpack archive to install during deployment."""

    archive_path: str
    filename: str
    client_type: str = PydanticField(default="full")
