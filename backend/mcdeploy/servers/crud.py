"""CRUD operations for deployed server records."""

from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import DockerServer, PublicServer, User
from ..runtime.base import ContainerState


async def ensure_user(session: AsyncSession, username: str) -> User:
    """Get a user by name, creating it when missing.

    Args:
        session: Database session
        username: Owner name

    Returns:
        The existing or newly created user
    """
    result = await session.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()
    if user is not None:
        return user

    user = User(username=username)
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def create_server_record(
    session: AsyncSession,
    *,
    user_id: int,
    container_id: str,
    name: str,
    port: int,
    volume_path: str,
    version: Optional[str] = None,
    loader_type: Optional[str] = None,
    loader_version: Optional[str] = None,
    listing_host: str = "127.0.0.1",
) -> DockerServer:
    """Persist a deployed server together with its public listing entry.

    Args:
        session: Database session
        user_id: Owning user
        container_id: Runtime identifier of the container
        name: Display name as supplied by the user
        port: Allocated host port
        volume_path: Host directory bound as the container's data volume
        version: Declared game version
        loader_type: Declared mod loader
        loader_version: Declared mod loader version
        listing_host: Address written into the listing entry

    Returns:
        Created server

    Raises:
        ValueError: If a record for the container already exists
    """
    existing = await get_server_by_container_id(session, container_id)
    if existing:
        raise ValueError(f"Server for container '{container_id}' already exists")

    server = DockerServer(
        user_id=user_id,
        container_id=container_id,
        name=name,
        port=port,
        volume_path=volume_path,
        version=version,
        loader_type=loader_type,
        loader_version=loader_version,
        status=ContainerState.CREATED,
    )
    session.add(server)
    session.add(
        PublicServer(
            name=name,
            ip_address=listing_host,
            port=port,
            description=f"Docker Server: {name}",
            container_id=container_id,
        )
    )

    await session.commit()
    await session.refresh(server)
    return server


async def get_server_by_container_id(
    session: AsyncSession, container_id: str
) -> Optional[DockerServer]:
    result = await session.execute(
        select(DockerServer).where(DockerServer.container_id == container_id)
    )
    return result.scalar_one_or_none()


async def list_servers_by_owner(
    session: AsyncSession, user_id: int
) -> List[DockerServer]:
    """Get all servers of one owner, newest first."""
    result = await session.execute(
        select(DockerServer)
        .where(DockerServer.user_id == user_id)
        .order_by(DockerServer.created_at.desc(), DockerServer.id.desc())
    )
    return list(result.scalars().all())


async def list_all_servers(session: AsyncSession) -> List[DockerServer]:
    result = await session.execute(select(DockerServer).order_by(DockerServer.id))
    return list(result.scalars().all())


async def list_used_ports(session: AsyncSession) -> set[int]:
    """Get host ports recorded for any deployed server."""
    result = await session.execute(select(DockerServer.port))
    return set(result.scalars().all())


async def update_server_status(
    session: AsyncSession, container_id: str, status: ContainerState
) -> None:
    await session.execute(
        update(DockerServer)
        .where(DockerServer.container_id == container_id)
        .values(status=status)
    )
    await session.commit()


async def update_client_config(
    session: AsyncSession,
    container_id: str,
    config_type: Optional[str],
    config_value: Optional[str],
) -> bool:
    """Set the client distribution descriptor of a server.

    Returns:
        True if a server record was updated
    """
    result = await session.execute(
        update(DockerServer)
        .where(DockerServer.container_id == container_id)
        .values(client_config_type=config_type, client_config_value=config_value)
    )
    await session.commit()
    return result.rowcount > 0


async def delete_server_records(session: AsyncSession, container_id: str) -> None:
    """Delete a server record and its listing entry. Missing rows are ignored."""
    await session.execute(
        delete(DockerServer).where(DockerServer.container_id == container_id)
    )
    await session.execute(
        delete(PublicServer).where(PublicServer.container_id == container_id)
    )
    await session.commit()
