"""
Unit tests for deployed server CRUD operations.

Tests database operations for docker_server and public_server records.
"""

import pytest
from sqlalchemy import select

from mcdeploy.models import PublicServer
from mcdeploy.runtime import ContainerState
from mcdeploy.servers.crud import (
    create_server_record,
    delete_server_records,
    ensure_user,
    get_server_by_container_id,
    list_all_servers,
    list_servers_by_owner,
    list_used_ports,
    update_client_config,
    update_server_status,
)


async def _create(session, user_id: int, container_id: str, port: int = 30000):
    return await create_server_record(
        session,
        user_id=user_id,
        container_id=container_id,
        name=f"Server {container_id}",
        port=port,
        volume_path=f"/srv/{container_id}/data",
        version="1.20.1",
        loader_type="fabric",
        loader_version="0.15.0",
    )


async def test_ensure_user_is_idempotent(test_database):
    async with test_database() as session:
        first = await ensure_user(session, "alex")
        second = await ensure_user(session, "alex")
    assert first.id == second.id


async def test_create_server_record(test_database, owner_id):
    """Test creating a server record together with its listing entry."""
    async with test_database() as session:
        server = await _create(session, owner_id, "c1", port=31000)

        assert server.id is not None
        assert server.status == ContainerState.CREATED
        assert server.created_at.tzinfo is not None

        listing = (
            await session.execute(
                select(PublicServer).where(PublicServer.container_id == "c1")
            )
        ).scalar_one()
        assert listing.ip_address == "127.0.0.1"
        assert listing.port == 31000
        assert listing.description == "Docker Server: Server c1"


async def test_create_duplicate_container_fails(test_database, owner_id):
    async with test_database() as session:
        await _create(session, owner_id, "c1")
        with pytest.raises(ValueError):
            await _create(session, owner_id, "c1")


async def test_get_server_by_container_id(test_database, owner_id):
    async with test_database() as session:
        await _create(session, owner_id, "c1")

        found = await get_server_by_container_id(session, "c1")
        missing = await get_server_by_container_id(session, "nope")

    assert found is not None
    assert found.loader_type == "fabric"
    assert missing is None


async def test_list_servers_by_owner(test_database, owner_id):
    async with test_database() as session:
        other = await ensure_user(session, "alex")
        await _create(session, owner_id, "c1", port=30001)
        await _create(session, owner_id, "c2", port=30002)
        await _create(session, other.id, "c3", port=30003)

        mine = await list_servers_by_owner(session, owner_id)
        everything = await list_all_servers(session)
        ports = await list_used_ports(session)

    assert {s.container_id for s in mine} == {"c1", "c2"}
    assert len(everything) == 3
    assert ports == {30001, 30002, 30003}


async def test_update_server_status(test_database, owner_id):
    async with test_database() as session:
        await _create(session, owner_id, "c1")
        await update_server_status(session, "c1", ContainerState.RUNNING)

    async with test_database() as session:
        server = await get_server_by_container_id(session, "c1")
    assert server.status == ContainerState.RUNNING


async def test_update_client_config(test_database, owner_id):
    async with test_database() as session:
        await _create(session, owner_id, "c1")
        assert await update_client_config(session, "c1", "url", "https://example.com/pack")
        assert not await update_client_config(session, "nope", "url", "x")

    async with test_database() as session:
        server = await get_server_by_container_id(session, "c1")
    assert server.client_config_type == "url"
    assert server.client_config_value == "https://example.com/pack"


async def test_delete_server_records(test_database, owner_id):
    async with test_database() as session:
        await _create(session, owner_id, "c1")
        await delete_server_records(session, "c1")
        # Deleting again is a no-op
        await delete_server_records(session, "c1")

        assert await get_server_by_container_id(session, "c1") is None
        listings = (await session.execute(select(PublicServer))).scalars().all()
    assert listings == []
