"""Deployed server records, port selection, lifecycle management and sweeping."""

from .crud import (
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
from .manager import ServerManager, build_environment, sanitize_name
from .port_utils import allocate_port, get_system_used_ports, is_port_bindable
from .sweeper import MissingServerSweeper

__all__ = [
    # CRUD operations
    "create_server_record",
    "delete_server_records",
    "ensure_user",
    "get_server_by_container_id",
    "list_all_servers",
    "list_servers_by_owner",
    "list_used_ports",
    "update_client_config",
    "update_server_status",
    # Port utilities
    "allocate_port",
    "get_system_used_ports",
    "is_port_bindable",
    # Lifecycle
    "MissingServerSweeper",
    "ServerManager",
    "build_environment",
    "sanitize_name",
]
