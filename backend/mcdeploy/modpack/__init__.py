from .client_dist import (
    ClientConfig,
    ClientManifestEntry,
    build_client_manifest,
    client_dir_for,
    get_client_file,
    has_client_config,
    materialize_client_distribution,
    read_client_config,
)
from .client_only import is_client_only_mod, remove_client_only_mods
from .defaults import ensure_server_defaults
from .installer import PackInstallResult, detect_pack_format, install_pack_to_server_data

__all__ = [
    "ClientConfig",
    "ClientManifestEntry",
    "PackInstallResult",
    "build_client_manifest",
    "client_dir_for",
    "detect_pack_format",
    "ensure_server_defaults",
    "get_client_file",
    "has_client_config",
    "install_pack_to_server_data",
    "is_client_only_mod",
    "materialize_client_distribution",
    "read_client_config",
    "remove_client_only_mods",
]
