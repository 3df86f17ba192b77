"""Default eula.txt and server.properties for freshly installed servers."""

from pathlib import Path

import aiofiles
from aiofiles import os as aioos
from pydantic import BaseModel, ConfigDict, Field

MOTD_MAX_LENGTH = 58
DEFAULT_MOTD = "Minecraft Server"


class DefaultServerProperties(BaseModel):
    """Properties written when a pack did not ship its own server.properties."""

    model_config = ConfigDict(populate_by_name=True)

    motd: str = DEFAULT_MOTD
    online_mode: bool = Field(True, alias="online-mode")
    allow_flight: bool = Field(False, alias="allow-flight")
    enable_command_block: bool = Field(False, alias="enable-command-block")
    max_players: int = Field(20, alias="max-players")
    view_distance: int = Field(10, alias="view-distance")
    sync_chunk_writes: bool = Field(False, alias="sync-chunk-writes")

    def render(self) -> str:
        lines = []
        for key, value in self.model_dump(by_alias=True).items():
            if isinstance(value, bool):
                value = "true" if value else "false"
            lines.append(f"{key}={value}")
        return "\n".join(lines) + "\n"


def make_motd(display_name: str | None) -> str:
    """Single line motd derived from the server name."""
    if not display_name:
        return DEFAULT_MOTD
    return display_name.replace("\r\n", " ").replace("\n", " ")[:MOTD_MAX_LENGTH]


async def ensure_server_defaults(data_dir: Path, display_name: str | None) -> list[str]:
    """Write eula.txt and server.properties unless they already exist.

    Returns:
        Names of the files that were written
    """
    data_dir = Path(data_dir)
    await aioos.makedirs(data_dir, exist_ok=True)
    written: list[str] = []

    eula_path = data_dir / "eula.txt"
    if not await aioos.path.exists(eula_path):
        async with aiofiles.open(eula_path, "w", encoding="utf-8") as f:
            await f.write("eula=true\n")
        written.append(eula_path.name)

    properties_path = data_dir / "server.properties"
    if not await aioos.path.exists(properties_path):
        properties = DefaultServerProperties(motd=make_motd(display_name))
        async with aiofiles.open(properties_path, "w", encoding="utf-8") as f:
            await f.write(properties.render())
        written.append(properties_path.name)

    return written
