"""Host port selection for new servers."""

import random
import socket
from typing import Callable, Iterable, Optional

import psutil

from ..logger import logger


def get_system_used_ports() -> set[int]:
    """Get the set of ports currently in use by the system.

    Returns:
        Set of port numbers that are currently bound (LISTEN or ESTABLISHED).
    """
    used_ports: set[int] = set()
    try:
        connections = psutil.net_connections(kind="inet")
    except psutil.AccessDenied:
        logger.warning("Not allowed to list host connections, relying on bind checks")
        return used_ports
    for conn in connections:
        if conn.laddr:
            used_ports.add(conn.laddr.port)
    return used_ports


def is_port_bindable(port: int, host: str = "0.0.0.0") -> bool:
    """Check whether a TCP port can be bound on the host right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def allocate_port(
    reserved_ports: Iterable[int],
    range_start: int,
    range_end: int,
    attempts: int,
    rng: Optional[random.Random] = None,
    system_ports: Optional[set[int]] = None,
    bind_check: Callable[[int], bool] = is_port_bindable,
) -> int:
    """Draw a random host port that is neither reserved nor bound.

    Args:
        reserved_ports: Ports recorded for other servers
        range_start: Lowest port of the draw range, inclusive
        range_end: Highest port of the draw range, inclusive
        attempts: Number of draws before giving up
        rng: Random source, mainly for tests
        system_ports: Ports already bound on the host, queried when omitted
        bind_check: Bind check for a candidate port

    Returns:
        A free port, or the last drawn one if every draw collided
    """
    rng = rng or random.Random()
    reserved = set(reserved_ports)
    if system_ports is None:
        system_ports = get_system_used_ports()

    candidate = rng.randint(range_start, range_end)
    for attempt in range(max(1, attempts)):
        if attempt:
            candidate = rng.randint(range_start, range_end)
        if candidate in reserved or candidate in system_ports:
            continue
        if bind_check(candidate):
            return candidate

    logger.warning(
        f"No free port found after {attempts} attempts, using {candidate} anyway"
    )
    return candidate
