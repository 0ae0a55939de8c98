"""Functions for finding a free block of ports."""

import dataclasses
import logging

import psutil

from roachdev.utils import configuration
from roachdev.utils import exceptions

LOGGER = logging.getLogger(__name__)

BUSY_STATES = frozenset({psutil.CONN_LISTEN, psutil.CONN_ESTABLISHED})


@dataclasses.dataclass(frozen=True, order=True)
class PortBlock:
    sql_base: int
    http_base: int
    offset: int

    def sql_port(self, node_num: int) -> int:
        return self.sql_base + node_num + self.offset

    def http_port(self, node_num: int) -> int:
        return self.http_base + node_num + self.offset

    def ports(self, num_nodes: int) -> list[int]:
        """Return all SQL and HTTP ports of the block for `num_nodes` nodes."""
        nums = range(1, num_nodes + 1)
        return [*(self.sql_port(n) for n in nums), *(self.http_port(n) for n in nums)]


def get_busy_ports() -> set[int]:
    """Get local ports of sockets in LISTEN or ESTABLISHED state.

    Empty set is returned when the socket table cannot be read, e.g. on macOS without root.
    """
    try:
        conns = psutil.net_connections(kind="inet")
    except psutil.AccessDenied:
        LOGGER.warning(
            "Not permitted to read the socket table, port checking is disabled. "
            "Ports of other running clusters may be reused, stop them first."
        )
        return set()
    except OSError as excp:
        LOGGER.warning(f"Failed to read the socket table, port checking is disabled: {excp}")
        return set()

    return {c.laddr.port for c in conns if c.status in BUSY_STATES and c.laddr}


def allocate_port_block(
    num_nodes: int,
    *,
    sql_base: int = configuration.SQL_PORT_BASE,
    http_base: int = configuration.HTTP_PORT_BASE,
    step: int = configuration.PORT_BLOCK_STEP,
) -> PortBlock:
    """Find the lowest offset (a multiple of `step`) where no port of the block is in use.

    The check is not atomic. Another process can bind one of the ports before the nodes are
    started.
    """
    if num_nodes < 1:
        msg = f"Invalid number of nodes '{num_nodes}': must be >= 1"
        raise exceptions.ValidationError(msg)

    offset = 0
    while True:
        port_block = PortBlock(sql_base=sql_base, http_base=http_base, offset=offset)
        candidates = port_block.ports(num_nodes=num_nodes)
        if max(candidates) > configuration.MAX_PORT:
            msg = f"No free block of ports found for {num_nodes} node(s)."
            raise exceptions.ResolutionError(msg)

        collisions = get_busy_ports().intersection(candidates)
        if not collisions:
            LOGGER.debug(f"Selected port offset {offset} for {num_nodes} node(s).")
            return port_block

        LOGGER.debug(f"Ports {sorted(collisions)} are in use, trying next block.")
        offset += step
