"""Find which localhost port is serving the events application."""
import logging
from typing import Iterable, Iterator, Optional

import requests

from relay.fallback import Deadline

logger = logging.getLogger(__name__)

DEFAULT_PORTS = (3002, 3000, 3001, 3003, 5000, 8000)
HEALTH_PATH = '/api/events'
PROBE_TIMEOUT_SECONDS = 2.0


def local_origin(port: int) -> str:
    return f"http://localhost:{port}"


def probe_port(port: int, timeout: float = PROBE_TIMEOUT_SECONDS, session=None) -> bool:
    """
    Check whether the application API answers on a port.

    Args:
        port: Localhost port to probe
        timeout: Request timeout in seconds
        session: Optional requests.Session

    Returns:
        True if GET /api/events returned a 2xx response in time
    """
    http = session or requests
    try:
        response = http.get(f"{local_origin(port)}{HEALTH_PATH}", timeout=timeout)
    except (requests.RequestException, ValueError) as e:
        logger.debug(f"Port {port} probe failed: {e}")
        return False

    if not response.ok:
        logger.debug(f"Port {port} answered with status {response.status_code}")
        return False
    return True


def iter_live_ports(
    ports: Iterable[int] = DEFAULT_PORTS,
    timeout: float = PROBE_TIMEOUT_SECONDS,
    deadline: Optional[Deadline] = None,
    session=None
) -> Iterator[int]:
    """Yield live ports in candidate order, probing each only when asked."""
    for port in ports:
        if deadline is not None and deadline.expired:
            logger.warning("Deadline exhausted during port discovery")
            return

        probe_timeout = deadline.cap(timeout) if deadline is not None else timeout
        if probe_port(port, probe_timeout, session):
            logger.info(f"Application API found on port {port}")
            yield port


def discover_port(
    ports: Iterable[int] = DEFAULT_PORTS,
    timeout: float = PROBE_TIMEOUT_SECONDS,
    deadline: Optional[Deadline] = None,
    session=None
) -> Optional[int]:
    """
    Return the first live port, or None if no candidate answers.

    One pass over the candidates, no retries.
    """
    port = next(iter_live_ports(ports, timeout, deadline, session), None)
    if port is None:
        logger.warning("No candidate port is serving the application API")
    return port
