"""Client side of the image relay: re-host Facebook CDN images via the app."""
import logging
from functools import partial
from typing import Iterable, Optional

import requests

from relay.fallback import Deadline, Strategy, run_chain
from relay.port_discovery import DEFAULT_PORTS, PROBE_TIMEOUT_SECONDS, iter_live_ports, local_origin

logger = logging.getLogger(__name__)


class ImageRelay:
    """
    Hands a restricted image URL to the application's proxy-image endpoint.

    Ports are discovered lazily: the next candidate is probed only after the
    upload through the previous live port failed.
    """

    PROXY_PATH = '/api/proxy-image'
    EXTERNAL_SERVICES = ('fileio', 'catbox')
    RESTRICTED_HOSTS = ('fbcdn.net',)

    def __init__(
        self,
        ports: Iterable[int] = DEFAULT_PORTS,
        probe_timeout: float = PROBE_TIMEOUT_SECONDS,
        upload_timeout: float = 4.0,
        session: Optional[requests.Session] = None
    ):
        self.ports = tuple(ports)
        self.probe_timeout = probe_timeout
        self.upload_timeout = upload_timeout
        self.session = session or requests.Session()

    def relay(self, image_url: str, deadline: Optional[Deadline] = None) -> str:
        """
        Re-host an image and return a URL the admin UI can load.

        Args:
            image_url: Facebook CDN image URL (may be empty)
            deadline: Budget for discovery plus upload

        Returns:
            Hosted URL, or "" when every attempt failed. The original
            restricted URL is never returned.
        """
        if not image_url:
            return ''

        try:
            live_ports = iter_live_ports(self.ports, self.probe_timeout, deadline, self.session)
            strategies = (
                Strategy(
                    name=f"proxy-image on port {port}",
                    run=partial(self._upload, port, image_url),
                    timeout=self.upload_timeout
                )
                for port in live_ports
            )
            hosted_url = run_chain(strategies, deadline)
        except Exception as e:
            logger.error(f"Image relay failed unexpectedly: {e}", exc_info=True)
            return ''

        if not hosted_url:
            logger.warning("All candidate ports failed to relay the image")
            return ''

        logger.info(f"Image relayed to {hosted_url}")
        return hosted_url

    def _upload(self, port: int, image_url: str, timeout: float) -> Optional[str]:
        response = self.session.post(
            f"{local_origin(port)}{self.PROXY_PATH}",
            json={'imageUrl': image_url},
            timeout=timeout
        )
        response.raise_for_status()
        result = response.json()

        if not isinstance(result, dict) or not result.get('success') or not result.get('url'):
            logger.warning(f"Port {port} proxy-image response unusable: {result}")
            return None

        hosted_url = self.resolve_hosted_url(result, port)
        if any(host in hosted_url for host in self.RESTRICTED_HOSTS):
            logger.warning(f"Port {port} returned a restricted URL, ignoring it")
            return None
        return hosted_url

    @classmethod
    def resolve_hosted_url(cls, result: dict, port: int) -> str:
        """
        Turn a proxy-image response into an absolute URL.

        External hosts are used verbatim; local storage paths are served by
        the application on the port that answered.
        """
        url = result['url']
        if result.get('service') in cls.EXTERNAL_SERVICES:
            return url
        if url.startswith(('http://', 'https://')):
            return url
        if not url.startswith('/'):
            url = f"/{url}"
        return f"{local_origin(port)}{url}"
