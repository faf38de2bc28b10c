"""Drives extraction, image relay and response assembly for one request."""
import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

import requests

from processor.event_processor import EventProcessor
from processor.models import Err, ExtractionResult, Ok
from relay.fallback import Deadline
from relay.image_relay import ImageRelay
from relay.port_discovery import DEFAULT_PORTS
from scraper.facebook_event_page import FacebookEventScraper
from scraper.selectors import get_layout

logger = logging.getLogger(__name__)

EXTRACT_ACTION = 'extractEventData'


def _parse_ports(value: str) -> Tuple[int, ...]:
    return tuple(int(port) for port in value.split(',') if port.strip())


@dataclass
class ResponderSettings:
    """Configuration for the extraction pipeline."""
    layout: str = 'modern'
    candidate_ports: Tuple[int, ...] = DEFAULT_PORTS
    probe_timeout: float = 2.0
    upload_timeout: float = 4.0
    image_timeout: float = 8.0
    pipeline_timeout: float = 15.0
    fetch_timeout: float = 10.0
    image_bucket: Optional[str] = None
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'ResponderSettings':
        """
        Read settings from environment variables.

        Args:
            environ: Mapping to read from (default: os.environ)

        Returns:
            ResponderSettings with defaults for unset variables
        """
        env = os.environ if environ is None else environ
        ports = env.get('CANDIDATE_PORTS')
        return cls(
            layout=env.get('SELECTOR_LAYOUT', 'modern'),
            candidate_ports=_parse_ports(ports) if ports else DEFAULT_PORTS,
            probe_timeout=float(env.get('PROBE_TIMEOUT_SECONDS', '2')),
            upload_timeout=float(env.get('UPLOAD_TIMEOUT_SECONDS', '4')),
            image_timeout=float(env.get('IMAGE_TIMEOUT_SECONDS', '8')),
            pipeline_timeout=float(env.get('PIPELINE_TIMEOUT_SECONDS', '15')),
            fetch_timeout=float(env.get('FETCH_TIMEOUT_SECONDS', '10')),
            image_bucket=env.get('IMAGE_BUCKET') or None,
            log_level=env.get('LOG_LEVEL', 'INFO')
        )


class MessageResponder:
    """Handles "extractEventData" messages and returns Ok or Err."""

    def __init__(
        self,
        settings: Optional[ResponderSettings] = None,
        scraper: Optional[FacebookEventScraper] = None,
        relay: Optional[ImageRelay] = None,
        processor: Optional[EventProcessor] = None,
        session: Optional[requests.Session] = None
    ):
        self.settings = settings or ResponderSettings()
        session = session or requests.Session()
        self.processor = processor or EventProcessor()
        self.scraper = scraper or FacebookEventScraper(
            layout=get_layout(self.settings.layout),
            processor=self.processor,
            timeout=self.settings.fetch_timeout,
            session=session
        )
        self.relay = relay or ImageRelay(
            ports=self.settings.candidate_ports,
            probe_timeout=self.settings.probe_timeout,
            upload_timeout=self.settings.upload_timeout,
            session=session
        )

    def handle(self, message: Mapping) -> ExtractionResult:
        """
        Run the extraction pipeline for one inbound message.

        Args:
            message: {"action": "extractEventData", "url": ..., "html": ...}

        Returns:
            Ok with the import payload and raw fields, or Err with a reason
        """
        if not isinstance(message, Mapping):
            return Err('Message must be an object')

        action = message.get('action')
        if action != EXTRACT_ACTION:
            logger.warning(f"Unsupported action: {action}")
            return Err(f"Unsupported action: {action}")

        try:
            return self._extract(message)
        except Exception as e:
            logger.error(f"Extraction failed: {e}", extra={'error_type': type(e).__name__}, exc_info=True)
            return Err(str(e) or type(e).__name__)

    def _extract(self, message: Mapping) -> Ok:
        deadline = Deadline(self.settings.pipeline_timeout)
        url = message.get('url') or ''
        html_content = message.get('html')

        if html_content is None and self.scraper.is_event_page(url):
            html_content = self.scraper.fetch_page(url, deadline)

        event = self.scraper.extract(html_content or '', url)

        image_url = ''
        if event.image:
            if deadline.expired:
                logger.warning("Pipeline budget exhausted, skipping image relay")
            else:
                image_url = self.relay.relay(event.image, deadline.child(self.settings.image_timeout))
        else:
            logger.info("No image URL found in event data")

        data = self.processor.build_import_payload(event, image_url)
        logger.info(
            "Extraction complete",
            extra={
                'facebook_url': url,
                'image_upload_status': data['image_upload_status'],
                'seconds_left': round(deadline.remaining(), 2)
            }
        )
        return Ok(data=data, raw=event)
