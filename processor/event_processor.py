"""Text cleanup and response assembly for extracted Facebook events."""
import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple
from urllib.parse import parse_qs, urlparse

from processor.models import NOT_EVENT_PAGE_TITLE, ExtractedEvent
from processor.slugs import generate_event_slug

logger = logging.getLogger(__name__)


FULL_DATE_TIME_PATTERN = re.compile(
    r'(\w+day,\s+\w+\s+\d+,\s+\d{4})\s+at\s+'
    r'(\d{1,2}(?::\d{2})?\s*(?:AM|PM)'
    r'(?:\s*[–-]\s*\d{1,2}(?::\d{2})?\s*(?:AM|PM))?)',
    re.IGNORECASE
)
DATE_PATTERN = re.compile(r'\w+day,\s+\w+\s+\d+,\s+\d{4}')
TIME_PATTERN = re.compile(r'\d{1,2}(?::\d{2})?\s*(?:AM|PM)', re.IGNORECASE)
EVENT_BY_PATTERN = re.compile(
    r'Event by\s+([^.]+?)(?=\s*(?:Public|Private|·|$))',
    re.IGNORECASE
)
PROMOTER_SPLIT_PATTERN = re.compile(r',|\sand\s')

TICKET_TEXT_HINTS = ('tickets', 'buy')
TICKET_HREF_HINTS = ('theticketing', 'eventbrite', 'ticketmaster')
FACEBOOK_REDIRECT = 'l.facebook.com/l.php'

PROMOTER_NOISE = ('what to expect', 'see more', 'see all', 'your upcoming')

IMAGE_SERVICE_LABELS = (
    ('file.io', 'File.io'),
    ('catbox.moe', 'Catbox.moe'),
    ('localhost', 'Local Storage'),
)


class EventProcessor:
    """Cleans raw extracted text and builds the import payload."""

    SOURCE = 'facebook_extension'
    DEFAULT_GENRE = 'multi-genre'
    MAX_PROMOTERS = 3
    MAX_DESCRIPTION_LENGTH = 800

    def split_date_time(self, text: str) -> Optional[Tuple[str, str]]:
        """
        Split a "Weekday, Month Day, Year at H:MM AM/PM" string.

        Args:
            text: Text that may contain a full date-time phrase

        Returns:
            Tuple of (date, time) or None when the phrase is absent
        """
        match = FULL_DATE_TIME_PATTERN.search(text or '')
        if not match:
            return None
        return match.group(1).strip(), match.group(2).strip()

    def find_date(self, text: str) -> Optional[str]:
        match = DATE_PATTERN.search(text or '')
        return match.group(0) if match else None

    def find_time(self, text: str) -> Optional[str]:
        match = TIME_PATTERN.search(text or '')
        return match.group(0) if match else None

    def clean_description(self, text: str) -> str:
        """
        Strip "See more"/"See less" boilerplate and truncation debris.

        Args:
            text: Raw description text

        Returns:
            Cleaned description, capped at MAX_DESCRIPTION_LENGTH
        """
        cleaned = re.sub(r'See less.*$', '', text or '', flags=re.IGNORECASE | re.DOTALL)
        cleaned = re.sub(r'See more\s*', '', cleaned, flags=re.IGNORECASE)
        cleaned = re.sub(r'\s+P$', '', cleaned.strip())
        cleaned = re.sub(r'\s*…$', '', cleaned)
        return cleaned.strip()[:self.MAX_DESCRIPTION_LENGTH]

    def is_ticket_link(self, link_text: str, href: str) -> bool:
        text = (link_text or '').lower()
        href = href or ''
        return (
            any(hint in text for hint in TICKET_TEXT_HINTS) or
            any(hint in href for hint in TICKET_HREF_HINTS)
        )

    def clean_ticket_url(self, href: str) -> Optional[str]:
        """
        Unwrap Facebook's outbound redirect and drop tracking parameters.

        Args:
            href: Link target as found on the page

        Returns:
            Clean ticket URL, or None if the link is not usable
        """
        if not href:
            return None

        if FACEBOOK_REDIRECT in href:
            target = parse_qs(urlparse(href).query).get('u')
            if not target:
                return None
            return target[0].split('?')[0]

        if 'facebook.com' in href:
            return None

        return href.split('?')[0]

    def parse_promoters(self, text: str) -> List[str]:
        """
        Parse organizer names from an "Event by ..." fragment.

        Args:
            text: Text containing "Event by A, B and C"

        Returns:
            Up to MAX_PROMOTERS names, visibility phrase excluded
        """
        match = EVENT_BY_PATTERN.search(text or '')
        if not match:
            return []

        promoters = []
        for part in PROMOTER_SPLIT_PATTERN.split(match.group(1).strip()):
            name = part.strip()
            if self._is_promoter_name(name):
                promoters.append(name)
        return promoters[:self.MAX_PROMOTERS]

    def _is_promoter_name(self, name: str) -> bool:
        if len(name) < 2 or len(name) > 50:
            return False
        lowered = name.lower()
        if any(noise in lowered for noise in PROMOTER_NOISE):
            return False
        # Times leak in from the event header
        return not TIME_PATTERN.search(lowered)

    def detect_genre(self, event: ExtractedEvent) -> str:
        # Facebook pages carry no reliable genre signal
        return self.DEFAULT_GENRE

    def image_service_label(self, image_url: str) -> str:
        for needle, label in IMAGE_SERVICE_LABELS:
            if needle in (image_url or ''):
                return label
        return 'Unknown'

    def build_import_payload(
        self,
        event: ExtractedEvent,
        image_url: str,
        extracted_at: Optional[datetime] = None
    ) -> Dict:
        """
        Assemble the flat record consumed by the admin import form.

        Args:
            event: Extracted event fields
            image_url: Re-hosted image URL, empty if relay failed
            extracted_at: Extraction timestamp (defaults to now, UTC)

        Returns:
            Import payload dictionary
        """
        extracted_at = extracted_at or datetime.now(timezone.utc)

        return {
            'source': self.SOURCE,
            'event_title': event.title,
            'event_date': event.date,
            'event_time': event.time,
            'venue_name': event.venue,
            'promoters': list(event.promoters),
            'genre': self.detect_genre(event),
            'description': event.description,
            'image_url': image_url,
            'ticket_url': event.ticket_url,
            'facebook_url': event.url,
            'extracted_at': extracted_at.isoformat(),
            'image_upload_status': 'success' if image_url else 'failed',
            'image_service_used': self.image_service_label(image_url),
            'original_facebook_image': event.image,
            'event_slug': self._event_slug(event)
        }

    def _event_slug(self, event: ExtractedEvent) -> str:
        if not event.title or event.title == NOT_EVENT_PAGE_TITLE:
            return ''
        return generate_event_slug(event.title, event.date, event.venue)
