"""Heuristic scraper for Facebook event pages."""
import logging
import re
import time
from typing import Callable, List, Optional, Tuple
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup, Tag

from processor.event_processor import EventProcessor
from processor.models import NOT_EVENT_PAGE_TITLE, ExtractedEvent, ImageCandidate, PageFetchError
from relay.fallback import Deadline
from scraper.selectors import MODERN_LAYOUT, SelectorTable

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36"
)

EVENT_PATH_PATTERN = re.compile(r'/events/\d+')
NON_EVENT_PATHS = ('/events/?', '/events/discover', '/events/calendar')

TITLE_CHROME = {'Events', 'Home', 'Notifications'}
TITLE_CHROME_FRAGMENTS = ('EventsHome', 'Your Events')

VENUE_WORDS = re.compile(
    r'\b(Underground|Club|Venue|Hall|Center|Theatre|Theater|Bar|Lounge|Warehouse|Studio)\b$',
    re.IGNORECASE
)
VENUE_CHROME_FRAGMENTS = ('past events', 'Bookings:', 'Message', 'Musician/band', 'Page ·')
YEAR_PATTERN = re.compile(r'\b(?:19|20)\d{2}\b')
TIME_OF_DAY_PATTERN = re.compile(r'\b\d{1,2}(?::\d{2})?\s*(?:AM|PM)\b', re.IGNORECASE)

DESCRIPTION_NAV_FRAGMENTS = ('Event by', 'people responded', 'Discussion', 'Details', 'About', 'Host')

FACEBOOK_CDN_MARKERS = ('scontent', 'fbcdn.net')
REJECTED_IMAGE_MARKERS = ('profile_pic', 'safe_image')
MIN_IMAGE_DIMENSION = 150


def element_text(element: Tag) -> str:
    """Visible text of an element with whitespace collapsed."""
    return ' '.join(element.get_text(' ', strip=True).split())


class FacebookEventScraper:
    """Extracts event fields from a Facebook event page snapshot."""

    MAX_SIBLING_HOPS = 5
    MAX_VENUE_LENGTH = 100
    MAX_SELECTOR_DESCRIPTION_LENGTH = 500
    MIN_DESCRIPTION_LENGTH = 30
    MAX_ANCHOR_CLIMB = 3

    def __init__(
        self,
        layout: SelectorTable = MODERN_LAYOUT,
        processor: Optional[EventProcessor] = None,
        timeout: int = 10,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the event page scraper.

        Args:
            layout: Selector table for the Facebook markup generation
            processor: Text processor (default: EventProcessor())
            timeout: HTTP request timeout in seconds for page fetches
            session: Optional requests.Session for page fetches
        """
        self.layout = layout
        self.processor = processor or EventProcessor()
        self.timeout = timeout
        self.session = session or requests.Session()

    @staticmethod
    def is_event_page(url: str) -> bool:
        url = url or ''
        return (
            '/events/' in url and
            bool(EVENT_PATH_PATTERN.search(url)) and
            not any(path in url for path in NON_EVENT_PATHS)
        )

    def fetch_page(self, url: str, deadline: Optional[Deadline] = None) -> str:
        """
        Fetch event page HTML with retry logic.

        Args:
            url: Event page URL
            deadline: Overall budget; each attempt's timeout is capped by it

        Returns:
            HTML content as string

        Raises:
            PageFetchError: If all retry attempts fail or the budget runs out
        """
        max_retries = 3
        base_delay = 1  # seconds
        last_error = None

        for attempt in range(max_retries):
            if deadline is not None and deadline.expired:
                break

            timeout = deadline.cap(self.timeout) if deadline is not None else self.timeout
            try:
                logger.info(f"Fetching event page (attempt {attempt + 1}/{max_retries})")
                response = self.session.get(
                    url,
                    headers={'User-Agent': USER_AGENT},
                    timeout=timeout
                )
                response.raise_for_status()
                return response.text

            except requests.RequestException as e:
                last_error = e
                if attempt < max_retries - 1:
                    delay = base_delay * (2 ** attempt)
                    if deadline is not None:
                        delay = deadline.cap(delay)
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{max_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)

        logger.error(f"Could not fetch event page {url}. Last error: {last_error}")
        raise PageFetchError(f"Could not fetch event page {url}: {last_error}")

    def extract(self, html_content: str, url: str) -> ExtractedEvent:
        """
        Extract event fields from page HTML.

        Never raises: a failing field step is logged and its field keeps
        the default value.

        Args:
            html_content: Page HTML snapshot
            url: URL the snapshot was taken from

        Returns:
            ExtractedEvent with every field populated or defaulted
        """
        if not self.is_event_page(url):
            logger.info(f"Not an event page: {url}")
            return ExtractedEvent(title=NOT_EVENT_PAGE_TITLE, url=url or '')

        event = ExtractedEvent(url=url)

        try:
            soup = BeautifulSoup(html_content or '', 'html.parser')
        except Exception as e:
            logger.error(f"Failed to parse event page HTML: {e}", exc_info=True)
            return event

        steps: List[Tuple[str, Callable[[BeautifulSoup, ExtractedEvent], None]]] = [
            ('title', self._extract_title),
            ('date/time', self._extract_date_time),
            ('venue', self._extract_venue),
            ('description', self._extract_description),
            ('image', self._extract_image),
            ('ticket url', self._extract_ticket_url),
            ('promoters', self._extract_promoters),
        ]
        for field_name, step in steps:
            try:
                step(soup, event)
            except Exception as e:
                logger.warning(f"Failed to extract {field_name}: {e}", exc_info=True)

        logger.info(
            "Extracted event fields",
            extra={
                'event_title': event.title,
                'event_date': event.date,
                'event_time': event.time,
                'venue_name': event.venue,
                'has_image': bool(event.image),
                'promoter_count': len(event.promoters)
            }
        )
        return event

    def _extract_title(self, soup: BeautifulSoup, event: ExtractedEvent) -> None:
        for selector in self.layout.title:
            for element in soup.select(selector):
                text = element_text(element)
                if self._is_title(text):
                    event.title = text
                    return

    def _is_title(self, text: str) -> bool:
        if not text or len(text) < 5:
            return False
        if text in TITLE_CHROME:
            return False
        return not any(fragment in text for fragment in TITLE_CHROME_FRAGMENTS)

    def _extract_date_time(self, soup: BeautifulSoup, event: ExtractedEvent) -> None:
        for selector in self.layout.date_time:
            for element in soup.select(selector):
                text = element_text(element)

                split = self.processor.split_date_time(text)
                if split:
                    event.date, event.time = split
                    return

                found_date = None if event.date else self.processor.find_date(text)
                if found_date:
                    event.date = found_date
                elif not event.time:
                    event.time = self.processor.find_time(text) or ''

            if event.date and event.time:
                return

    def _extract_venue(self, soup: BeautifulSoup, event: ExtractedEvent) -> None:
        venue = (
            self._venue_after_title(soup, event.title) or
            self._venue_from_selectors(soup) or
            self._venue_by_pattern(soup, event.title)
        )
        # A venue identical to the title is a mismatch, not a venue
        if venue and venue != event.title:
            event.venue = venue

    def _venue_after_title(self, soup: BeautifulSoup, title: str) -> str:
        if not title:
            return ''

        for selector in self.layout.title:
            for title_element in soup.select(selector):
                if element_text(title_element) != title or title_element.parent is None:
                    continue
                siblings = title_element.parent.find_next_siblings(True, limit=self.MAX_SIBLING_HOPS)
                for sibling in siblings:
                    text = element_text(sibling)
                    if self._looks_like_venue(text) and text != title:
                        return text
                return ''
        return ''

    def _looks_like_venue(self, text: str) -> bool:
        if not text or len(text) <= 3 or len(text) >= self.MAX_VENUE_LENGTH:
            return False
        lowered = text.lower()
        return not (
            YEAR_PATTERN.search(text) or
            TIME_OF_DAY_PATTERN.search(text) or
            '$' in text or
            'interested' in lowered or
            'going' in lowered
        )

    def _venue_from_selectors(self, soup: BeautifulSoup) -> str:
        for selector in self.layout.venue_fallback:
            for element in soup.select(selector):
                text = element_text(element)
                if text and len(text) < self.MAX_VENUE_LENGTH:
                    return text
        return ''

    def _venue_by_pattern(self, soup: BeautifulSoup, title: str) -> str:
        for element in soup.find_all(['a', 'span', 'div']):
            text = element_text(element)
            if len(text) < 5 or len(text) >= self.MAX_VENUE_LENGTH or text == title:
                continue
            if any(fragment in text for fragment in VENUE_CHROME_FRAGMENTS):
                continue
            if VENUE_WORDS.search(text):
                return text
        return ''

    def _extract_description(self, soup: BeautifulSoup, event: ExtractedEvent) -> None:
        description = self._description_from_selectors(soup) or self._description_after_anchor(soup)
        if description:
            description = self.processor.clean_description(description)
        if description and 'EventsHome' not in description:
            event.description = description

    def _description_from_selectors(self, soup: BeautifulSoup) -> str:
        for selector in self.layout.description:
            element = soup.select_one(selector)
            if element is None:
                continue
            text = element_text(element)
            if text:
                return text[:self.MAX_SELECTOR_DESCRIPTION_LENGTH]
        return ''

    def _description_after_anchor(self, soup: BeautifulSoup) -> str:
        anchor = self._find_visibility_anchor(soup)
        if anchor is None:
            return ''

        container = anchor.parent
        for _ in range(self.MAX_ANCHOR_CLIMB):
            if container is None:
                break
            for sibling in container.find_next_siblings(True):
                text = element_text(sibling)
                if len(text) <= self.MIN_DESCRIPTION_LENGTH:
                    continue
                if any(fragment in text for fragment in DESCRIPTION_NAV_FRAGMENTS):
                    continue
                cleaned = self.processor.clean_description(text)
                if len(cleaned) > self.MIN_DESCRIPTION_LENGTH:
                    return cleaned
            container = container.parent
        return ''

    @staticmethod
    def _find_visibility_anchor(soup: BeautifulSoup) -> Optional[Tag]:
        """Innermost element carrying the "Public · Anyone ..." line."""
        tags = ['div', 'span', 'p']

        def is_anchor(element) -> bool:
            if not isinstance(element, Tag) or element.name not in tags:
                return False
            text = element_text(element)
            return 'Public' in text and 'Anyone' in text

        for element in soup.find_all(tags):
            if is_anchor(element) and element.find(is_anchor) is None:
                return element
        return None

    def _extract_image(self, soup: BeautifulSoup, event: ExtractedEvent) -> None:
        candidates = self.collect_image_candidates(soup)
        logger.debug(f"Found {len(candidates)} Facebook CDN images")

        for selector in self.layout.image:
            for image in soup.select(selector):
                src = image.get('src') or ''
                if self._is_event_image(src, image):
                    event.image = src
                    return

        if candidates:
            largest = max(candidates, key=lambda candidate: candidate.area)
            logger.info(f"No image matched selectors, using largest CDN image #{largest.index}")
            event.image = largest.src

    def _is_event_image(self, src: str, image: Tag) -> bool:
        if not src or not any(marker in src for marker in FACEBOOK_CDN_MARKERS):
            return False
        if any(marker in src for marker in REJECTED_IMAGE_MARKERS):
            return False
        return (
            image_dimension(image, 'width') > MIN_IMAGE_DIMENSION and
            image_dimension(image, 'height') > MIN_IMAGE_DIMENSION
        )

    @staticmethod
    def collect_image_candidates(soup: BeautifulSoup) -> List[ImageCandidate]:
        candidates = []
        for index, image in enumerate(soup.find_all('img'), start=1):
            src = image.get('src') or image.get('data-src') or ''
            if src and any(marker in src for marker in FACEBOOK_CDN_MARKERS):
                candidates.append(ImageCandidate(
                    src=src,
                    width=image_dimension(image, 'width'),
                    height=image_dimension(image, 'height'),
                    index=index
                ))
        return candidates

    def _extract_ticket_url(self, soup: BeautifulSoup, event: ExtractedEvent) -> None:
        event.ticket_url = self.find_ticket_url(soup, event.url)

    def find_ticket_url(self, soup: BeautifulSoup, base_url: str = '') -> str:
        """First ticket-like link on the page, redirect unwrapped and query stripped."""
        for link in soup.find_all('a'):
            href = urljoin(base_url, link.get('href') or '')
            if not self.processor.is_ticket_link(element_text(link), href):
                continue
            ticket_url = self.processor.clean_ticket_url(href)
            if ticket_url:
                return ticket_url
        return ''

    def _extract_promoters(self, soup: BeautifulSoup, event: ExtractedEvent) -> None:
        event.promoters = self.find_promoters(soup)

    def find_promoters(self, soup: BeautifulSoup) -> List[str]:
        for element in soup.find_all(['div', 'span', 'p']):
            text = element_text(element)
            if 'Event by' not in text or ',' not in text:
                continue
            promoters = self.processor.parse_promoters(text)
            if promoters:
                return promoters
        return []


def image_dimension(image: Tag, name: str) -> int:
    """Pixel size from the width/height attribute or inline style, 0 if unknown."""
    value = image.get(name) or ''
    match = re.match(r'\s*(\d+)', str(value))
    if match:
        return int(match.group(1))

    style = image.get('style') or ''
    match = re.search(rf'(?<![-\w]){name}\s*:\s*(\d+)', style)
    return int(match.group(1)) if match else 0
