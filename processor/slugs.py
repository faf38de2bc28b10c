"""URL slug generation for imported events."""
import logging
import re
from typing import Callable, Optional

from processor.models import SlugCollisionError

logger = logging.getLogger(__name__)

VALID_SLUG = re.compile(r'^[a-z0-9]+(?:-[a-z0-9]+)*$')
YEAR_PATTERN = re.compile(r'\b((?:19|20)\d{2})\b')

MIN_EVENT_SLUG_LENGTH = 10
VENUE_SLUG_LENGTH = 20


def generate_slug(text: str, max_length: int = 100) -> str:
    """
    Generate a URL-friendly slug from text.

    Args:
        text: Text to convert
        max_length: Maximum slug length (default: 100)

    Returns:
        Lowercase, hyphen-separated slug
    """
    slug = (text or '').lower().strip()
    slug = re.sub(r'[^\w\s-]', '', slug)
    slug = re.sub(r'[\s_-]+', '-', slug)
    slug = slug.strip('-')
    return slug[:max_length].rstrip('-')


def generate_event_slug(title: str, date: Optional[str] = None, venue: Optional[str] = None) -> str:
    """
    Generate an event slug, appending the year and, for short titles, the venue.

    Args:
        title: Event title
        date: Event date text (optional)
        venue: Venue name (optional)

    Returns:
        Event slug
    """
    slug = generate_slug(title)

    if date:
        year = YEAR_PATTERN.search(date)
        if year:
            slug = f"{slug}-{year.group(1)}"

    if len(slug) < MIN_EVENT_SLUG_LENGTH and venue:
        venue_slug = generate_slug(venue, VENUE_SLUG_LENGTH)
        if venue_slug:
            slug = f"{slug}-{venue_slug}"

    return slug.strip('-')


def is_valid_slug(slug: str) -> bool:
    return bool(VALID_SLUG.match(slug or ''))


def clean_slug(slug: str) -> str:
    return generate_slug(slug)


def unique_slug(base: str, exists: Callable[[str], bool], max_attempts: int = 1000) -> str:
    """
    Find a free slug by appending an incrementing suffix.

    Args:
        base: Preferred slug
        exists: Callback returning True when a slug is already taken
        max_attempts: Number of suffixes to try before giving up

    Returns:
        base, or base-N for the first N not taken

    Raises:
        SlugCollisionError: If every candidate is taken
    """
    candidate = base
    for counter in range(1, max_attempts + 1):
        if not exists(candidate):
            return candidate
        candidate = f"{base}-{counter}"

    logger.error(f"No free slug for '{base}' after {max_attempts} attempts")
    raise SlugCollisionError(f"No free slug for '{base}' after {max_attempts} attempts")
