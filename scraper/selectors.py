"""CSS selector tables for the Facebook event page layouts we know about."""
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class SelectorTable:
    """Ordered selector lists for one generation of Facebook markup."""
    name: str
    title: Tuple[str, ...]
    date_time: Tuple[str, ...]
    description: Tuple[str, ...]
    image: Tuple[str, ...]
    venue_fallback: Tuple[str, ...]


MODERN_LAYOUT = SelectorTable(
    name='modern',
    title=(
        'h1[data-testid="event-permalink-event-name"]',
        '[data-testid="event-permalink-event-name"] h1',
        'h1',
        '.x1e558r4.x150jy0e.x1lcm9me.x1yr5g0i.xrt01vj.x10y3i5r',
    ),
    date_time=(
        '[data-testid="event-permalink-details"] time',
        '[data-testid="event-permalink-details"] span',
        'time',
        '.x1e558r4',
        '.x193iq5w',
    ),
    description=(
        '[data-testid="event-permalink-description"]',
        '[data-testid="event-description"]',
        'div[role="main"] div[data-testid*="description"]',
    ),
    image=(
        'img[data-imgperflogname="profileCoverPhoto"]',
        '[data-testid="event-permalink-cover-photo"] img',
        '[data-testid="event-header"] img',
        'img[src*="scontent-"]',
        'img[src*="fbcdn.net"]',
    ),
    venue_fallback=(
        '[data-testid="event-permalink-details"] a[href*="maps"]',
        'a[href*="maps.google"]',
        '.venue-name',
        '.event-location',
    ),
)


LEGACY_LAYOUT = SelectorTable(
    name='legacy',
    title=(
        '[data-testid="event-permalink-event-name"] h1',
        '[data-testid="event-permalink-event-name"]',
        '[role="main"] h1',
        'h1[class*="x1heor9g"]',
        'h1[class*="x1qlqyl8"]',
        'div[dir="auto"] h1',
        'h1',
    ),
    date_time=(
        '[style*="color: rgb(255, 72, 72)"]',
        '[style*="color: #ff4848"]',
        '.x1heor9g[style*="color"]',
        'div[dir="ltr"]',
        'time',
    ),
    description=(
        '[data-testid="event-permalink-description"]',
        '.event-description',
        '.description-text',
        '[role="main"] div[data-testid*="description"]',
    ),
    image=(
        'img[data-imgperflogname="profileCoverPhoto"]',
        'img[data-imgperflogname="eventCoverPhoto"]',
        '[role="main"] img[src*="scontent"]',
        '[role="main"] img[src*="fbcdn.net"]',
        'header img[src*="scontent"]',
        'div[role="banner"] img[src*="scontent"]',
        '[data-testid="event-permalink-cover-photo"] img',
        '[data-testid="event-header"] img',
        'img[src*="scontent-"]',
        'img[src*="fbcdn.net"]',
    ),
    venue_fallback=(
        '[data-testid="event-permalink-details"] a[href*="maps"]',
        'a[href*="maps.google"]',
        'a[href*="facebook.com/pages"]',
        '.event-location',
        '.venue-name',
    ),
)


LAYOUTS = {table.name: table for table in (MODERN_LAYOUT, LEGACY_LAYOUT)}


def get_layout(name: str) -> SelectorTable:
    """
    Resolve a selector table by name.

    Raises:
        ValueError: If no layout has that name
    """
    try:
        return LAYOUTS[(name or '').strip().lower()]
    except KeyError:
        raise ValueError(
            f"Unknown selector layout '{name}'; expected one of {sorted(LAYOUTS)}"
        ) from None
