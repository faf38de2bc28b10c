"""Data models for event extraction and image relay."""
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Union


NOT_EVENT_PAGE_TITLE = 'Not on Facebook event page'


class ExtractorError(Exception):
    """Base class for extraction pipeline errors."""


class PageFetchError(ExtractorError):
    """The event page HTML could not be obtained."""


class ImageFetchError(ExtractorError):
    """The source image could not be downloaded."""


class ImageHostingError(ExtractorError):
    """Every image host in the chain failed."""


class SlugCollisionError(ExtractorError):
    """No free slug was found within the attempt limit."""


@dataclass
class ExtractedEvent:
    """Raw event fields scraped from a Facebook event page."""
    title: str = ''
    date: str = ''
    time: str = ''
    venue: str = ''
    description: str = ''
    image: str = ''
    promoters: List[str] = field(default_factory=list)
    ticket_url: str = ''
    url: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ImageCandidate:
    """Facebook CDN image found on the page."""
    src: str
    width: int = 0
    height: int = 0
    index: int = 0

    @property
    def area(self) -> int:
        return self.width * self.height


@dataclass
class ProxyImageResult:
    """Result of re-hosting an image through the host chain."""
    success: bool
    url: str
    original_url: str
    size: int
    service: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'url': self.url,
            'originalUrl': self.original_url,
            'size': self.size,
            'service': self.service
        }


@dataclass
class Ok:
    """Successful extraction."""
    data: Dict[str, Any]
    raw: ExtractedEvent

    success = True

    def to_message(self) -> Dict[str, Any]:
        return {'success': True, 'data': self.data, 'raw': self.raw.to_dict()}


@dataclass
class Err:
    """Failed extraction."""
    error: str

    success = False

    def to_message(self) -> Dict[str, Any]:
        return {'success': False, 'error': self.error}


ExtractionResult = Union[Ok, Err]
