"""Unit tests for EventProcessor."""
from datetime import datetime, timezone

import pytest

from processor.event_processor import EventProcessor
from processor.models import NOT_EVENT_PAGE_TITLE, ExtractedEvent


@pytest.fixture
def processor():
    return EventProcessor()


@pytest.fixture
def sample_event():
    return ExtractedEvent(
        title="Halloween Jazz Night",
        date="Friday, October 31, 2025",
        time="8 PM",
        venue="The Blue Note Lounge",
        description="Live jazz and a costume contest.",
        image="https://scontent.xx.fbcdn.net/v/cover.jpg",
        promoters=["Alice", "Bob"],
        ticket_url="https://example.com/tix",
        url="https://www.facebook.com/events/1234567890/"
    )


class TestDateTimeParsing:
    """Test cases for date and time text parsing."""

    def test_split_date_time(self, processor):
        """Test splitting a full date-time phrase."""
        result = processor.split_date_time("Friday, October 31, 2025 at 8 PM")

        assert result == ("Friday, October 31, 2025", "8 PM")

    def test_split_date_time_keeps_end_time(self, processor):
        """Test that a time range survives the split."""
        result = processor.split_date_time("Saturday, November 1, 2025 at 9:30 PM – 1 AM")

        assert result == ("Saturday, November 1, 2025", "9:30 PM – 1 AM")

    def test_split_date_time_no_match(self, processor):
        assert processor.split_date_time("Tomorrow night") is None
        assert processor.split_date_time("") is None

    def test_find_date_and_time_separately(self, processor):
        assert processor.find_date("Happening Sunday, March 2, 2025") == "Sunday, March 2, 2025"
        assert processor.find_time("Doors at 7:00 pm") == "7:00 pm"
        assert processor.find_date("No date here") is None
        assert processor.find_time("No time here") is None


class TestCleanDescription:
    """Test cases for description cleanup."""

    def test_strips_see_more(self, processor):
        assert processor.clean_description("Great night of music. See more") == "Great night of music."

    def test_strips_everything_after_see_less(self, processor):
        text = "Great night of music.\nSee less\nDetails Discussion"

        assert processor.clean_description(text) == "Great night of music."

    def test_strips_trailing_truncation_letter(self, processor):
        assert processor.clean_description("Great night of music P") == "Great night of music"

    def test_keeps_words_ending_in_p(self, processor):
        assert processor.clean_description("Bring your own cup") == "Bring your own cup"

    def test_strips_trailing_ellipsis(self, processor):
        assert processor.clean_description("Great night of music …") == "Great night of music"

    def test_caps_length(self, processor):
        cleaned = processor.clean_description("x" * 1200)

        assert len(cleaned) == EventProcessor.MAX_DESCRIPTION_LENGTH


class TestTicketLinks:
    """Test cases for ticket link detection and cleanup."""

    @pytest.mark.parametrize("text,href", [
        ("Find Tickets", "https://example.com/a"),
        ("Buy now", "https://example.com/b"),
        ("Register", "https://www.eventbrite.com/e/123"),
        ("More info", "https://www.ticketmaster.com/event/1"),
        ("Reserve", "https://theticketing.co/e/1"),
    ])
    def test_is_ticket_link(self, processor, text, href):
        assert processor.is_ticket_link(text, href)

    def test_is_not_ticket_link(self, processor):
        assert not processor.is_ticket_link("Venue website", "https://example.com/")

    def test_unwraps_facebook_redirect(self, processor):
        href = "https://l.facebook.com/l.php?u=https%3A%2F%2Fexample.com%2Ftix%3Ffbclid%3Dabc&h=AT0"

        assert processor.clean_ticket_url(href) == "https://example.com/tix"

    def test_redirect_without_target(self, processor):
        assert processor.clean_ticket_url("https://l.facebook.com/l.php?h=AT0") is None

    def test_rejects_facebook_links(self, processor):
        assert processor.clean_ticket_url("https://www.facebook.com/events/123/tickets") is None

    def test_drops_query_string(self, processor):
        href = "https://www.eventbrite.com/e/jazz-night-123?aff=ebdssbdestsearch"

        assert processor.clean_ticket_url(href) == "https://www.eventbrite.com/e/jazz-night-123"

    def test_empty_href(self, processor):
        assert processor.clean_ticket_url("") is None


class TestPromoters:
    """Test cases for promoter parsing."""

    def test_comma_and_and_separated(self, processor):
        text = "Event by Alice, Bob and Carol Public · Anyone on or off Facebook"

        assert processor.parse_promoters(text) == ["Alice", "Bob", "Carol"]

    def test_stops_at_visibility_marker(self, processor):
        assert processor.parse_promoters("Event by Alice, Bob · Public") == ["Alice", "Bob"]

    def test_capped_at_three(self, processor):
        text = "Event by Alice, Bob, Carol, Dave"

        assert processor.parse_promoters(text) == ["Alice", "Bob", "Carol"]

    def test_filters_noise_and_times(self, processor):
        text = "Event by Alice, 7:00 PM, See more, B"

        assert processor.parse_promoters(text) == ["Alice"]

    def test_no_event_by(self, processor):
        assert processor.parse_promoters("Hosted by nobody in particular") == []


class TestImportPayload:
    """Test cases for import payload assembly."""

    def test_build_import_payload(self, processor, sample_event):
        """Test the full payload for a relayed image."""
        extracted_at = datetime(2025, 10, 1, 12, 0, tzinfo=timezone.utc)
        payload = processor.build_import_payload(
            sample_event, "https://files.catbox.moe/abc123.jpg", extracted_at
        )

        assert payload == {
            'source': 'facebook_extension',
            'event_title': "Halloween Jazz Night",
            'event_date': "Friday, October 31, 2025",
            'event_time': "8 PM",
            'venue_name': "The Blue Note Lounge",
            'promoters': ["Alice", "Bob"],
            'genre': 'multi-genre',
            'description': "Live jazz and a costume contest.",
            'image_url': "https://files.catbox.moe/abc123.jpg",
            'ticket_url': "https://example.com/tix",
            'facebook_url': "https://www.facebook.com/events/1234567890/",
            'extracted_at': "2025-10-01T12:00:00+00:00",
            'image_upload_status': 'success',
            'image_service_used': 'Catbox.moe',
            'original_facebook_image': "https://scontent.xx.fbcdn.net/v/cover.jpg",
            'event_slug': "halloween-jazz-night-2025"
        }

    def test_failed_image_relay(self, processor, sample_event):
        """Test that an empty image URL marks the upload as failed."""
        payload = processor.build_import_payload(sample_event, '')

        assert payload['image_url'] == ''
        assert payload['image_upload_status'] == 'failed'
        assert payload['image_service_used'] == 'Unknown'
        assert payload['original_facebook_image'] == sample_event.image
        assert payload['extracted_at']

    def test_promoters_are_copied(self, processor, sample_event):
        payload = processor.build_import_payload(sample_event, '')
        payload['promoters'].append("Mallory")

        assert sample_event.promoters == ["Alice", "Bob"]

    def test_non_event_page_has_no_slug(self, processor):
        event = ExtractedEvent(title=NOT_EVENT_PAGE_TITLE, url="https://www.facebook.com/events/discover")
        payload = processor.build_import_payload(event, '')

        assert payload['event_title'] == NOT_EVENT_PAGE_TITLE
        assert payload['event_slug'] == ''

    @pytest.mark.parametrize("url,label", [
        ("https://file.io/AbCdEf", "File.io"),
        ("https://files.catbox.moe/abc123.jpg", "Catbox.moe"),
        ("http://localhost:3002/images/uploads/facebook-event-1.jpg", "Local Storage"),
        ("https://cdn.example.com/a.jpg", "Unknown"),
    ])
    def test_image_service_label(self, processor, url, label):
        assert processor.image_service_label(url) == label
