"""Integration tests for MessageResponder."""
from unittest.mock import Mock

import pytest
import requests
import responses

from message_responder import EXTRACT_ACTION, MessageResponder, ResponderSettings
from processor.models import NOT_EVENT_PAGE_TITLE, Err, Ok
from relay.port_discovery import DEFAULT_PORTS
from scraper.selectors import LEGACY_LAYOUT


EVENT_URL = "https://www.facebook.com/events/1234567890/"
COVER_URL = "https://scontent-ord5-1.xx.fbcdn.net/v/t39/cover.jpg"
CATBOX_URL = "https://files.catbox.moe/abc123.jpg"

EVENT_PAGE_HTML = f"""
<div role="main">
    <div data-testid="event-header"><img src="{COVER_URL}" width="800" height="450"></div>
    <div><span class="x1e558r4">Friday, October 31, 2025 at 8 PM</span></div>
    <div><h1>Halloween Jazz Night</h1></div>
    <div><a href="https://www.facebook.com/bluenotestl">The Blue Note Lounge</a></div>
    <div><span>Event by Alice, Bob and Carol</span></div>
</div>
"""


@pytest.fixture
def settings():
    return ResponderSettings(candidate_ports=(3002, 3000))


def extract_message(url=EVENT_URL, html=EVENT_PAGE_HTML):
    message = {'action': EXTRACT_ACTION, 'url': url}
    if html is not None:
        message['html'] = html
    return message


def add_live_proxy(port=3002, hosted_url=CATBOX_URL, service='catbox'):
    responses.add(responses.GET, f"http://localhost:{port}/api/events", json=[], status=200)
    responses.add(
        responses.POST, f"http://localhost:{port}/api/proxy-image",
        json={'success': True, 'url': hosted_url, 'originalUrl': COVER_URL, 'service': service},
        status=200
    )


class TestMessageResponder:
    """Test cases for MessageResponder."""

    @responses.activate
    def test_extract_event_with_relayed_image(self, settings):
        """Test the full pipeline on a page snapshot."""
        add_live_proxy()

        result = MessageResponder(settings).handle(extract_message())

        assert isinstance(result, Ok)
        assert result.data['event_title'] == "Halloween Jazz Night"
        assert result.data['event_date'] == "Friday, October 31, 2025"
        assert result.data['event_time'] == "8 PM"
        assert result.data['venue_name'] == "The Blue Note Lounge"
        assert result.data['promoters'] == ["Alice", "Bob", "Carol"]
        assert result.data['image_url'] == CATBOX_URL
        assert result.data['image_upload_status'] == 'success'
        assert result.data['image_service_used'] == 'Catbox.moe'
        assert result.data['original_facebook_image'] == COVER_URL
        assert result.data['facebook_url'] == EVENT_URL
        assert result.raw.image == COVER_URL

    @responses.activate
    def test_message_shape(self, settings):
        add_live_proxy()

        message = MessageResponder(settings).handle(extract_message()).to_message()

        assert set(message) == {'success', 'data', 'raw'}
        assert message['success'] is True
        assert message['raw']['title'] == "Halloween Jazz Night"
        assert message['raw']['promoters'] == ["Alice", "Bob", "Carol"]

    @responses.activate
    def test_non_event_page(self, settings):
        """Test that a non-event URL yields the sentinel without network calls."""
        url = "https://www.facebook.com/events/discover"

        result = MessageResponder(settings).handle(extract_message(url=url))

        assert isinstance(result, Ok)
        assert result.data['event_title'] == NOT_EVENT_PAGE_TITLE
        assert result.data['facebook_url'] == url
        assert result.data['image_url'] == ''
        assert result.data['image_upload_status'] == 'failed'
        assert result.raw.promoters == []
        assert len(responses.calls) == 0

    @responses.activate
    def test_all_ports_time_out(self, settings):
        """Test that a dead relay leaves the image empty but still succeeds."""
        for port in settings.candidate_ports:
            responses.add(
                responses.GET, f"http://localhost:{port}/api/events",
                body=requests.ConnectTimeout("timed out")
            )

        result = MessageResponder(settings).handle(extract_message())

        assert isinstance(result, Ok)
        assert result.data['event_title'] == "Halloween Jazz Night"
        assert result.data['image_url'] == ''
        assert result.data['image_upload_status'] == 'failed'
        assert result.data['original_facebook_image'] == COVER_URL

    @responses.activate
    def test_fetches_page_when_html_missing(self, settings):
        responses.add(
            responses.GET, EVENT_URL, body=EVENT_PAGE_HTML, status=200,
            content_type='text/html; charset=utf-8'
        )
        add_live_proxy(port=3000, hosted_url='/images/uploads/facebook-event-1.jpg', service='local')
        responses.add(
            responses.GET, "http://localhost:3002/api/events",
            body=requests.ConnectionError("refused")
        )

        result = MessageResponder(settings).handle(extract_message(html=None))

        assert isinstance(result, Ok)
        assert result.data['event_title'] == "Halloween Jazz Night"
        assert result.data['image_url'] == "http://localhost:3000/images/uploads/facebook-event-1.jpg"
        assert result.data['image_service_used'] == 'Local Storage'

    def test_page_fetch_failure_is_err(self, settings):
        scraper = Mock()
        scraper.is_event_page.return_value = True
        scraper.fetch_page.side_effect = requests.ConnectionError("unreachable")

        result = MessageResponder(settings, scraper=scraper).handle(extract_message(html=None))

        assert isinstance(result, Err)
        assert result.to_message() == {'success': False, 'error': 'unreachable'}

    def test_unexpected_error_is_err(self, settings):
        scraper = Mock()
        scraper.extract.side_effect = RuntimeError("parser exploded")

        result = MessageResponder(settings, scraper=scraper).handle(extract_message())

        assert isinstance(result, Err)
        assert result.error == "parser exploded"

    @pytest.mark.parametrize("message", [
        {'action': 'somethingElse', 'url': EVENT_URL},
        {'url': EVENT_URL},
        None,
        "extractEventData",
    ])
    def test_invalid_messages(self, settings, message):
        result = MessageResponder(settings).handle(message)

        assert isinstance(result, Err)
        assert result.success is False

    def test_exhausted_budget_skips_relay(self):
        relay = Mock()
        settings = ResponderSettings(pipeline_timeout=0)

        result = MessageResponder(settings, relay=relay).handle(extract_message())

        assert isinstance(result, Ok)
        assert result.data['image_url'] == ''
        relay.relay.assert_not_called()

    def test_relay_gets_child_budget(self, settings):
        relay = Mock()
        relay.relay.return_value = CATBOX_URL

        result = MessageResponder(settings, relay=relay).handle(extract_message())

        image_url, deadline = relay.relay.call_args.args
        assert image_url == COVER_URL
        assert 0 < deadline.remaining() <= settings.image_timeout
        assert result.data['image_url'] == CATBOX_URL

    def test_uses_configured_layout(self):
        responder = MessageResponder(ResponderSettings(layout='legacy'))

        assert responder.scraper.layout is LEGACY_LAYOUT


class TestResponderSettings:
    """Test cases for ResponderSettings."""

    def test_defaults(self):
        settings = ResponderSettings.from_env({})

        assert settings.layout == 'modern'
        assert settings.candidate_ports == DEFAULT_PORTS
        assert settings.probe_timeout == 2.0
        assert settings.upload_timeout == 4.0
        assert settings.image_timeout == 8.0
        assert settings.pipeline_timeout == 15.0
        assert settings.image_bucket is None
        assert settings.log_level == 'INFO'

    def test_from_env(self):
        settings = ResponderSettings.from_env({
            'SELECTOR_LAYOUT': 'legacy',
            'CANDIDATE_PORTS': '8080, 3000',
            'PROBE_TIMEOUT_SECONDS': '1',
            'PIPELINE_TIMEOUT_SECONDS': '20',
            'IMAGE_BUCKET': 'event-images',
            'LOG_LEVEL': 'DEBUG'
        })

        assert settings.layout == 'legacy'
        assert settings.candidate_ports == (8080, 3000)
        assert settings.probe_timeout == 1.0
        assert settings.pipeline_timeout == 20.0
        assert settings.image_bucket == 'event-images'
        assert settings.log_level == 'DEBUG'
