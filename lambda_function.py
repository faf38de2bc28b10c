"""AWS Lambda handler for the Facebook event import extractor."""
import json
import logging
import time
from typing import Any, Dict

from message_responder import EXTRACT_ACTION, MessageResponder, ResponderSettings
from processor.models import ImageFetchError, ImageHostingError
from storage.image_hosts import build_host_chain

PROXY_IMAGE_ACTION = 'proxyImage'

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'POST, OPTIONS',
    'Access-Control-Allow-Headers': 'Content-Type'
}

# Attributes every LogRecord carries; anything else came in via `extra`
_RECORD_ATTRIBUTES = set(vars(logging.makeLogRecord({}))) | {'message', 'asctime'}


class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including fields passed via extra."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in vars(record).items():
            if key not in _RECORD_ATTRIBUTES and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def _response(status_code: int, body: Dict[str, Any], headers: Dict[str, str] = None) -> Dict[str, Any]:
    response = {'statusCode': status_code, 'body': json.dumps(body)}
    if headers:
        response['headers'] = dict(headers)
    return response


def handle_extract(event: Dict[str, Any], settings: ResponderSettings) -> Dict[str, Any]:
    """Run the extraction pipeline and wrap its result as an HTTP response."""
    responder = MessageResponder(settings)
    result = responder.handle(event)
    return _response(200 if result.success else 500, result.to_message())


def handle_proxy_image(event: Dict[str, Any], settings: ResponderSettings) -> Dict[str, Any]:
    """Re-host an image through file.io, catbox.moe or the S3 bucket."""
    logger = logging.getLogger(__name__)
    image_url = event.get('imageUrl')
    if not image_url:
        return _response(400, {'success': False, 'error': 'No image URL provided'}, CORS_HEADERS)

    chain = build_host_chain(
        bucket_name=settings.image_bucket,
        fetch_timeout=settings.fetch_timeout
    )
    try:
        result = chain.proxy(image_url)
    except ImageFetchError as e:
        return _response(400, {'success': False, 'error': str(e)}, CORS_HEADERS)
    except ImageHostingError as e:
        logger.error(f"Image hosting failed: {e}")
        return _response(500, {'success': False, 'error': 'Failed to proxy image'}, CORS_HEADERS)

    logger.info(f"Image proxied via {result.service}", extra={'hosted_url': result.url, 'size': result.size})
    return _response(200, result.to_dict(), CORS_HEADERS)


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function.

    Args:
        event: Inbound message, {"action": ..., ...}
        context: Lambda context object

    Returns:
        Response dict with statusCode and JSON body
    """
    settings = ResponderSettings.from_env()

    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    action = event.get('action') if isinstance(event, dict) else None
    logger.info("Lambda execution started", extra={'action': action})

    try:
        if action == EXTRACT_ACTION:
            response = handle_extract(event, settings)
        elif action == PROXY_IMAGE_ACTION:
            response = handle_proxy_image(event, settings)
        else:
            logger.warning(f"Unsupported action: {action}")
            response = _response(400, {'success': False, 'error': f"Unsupported action: {action}"})

    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return _response(500, {
            'success': False,
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })

    logger.info(
        "Lambda execution completed",
        extra={
            'action': action,
            'status_code': response['statusCode'],
            'duration_seconds': round(time.time() - start_time, 2)
        }
    )
    return response
