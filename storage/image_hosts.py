"""Image hosting chain behind the proxy-image endpoint."""
import logging
import uuid
from functools import partial
from typing import List, Optional, Sequence, Tuple

import boto3
import requests
from botocore.exceptions import BotoCoreError, ClientError

from processor.models import ImageFetchError, ImageHostingError, ProxyImageResult
from relay.fallback import SOFT_FAILURES, Strategy, run_chain

logger = logging.getLogger(__name__)

FETCH_HEADERS = {
    'User-Agent': (
        'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
        '(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36'
    ),
    'Accept': 'image/webp,image/apng,image/*,*/*;q=0.8',
    'Accept-Language': 'en-US,en;q=0.9',
    'Referer': 'https://www.facebook.com/',
    'Origin': 'https://www.facebook.com',
    'Sec-Fetch-Dest': 'image',
    'Sec-Fetch-Mode': 'cors',
    'Sec-Fetch-Site': 'same-site',
    'Cache-Control': 'no-cache',
}

HOST_FAILURES = SOFT_FAILURES + (ClientError, BotoCoreError)


def extension_for(content_type: str) -> str:
    content_type = (content_type or '').lower()
    for extension in ('png', 'gif', 'webp'):
        if extension in content_type:
            return extension
    return 'jpg'


class FileIoHost:
    """Anonymous upload to file.io."""

    name = 'fileio'
    UPLOAD_URL = 'https://file.io'

    def __init__(self, session: Optional[requests.Session] = None):
        self.session = session or requests.Session()

    def upload(self, content: bytes, filename: str, content_type: str, timeout: float) -> Optional[str]:
        response = self.session.post(
            self.UPLOAD_URL,
            files={'file': (filename, content, content_type)},
            timeout=timeout
        )
        response.raise_for_status()
        data = response.json()
        if data.get('success') and data.get('link'):
            return data['link']
        logger.warning(f"file.io response format unexpected: {data}")
        return None


class CatboxHost:
    """Anonymous upload to catbox.moe."""

    name = 'catbox'
    UPLOAD_URL = 'https://catbox.moe/user/api.php'
    HOSTED_PREFIX = 'https://files.catbox.moe/'

    def __init__(self, session: Optional[requests.Session] = None):
        self.session = session or requests.Session()

    def upload(self, content: bytes, filename: str, content_type: str, timeout: float) -> Optional[str]:
        response = self.session.post(
            self.UPLOAD_URL,
            data={'reqtype': 'fileupload'},
            files={'fileToUpload': (filename, content, content_type)},
            timeout=timeout
        )
        response.raise_for_status()
        hosted_url = response.text.strip()
        if hosted_url.startswith(self.HOSTED_PREFIX):
            return hosted_url
        logger.warning(f"catbox.moe response format unexpected: {hosted_url[:200]}")
        return None


class S3ImageStore:
    """
    Stores images in the application's own bucket.

    Returns a path relative to the application origin, which serves the
    bucket under /images/uploads.
    """

    name = 'local'
    KEY_PREFIX = 'images/uploads'

    def __init__(self, bucket_name: str, s3_client=None):
        """
        Initialize the S3 client.

        Args:
            bucket_name: Bucket holding uploaded images
            s3_client: Optional boto3 S3 client
        """
        self.bucket_name = bucket_name
        self.s3 = s3_client or boto3.client('s3')
        logger.info(f"Initialized S3ImageStore for bucket: {bucket_name}")

    def upload(self, content: bytes, filename: str, content_type: str, timeout: float) -> str:
        key = f"{self.KEY_PREFIX}/{filename}"
        try:
            self.s3.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=content,
                ContentType=content_type
            )
        except ClientError as e:
            logger.error(f"Error writing {key} to S3: {e}")
            raise
        return f"/{key}"


class ImageHostChain:
    """Downloads a restricted image and re-hosts it on the first host that works."""

    def __init__(
        self,
        hosts: Sequence,
        fetch_timeout: float = 10.0,
        upload_timeout: float = 15.0,
        session: Optional[requests.Session] = None
    ):
        self.hosts = list(hosts)
        self.fetch_timeout = fetch_timeout
        self.upload_timeout = upload_timeout
        self.session = session or requests.Session()

    def fetch_image(self, image_url: str) -> Tuple[bytes, str]:
        """
        Download the source image with browser-like headers.

        Returns:
            Tuple of (image bytes, content type)

        Raises:
            ImageFetchError: If the download fails or returns non-2xx
        """
        try:
            response = self.session.get(image_url, headers=FETCH_HEADERS, timeout=self.fetch_timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Failed to fetch image {image_url}: {e}")
            raise ImageFetchError(f"Failed to fetch image: {e}") from e

        content_type = response.headers.get('Content-Type') or 'image/jpeg'
        logger.info(f"Downloaded image, size: {len(response.content)}")
        return response.content, content_type

    def proxy(self, image_url: str) -> ProxyImageResult:
        """
        Re-host an image.

        Args:
            image_url: Restricted source image URL

        Returns:
            ProxyImageResult naming the host that accepted the image

        Raises:
            ImageFetchError: If the source image cannot be downloaded
            ImageHostingError: If every host fails
        """
        content, content_type = self.fetch_image(image_url)
        filename = f"facebook-event-{uuid.uuid4()}.{extension_for(content_type)}"

        strategies = [
            Strategy(
                name=f"{host.name} upload",
                run=partial(self._upload, host, content, filename, content_type),
                timeout=self.upload_timeout
            )
            for host in self.hosts
        ]
        hosted = run_chain(strategies, soft_failures=HOST_FAILURES)
        if not hosted:
            raise ImageHostingError('All image hosts failed')

        service, hosted_url = hosted
        return ProxyImageResult(
            success=True,
            url=hosted_url,
            original_url=image_url,
            size=len(content),
            service=service
        )

    @staticmethod
    def _upload(host, content: bytes, filename: str, content_type: str, timeout: float) -> Optional[Tuple[str, str]]:
        hosted_url = host.upload(content, filename, content_type, timeout)
        return (host.name, hosted_url) if hosted_url else None


def build_host_chain(
    bucket_name: Optional[str] = None,
    fetch_timeout: float = 10.0,
    upload_timeout: float = 15.0,
    session: Optional[requests.Session] = None
) -> ImageHostChain:
    """file.io, then catbox.moe, then the S3 bucket when one is configured."""
    session = session or requests.Session()
    hosts: List = [FileIoHost(session), CatboxHost(session)]
    if bucket_name:
        hosts.append(S3ImageStore(bucket_name))
    return ImageHostChain(hosts, fetch_timeout, upload_timeout, session)
