# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by UiT The Arctic University of Norway (Tromsø).
# Unauthorized use, distribution, or modification is prohibited.

"""
REST Client - requests session with linear-backoff retries and Link header pagination
"""
import logging
import time
from typing import Any, Dict, Optional
from urllib.parse import urljoin

import requests

from errors import HttpError, ModelError, TransportError
from utils.logger import StructuredLogger
from utils.retry import RetryContext

logger = logging.getLogger(__name__)


class RESTClient:
    """Base client shared by the TP and Canvas clients"""

    def __init__(
        self,
        base_url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: int = 30,
        max_retries: int = 5,
        retry_delay: float = 3.0,
        session: Optional[requests.Session] = None,
        sleep=time.sleep,
        max_pages: int = 500
    ):
        self.base_url = base_url if base_url.endswith('/') else base_url + '/'
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.max_pages = max_pages
        self.session = session or requests.Session()
        if headers:
            self.session.headers.update(headers)
        self._sleep = sleep
        self.structured_logger = StructuredLogger(type(self).__module__)

    def url_for(self, path: str) -> str:
        if path.startswith('http://') or path.startswith('https://'):
            return path
        return urljoin(self.base_url, path.lstrip('/'))

    def request(self, method: str, path: str, **kwargs) -> requests.Response:
        """
        Send a request, retrying connection failures, 5xx and throttling.

        Raises:
            TransportError: connection-level failure after every retry
            HttpError: the remote rejected the request (or kept failing)
        """
        url = self.url_for(path)
        kwargs.setdefault('timeout', self.timeout)

        with RetryContext(self.max_retries, self.retry_delay, sleep=self._sleep) as retry:
            while True:
                started = time.monotonic()
                try:
                    response = self.session.request(method, url, **kwargs)
                except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
                    self.structured_logger.log_api_call(method, url, error=f"{type(e).__name__}: {e}")
                    if retry.record(exception=e, label=f"{method} {url}"):
                        continue
                    raise TransportError(f"{method} {url} failed: {e}", method, url) from e
                except requests.exceptions.RequestException as e:
                    raise TransportError(f"{method} {url} failed: {e}", method, url) from e

                duration_ms = (time.monotonic() - started) * 1000
                self.structured_logger.log_api_call(method, url, response.status_code, duration_ms)

                if response.status_code < 400:
                    return response
                if retry.record(response=response, label=f"{method} {url}"):
                    continue
                raise HttpError.for_status(response.status_code, response.text, method, url)

    def get(self, path: str, **kwargs) -> requests.Response:
        return self.request('GET', path, **kwargs)

    def post(self, path: str, **kwargs) -> requests.Response:
        return self.request('POST', path, **kwargs)

    def delete(self, path: str, **kwargs) -> requests.Response:
        return self.request('DELETE', path, **kwargs)

    @staticmethod
    def response_to_native(response: requests.Response) -> Any:
        """Decode a JSON response body; an empty body decodes to None"""
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ModelError(f"Response from {response.url} is not JSON: {e}") from e

    def get_json(self, path: str, **kwargs) -> Any:
        return self.response_to_native(self.get(path, **kwargs))

    def paginated_get(self, path: str, **kwargs) -> Any:
        """
        GET every page of a list endpoint and concatenate them in order.

        Query options only apply to the first request; the next links already
        carry them. A response that is not a list is returned as is.
        """
        response = self.get(path, **kwargs)
        result = self.response_to_native(response)
        if not isinstance(result, list):
            return result

        pages = 1
        next_page = response.links.get('next', {}).get('url')
        while next_page:
            if pages >= self.max_pages:
                logger.warning(f"Stopping pagination of {path} after {pages} pages")
                break
            response = self.get(next_page)
            page = self.response_to_native(response)
            if isinstance(page, list):
                result.extend(page)
            pages += 1
            next_page = response.links.get('next', {}).get('url')

        logger.debug(f"Fetched {len(result)} items from {path} in {pages} page(s)")
        return result
