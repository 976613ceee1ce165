"""
SerpAPI eBay Search Service
Forwards widget search filters to SerpAPI and returns cleaned results
"""

import json
import logging
import time
from typing import Dict, List, Tuple

import requests

from config import (
    DEFAULT_TIMEOUT_SECONDS,
    EBAY_DOMAIN,
    SERPAPI_ENGINE,
    SERPAPI_URL,
    USER_AGENT,
)
from errors import UpstreamRequestFailed, UpstreamSearchError, UpstreamTimeout
from models import SearchRequest, sanitize_param_value
from sanitizer import sanitize_search_response

logger = logging.getLogger(__name__)

FAILURE_PREFIX = 'Failed to search eBay products: '
TIMEOUT_MESSAGE = 'Request timeout - eBay search took too long. Please try again.'


class SerpApiSearchService:
    """
    Client for SerpAPI's eBay engine
    Builds the upstream query, performs the GET and maps failures to proxy errors
    """

    def __init__(self, api_key: str, timeout: float = DEFAULT_TIMEOUT_SECONDS, base_url: str = SERPAPI_URL,
                 clock=time.monotonic):
        """
        Initialize the search service

        Args:
            api_key (str): SerpAPI secret
            timeout (float): Seconds before the upstream call is abandoned
            base_url (str): SerpAPI search endpoint
            clock: Monotonic seconds source used for the overall deadline
        """
        self.api_key = api_key
        self.timeout = timeout
        self.base_url = base_url
        self.clock = clock

    def _redact(self, text: str) -> str:
        if not self.api_key:
            return text
        return text.replace(self.api_key, "***")

    def _read_body(self, response) -> bytes:
        """
        Read the response body within the overall timeout

        requests applies its timeout to the connect and to each socket read,
        so a slowly trickling body is cut off here instead.
        """
        deadline = self.clock() + self.timeout
        chunks = []
        try:
            for chunk in response.iter_content(chunk_size=8192):
                chunks.append(chunk)
                if self.clock() > deadline:
                    raise requests.exceptions.ReadTimeout(f"Response body not received within {self.timeout}s")
        finally:
            response.close()
        return b''.join(chunks)

    def build_params(self, search_request: SearchRequest) -> List[Tuple[str, str]]:
        """
        Build the upstream query parameters

        Args:
            search_request (SearchRequest): Validated widget filters

        Returns:
            list: (key, value) pairs, fixed parameters first
        """
        params = [
            ('engine', SERPAPI_ENGINE),
            ('api_key', self.api_key),
            ('ebay_domain', EBAY_DOMAIN),
        ]

        for key, value in search_request.forwarded_items():
            cleaned = sanitize_param_value(value)
            if cleaned == '':
                logger.debug(f"Dropping parameter {key}: empty after sanitizing")
                continue
            params.append((key, cleaned))

        return params

    def search(self, search_request: SearchRequest) -> Dict:
        """
        Run an eBay search through SerpAPI

        Args:
            search_request (SearchRequest): Validated widget filters

        Returns:
            dict: SerpAPI response with cleaned organic_results

        Raises:
            UpstreamTimeout: SerpAPI did not answer within the timeout
            UpstreamSearchError: SerpAPI reported an error for this search
            UpstreamRequestFailed: network failure, non-2xx status or unreadable body
        """
        params = self.build_params(search_request)
        logged_params = [(key, value) for key, value in params if key != 'api_key']
        logger.info(f"Making SERPAPI request: {self.base_url} {logged_params}")

        try:
            response = requests.get(
                self.base_url,
                params=params,
                headers={'User-Agent': USER_AGENT},
                timeout=self.timeout,
                stream=True,
            )
            body = self._read_body(response)
        except requests.exceptions.Timeout:
            logger.warning(f"SERPAPI request timed out after {self.timeout}s")
            raise UpstreamTimeout(TIMEOUT_MESSAGE)
        except requests.exceptions.RequestException as e:
            # Connection errors echo the request URL, which carries the key
            reason = self._redact(str(e))
            logger.error(f"SERPAPI request failed: {reason}")
            raise UpstreamRequestFailed(f"{FAILURE_PREFIX}SERPAPI request failed: {reason}")

        try:
            data = json.loads(body)
        except ValueError:
            data = None

        if not response.ok:
            logger.error(f"SERPAPI request failed: {response.status_code} {response.reason}")
            raise UpstreamRequestFailed(
                f"{FAILURE_PREFIX}SERPAPI request failed: {response.status_code} {response.reason}"
            )

        # A 200 can still carry an error field for a bad search
        if isinstance(data, dict) and data.get('error'):
            logger.warning(f"SERPAPI error ({response.status_code}): {data['error']}")
            raise UpstreamSearchError(f"SERPAPI Error: {data['error']}")

        if not isinstance(data, dict):
            logger.error("SERPAPI returned a response that is not a JSON object")
            raise UpstreamRequestFailed(f"{FAILURE_PREFIX}SERPAPI returned an invalid response")

        cleaned = sanitize_search_response(data)
        results = cleaned.get('organic_results')
        result_count = len(results) if isinstance(results, list) else 0
        logger.info(f"SERPAPI returned {result_count} organic results for '{search_request.keyword}'")
        return cleaned
