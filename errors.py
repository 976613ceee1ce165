"""
Error types raised by the search proxy pipeline
Each error carries the HTTP status the API boundary responds with
"""


class SearchProxyError(Exception):
    """Base error for failures that map directly to an HTTP response"""

    status_code = 500

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {'error': self.message}


class InvalidSearchRequest(SearchProxyError):
    status_code = 400


class MissingConfiguration(SearchProxyError):
    status_code = 500


class RateLimitExceeded(SearchProxyError):
    status_code = 429

    def __init__(self, message='Too many requests. Please try again later.', retry_after=60):
        super().__init__(message)
        self.retry_after = retry_after

    def to_dict(self):
        return {'error': self.message, 'retryAfter': self.retry_after}


class UpstreamTimeout(SearchProxyError):
    status_code = 408


class UpstreamSearchError(SearchProxyError):
    """SerpAPI answered with an `error` field"""
    status_code = 400


class UpstreamRequestFailed(SearchProxyError):
    """SerpAPI could not be reached or returned a non-2xx status"""
    status_code = 500
