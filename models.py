import re
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Tuple

from errors import InvalidSearchRequest

# Parameters always set by the proxy; callers cannot override them
RESERVED_PARAMS = ('engine', 'api_key', 'ebay_domain')

# Anything outside letters, digits, underscore, whitespace and . , ( ) - is stripped
UNSAFE_VALUE_CHARS = re.compile(r'[^A-Za-z0-9_\s.,()-]')


def sanitize_param_value(value) -> str:
    """Render a forwarded value as a query string value with unsafe characters removed"""
    if isinstance(value, bool):
        value = 'true' if value else 'false'
    return UNSAFE_VALUE_CHARS.sub('', str(value))


def _has_value(value):
    """A search field counts only if it is a truthy scalar that survives sanitizing"""
    if not value or isinstance(value, bool):
        return False
    if not isinstance(value, (str, int, float)):
        return False
    return sanitize_param_value(value).strip() != ''


@dataclass
class SearchRequest:
    """eBay search filters sent by the widget (_nkw, category_id, _pgn, ...)"""

    params: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, body):
        """
        Validate a parsed JSON body

        Args:
            body: Result of request.get_json()

        Returns:
            SearchRequest: validated request

        Raises:
            InvalidSearchRequest: body is not an object or has no keyword/category
        """
        if not isinstance(body, dict):
            raise InvalidSearchRequest('Request body must be a JSON object')

        if not _has_value(body.get('_nkw')) and not _has_value(body.get('category_id')):
            raise InvalidSearchRequest('Search query (_nkw) or category_id is required')

        return cls(params=dict(body))

    @property
    def keyword(self):
        return self.params.get('_nkw')

    def forwarded_items(self) -> List[Tuple[str, Any]]:
        """Key/value pairs to forward upstream, skipping empty and reserved keys"""
        return [
            (key, value) for key, value in self.params.items()
            if key not in RESERVED_PARAMS and value is not None and value != ''
        ]


@dataclass
class RateLimitEntry:
    """Request counter for one client IP within a fixed window"""

    request_count: int = 0
    reset_at: float = 0.0  # epoch milliseconds

    def is_expired(self, now_ms):
        return now_ms > self.reset_at

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        return cls(
            request_count=int(data.get('request_count', 0)),
            reset_at=float(data.get('reset_at', 0.0)),
        )
