"""
Response cleanup for SerpAPI eBay results
Normalizes the price field to a display string and drops shipping data
"""

import logging
import math
from numbers import Number

logger = logging.getLogger(__name__)

PRICE_FALLBACK = 'Price not available'

# Probed in order; the first usable value wins
STRING_PRICE_KEYS = ('raw', 'formatted')
NUMERIC_PRICE_KEYS = ('extracted_value', 'extracted', 'value', 'amount', 'price')


def _format_amount(value):
    # bool is a Number subclass; zero is treated as missing
    if isinstance(value, bool) or not isinstance(value, Number) or not value:
        return None
    try:
        amount = float(value)
        return f"${amount:.2f}" if math.isfinite(amount) else None
    except (TypeError, ValueError, OverflowError):
        return None


def clean_price_field(price_data):
    """
    Convert a SerpAPI price value into a plain display string

    Args:
        price_data: string, dict such as {"raw": "$25.99"} or {"extracted_value": 25.99}, or anything else

    Returns:
        str: display price, or "Price not available"
    """
    if isinstance(price_data, str):
        cleaned = price_data.strip()
        return cleaned if cleaned else PRICE_FALLBACK

    if not isinstance(price_data, dict):
        return PRICE_FALLBACK

    for key in STRING_PRICE_KEYS:
        candidate = price_data.get(key)
        if isinstance(candidate, str) and candidate.strip():
            return candidate

    for key in NUMERIC_PRICE_KEYS:
        candidate = _format_amount(price_data.get(key))
        if candidate:
            return candidate

    logger.warning(f"Could not parse price object: {price_data}")
    return PRICE_FALLBACK


def clean_product(product):
    """Shallow copy of a product without `shipping` and with a display price"""
    if not isinstance(product, dict):
        return product

    cleaned = dict(product)
    cleaned.pop('shipping', None)
    cleaned['price'] = clean_price_field(cleaned.get('price'))
    return cleaned


def sanitize_search_response(data):
    """
    Clean every organic result in a SerpAPI response

    Args:
        data (dict): Parsed SerpAPI JSON

    Returns:
        dict: New response dict with cleaned organic_results (input is not mutated)
    """
    cleaned = dict(data)
    results = cleaned.get('organic_results')
    if isinstance(results, list):
        cleaned['organic_results'] = [clean_product(product) for product in results]
    return cleaned
