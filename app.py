from flask import Flask, Blueprint, current_app, request, jsonify
from flask_cors import CORS
import os
import logging
from datetime import datetime, timezone

from config import CORS_MAX_AGE, LOG_FORMAT, get_serpapi_key, load_config
from errors import MissingConfiguration, RateLimitExceeded, SearchProxyError
from models import SearchRequest
from rate_limiter import create_rate_limiter, get_client_ip
from search_service import FAILURE_PREFIX, SerpApiSearchService

# Configure logging
logging.basicConfig(
    level=getattr(logging, os.getenv('LOG_LEVEL', 'INFO').upper(), logging.INFO),
    format=LOG_FORMAT,
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger(__name__)

VERSION = '1.0.0'

search_api = Blueprint('search_api', __name__)


def add_cors_defaults(response):
    """Methods, headers and max-age go out on every response; the origin is echoed by flask-cors"""
    # Overrides the sorted method list flask-cors writes on preflight
    response.headers['Access-Control-Allow-Methods'] = 'POST, OPTIONS'
    response.headers['Access-Control-Allow-Headers'] = 'Content-Type'
    response.headers.setdefault('Access-Control-Max-Age', str(CORS_MAX_AGE))
    return response


def answer_options():
    """OPTIONS gets an empty 200 on any path, before routing or rate limiting"""
    if request.method == 'OPTIONS':
        return current_app.make_default_options_response()
    return None


def method_not_allowed(e):
    response = jsonify({'error': 'Method not allowed'})
    response.status_code = 405
    if getattr(e, 'valid_methods', None):
        response.headers['Allow'] = ', '.join(e.valid_methods)
    return response


def handle_search_proxy_error(e):
    """Single mapping from pipeline errors to HTTP responses"""
    response = jsonify(e.to_dict())
    response.status_code = e.status_code
    if isinstance(e, RateLimitExceeded):
        response.headers['Retry-After'] = str(e.retry_after)
    return response


@search_api.route('/', methods=['POST'])
@search_api.route('/api/ebay-search', methods=['POST'])
def ebay_search():
    """Proxy an eBay search from the widget to SerpAPI"""
    try:
        # Rate limit per client IP
        limiter = current_app.extensions['rate_limiter']
        client_ip = get_client_ip(request)
        if not limiter.check(client_ip):
            logger.warning(f"Rate limit exceeded for {client_ip}")
            raise RateLimitExceeded(retry_after=limiter.retry_after_seconds)

        api_key = get_serpapi_key()
        if not api_key:
            logger.error("SERPAPI_KEY is not configured")
            raise MissingConfiguration('SERPAPI_KEY environment variable not set')

        search_request = SearchRequest.from_json(request.get_json(force=True, silent=True))

        service = SerpApiSearchService(api_key, timeout=current_app.config['SERPAPI_TIMEOUT'])
        results = service.search(search_request)

        return jsonify(results), 200

    except SearchProxyError:
        raise
    except Exception as e:
        logger.exception(f"Backend error: {str(e)}")
        return jsonify({'error': f'{FAILURE_PREFIX}{str(e)}'}), 500


@search_api.route('/api/health', methods=['GET'])
def health_check():
    """Health check endpoint with configuration status"""
    limiter = current_app.extensions['rate_limiter']
    return jsonify({
        'status': 'healthy',
        'message': 'eBay search proxy is running',
        'serpapi_configured': bool(get_serpapi_key()),
        'rate_limit_backend': limiter.store.backend_name,
        'version': VERSION,
        'timestamp': datetime.now(timezone.utc).isoformat()
    })


def create_app(config=None):
    """
    Create the Flask app

    Args:
        config (dict): Overrides applied on top of the environment config.
            RATE_LIMITER may hold a ready FixedWindowRateLimiter.

    Returns:
        Flask: configured application
    """
    app = Flask(__name__)
    app.config.update(load_config())
    if config:
        app.config.update(config)

    app.before_request(answer_options)
    # Registered before flask-cors so it runs after it
    app.after_request(add_cors_defaults)
    CORS(
        app,
        origins=app.config['ALLOWED_ORIGINS'],
        methods=['POST', 'OPTIONS'],
        allow_headers=['Content-Type'],
        max_age=CORS_MAX_AGE,
    )

    app.extensions['rate_limiter'] = app.config.get('RATE_LIMITER') or create_rate_limiter(app.config)

    app.register_blueprint(search_api)
    app.register_error_handler(405, method_not_allowed)
    app.register_error_handler(SearchProxyError, handle_search_proxy_error)

    logger.info(f"eBay search proxy ready, allowed origins: {app.config['ALLOWED_ORIGINS']}")
    return app


app = create_app()

if __name__ == '__main__':
    debug_mode = os.getenv('FLASK_DEBUG', 'False').lower() == 'true'
    port = int(os.getenv('PORT', 5000))
    host = os.getenv('HOST', '0.0.0.0')
    app.run(debug=debug_mode, host=host, port=port)
