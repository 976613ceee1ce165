"""Tests for the SerpAPI forwarding service."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from conftest import make_upstream_response
from errors import InvalidSearchRequest, UpstreamRequestFailed, UpstreamSearchError, UpstreamTimeout
from models import SearchRequest
from search_service import SerpApiSearchService, sanitize_param_value


@pytest.fixture
def service():
    return SerpApiSearchService('secret-key', timeout=10)


class TestSearchRequest:

    def test_keyword_with_some_unsafe_characters(self):
        assert SearchRequest.from_json({'_nkw': 'jersey $'}).keyword == 'jersey $'

    def test_keyword_only(self):
        assert SearchRequest.from_json({'_nkw': 'jersey'}).keyword == 'jersey'

    def test_category_only(self):
        assert SearchRequest.from_json({'category_id': 2536}).params == {'category_id': 2536}

    @pytest.mark.parametrize('body', [
        {},
        {'_nkw': ''},
        {'_nkw': '   ', 'category_id': None},
        {'_pgn': 2},
        {'_nkw': '$$$'},
        {'_nkw': []},
        {'_nkw': {}},
        {'_nkw': 0},
        {'_nkw': False},
        {'category_id': 0},
        {'_nkw': '<>;', 'category_id': ''},
    ])
    def test_missing_keyword_and_category(self, body):
        with pytest.raises(InvalidSearchRequest, match=r'_nkw\) or category_id is required'):
            SearchRequest.from_json(body)

    @pytest.mark.parametrize('body', [None, [], 'jersey', 3])
    def test_body_must_be_object(self, body):
        with pytest.raises(InvalidSearchRequest, match='JSON object'):
            SearchRequest.from_json(body)

    def test_forwarded_items_skip_empty_and_reserved(self):
        search_request = SearchRequest.from_json({
            '_nkw': 'jersey',
            '_pgn': 0,
            '_sop': '',
            'LH_BIN': None,
            'api_key': 'someone-elses-key',
            'engine': 'google',
        })

        assert search_request.forwarded_items() == [('_nkw', 'jersey'), ('_pgn', 0)]


class TestSanitizeParamValue:

    def test_plain_value_untouched(self):
        assert sanitize_param_value('Wayne Gretzky (1979), rookie-card_1.5') == 'Wayne Gretzky (1979), rookie-card_1.5'

    def test_unsafe_characters_removed(self):
        assert sanitize_param_value('jersey&api_key=x;<script>') == 'jerseyapi_keyxscript'

    def test_numbers_and_booleans(self):
        assert sanitize_param_value(12.5) == '12.5'
        assert sanitize_param_value(True) == 'true'
        assert sanitize_param_value(False) == 'false'


class TestBuildParams:

    def test_fixed_parameters_first(self, service):
        params = service.build_params(SearchRequest.from_json({'_nkw': 'jersey', '_pgn': 2}))

        assert params == [
            ('engine', 'ebay'),
            ('api_key', 'secret-key'),
            ('ebay_domain', 'ebay.com'),
            ('_nkw', 'jersey'),
            ('_pgn', '2'),
        ]

    def test_values_empty_after_sanitizing_are_dropped(self, service):
        params = service.build_params(SearchRequest.from_json({'_nkw': 'jersey', '_udlo': '$$$'}))

        assert ('_udlo', '') not in params
        assert [key for key, _ in params] == ['engine', 'api_key', 'ebay_domain', '_nkw']


class TestSearch:

    @patch('search_service.requests.get')
    def test_request_shape(self, mock_get, service):
        mock_get.return_value = make_upstream_response({'organic_results': []})

        service.search(SearchRequest.from_json({'_nkw': 'jersey'}))

        args, kwargs = mock_get.call_args
        assert args == ('https://serpapi.com/search',)
        assert kwargs['headers'] == {'User-Agent': 'eBay-Widget/1.0'}
        assert kwargs['timeout'] == 10
        assert kwargs['stream'] is True
        assert ('_nkw', 'jersey') in kwargs['params']

    @patch('search_service.requests.get')
    def test_results_are_sanitized(self, mock_get, service):
        mock_get.return_value = make_upstream_response({
            'search_metadata': {'id': 'abc'},
            'organic_results': [{'title': 'A', 'price': {'extracted_value': 20}, 'shipping': {'cost': 5}}],
        })

        data = service.search(SearchRequest.from_json({'_nkw': 'jersey'}))

        assert data == {
            'search_metadata': {'id': 'abc'},
            'organic_results': [{'title': 'A', 'price': '$20.00'}],
        }

    @patch('search_service.requests.get')
    def test_upstream_error_field(self, mock_get, service):
        mock_get.return_value = make_upstream_response({'error': "Google hasn't returned any results for this query."})

        with pytest.raises(UpstreamSearchError) as exc_info:
            service.search(SearchRequest.from_json({'_nkw': 'zzzz'}))

        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "SERPAPI Error: Google hasn't returned any results for this query."

    @patch('search_service.requests.get')
    def test_error_status_wins_over_error_field(self, mock_get, service):
        mock_get.return_value = make_upstream_response({'error': 'Invalid API key.'}, status_code=401, reason='Unauthorized')

        with pytest.raises(UpstreamRequestFailed) as exc_info:
            service.search(SearchRequest.from_json({'_nkw': 'jersey'}))

        assert exc_info.value.status_code == 500
        assert exc_info.value.message == 'Failed to search eBay products: SERPAPI request failed: 401 Unauthorized'

    @patch('search_service.requests.get')
    def test_non_2xx_without_error_field(self, mock_get, service):
        mock_get.return_value = make_upstream_response(None, status_code=503, reason='Service Unavailable')

        with pytest.raises(UpstreamRequestFailed) as exc_info:
            service.search(SearchRequest.from_json({'_nkw': 'jersey'}))

        assert exc_info.value.status_code == 500
        assert exc_info.value.message == 'Failed to search eBay products: SERPAPI request failed: 503 Service Unavailable'

    @patch('search_service.requests.get')
    def test_body_that_is_not_an_object(self, mock_get, service):
        mock_get.return_value = make_upstream_response(['unexpected'])

        with pytest.raises(UpstreamRequestFailed, match='invalid response'):
            service.search(SearchRequest.from_json({'_nkw': 'jersey'}))

    @patch('search_service.requests.get')
    def test_timeout(self, mock_get, service):
        mock_get.side_effect = requests.exceptions.ReadTimeout('read timed out')

        with pytest.raises(UpstreamTimeout) as exc_info:
            service.search(SearchRequest.from_json({'_nkw': 'jersey'}))

        assert exc_info.value.status_code == 408

    @patch('search_service.requests.get')
    def test_connection_error_hides_api_key(self, mock_get, service):
        mock_get.side_effect = requests.exceptions.ConnectionError(
            "Max retries exceeded with url: /search?engine=ebay&api_key=secret-key"
        )

        with pytest.raises(UpstreamRequestFailed) as exc_info:
            service.search(SearchRequest.from_json({'_nkw': 'jersey'}))

        assert 'secret-key' not in exc_info.value.message
        assert exc_info.value.message.startswith('Failed to search eBay products: SERPAPI request failed:')

    @patch('search_service.requests.get')
    def test_slow_body_hits_overall_timeout(self, mock_get):
        response = make_upstream_response({'organic_results': []})
        response.iter_content.return_value = [b'{"organic_', b'results": []}']
        mock_get.return_value = response
        # deadline set at 0, first chunk at 5s, second at 11s
        service = SerpApiSearchService('secret-key', timeout=10, clock=MagicMock(side_effect=[0, 5, 11]))

        with pytest.raises(UpstreamTimeout):
            service.search(SearchRequest.from_json({'_nkw': 'jersey'}))

        response.close.assert_called_once()
