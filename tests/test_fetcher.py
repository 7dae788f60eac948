"""
HTTP Fetcher Tests
"""

import asyncio

import httpx
import pytest

from uplink.errors import HttpStatusError, TransportError, ValidationError
from uplink.fetcher import HttpFetcher, add_version


class TestAddVersion:

    def test_appends_query(self):
        assert add_version('http://h/data/stats.json', '1.2') == 'http://h/data/stats.json?v=1.2'

    def test_appends_to_existing_query(self):
        assert add_version('http://h/a.json?x=1', '1.2') == 'http://h/a.json?x=1&v=1.2'

    def test_keeps_existing_version(self):
        assert add_version('http://h/a.json?v=9', '1.2') == 'http://h/a.json?v=9'
        assert add_version('http://h/a.json?x=1&v=9', '1.2') == 'http://h/a.json?x=1&v=9'

    def test_no_version(self):
        assert add_version('http://h/a.json', None) == 'http://h/a.json'


class TestHttpFetcher:

    def test_url_for_joins_base(self):
        fetcher = HttpFetcher('http://localhost:8000/uplink', asset_version='1.2')

        assert fetcher.url_for('data/config.json') == 'http://localhost:8000/uplink/data/config.json?v=1.2'

    def test_get_json(self, feed, fetcher):
        data = asyncio.run(fetcher.get_json('data/stats.json'))

        assert data['phase'] == 'drift'
        assert fetcher.request_count == 1
        request = feed.requests[0]
        assert request.url.params['v'] == '1.2'
        assert request.headers['Accept'] == 'application/json'

    def test_status_error(self, feed, fetcher):
        feed.documents['data/stats.json'] = 503

        with pytest.raises(HttpStatusError) as excinfo:
            asyncio.run(fetcher.get_json('data/stats.json'))

        assert excinfo.value.status == 503
        assert excinfo.value.code.value == 'HTTP_STATUS'

    def test_missing_document_is_404(self, fetcher):
        with pytest.raises(HttpStatusError) as excinfo:
            asyncio.run(fetcher.get_json('data/missing.json'))

        assert excinfo.value.status == 404

    def test_transport_error(self, feed, fetcher):
        feed.failures['data/stats.json'] = ['connect']

        with pytest.raises(TransportError) as excinfo:
            asyncio.run(fetcher.get_json('data/stats.json'))

        assert 'data/stats.json' in excinfo.value.url

    def test_timeout_is_transport_error(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        fetcher = HttpFetcher('http://localhost/', transport=httpx.MockTransport(handler))

        with pytest.raises(TransportError):
            asyncio.run(fetcher.get_json('data/stats.json'))

    def test_invalid_json(self, feed, fetcher):
        feed.documents['data/stats.json'] = '<html>maintenance</html>'

        with pytest.raises(ValidationError):
            asyncio.run(fetcher.get_json('data/stats.json'))
