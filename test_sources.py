import pytest
import requests

from errors import SourceError
from sources import GOOGLEBOT_RANGE_URLS, fetch_json_ranges, fetch_log_events, fetch_whitelists


class FakeResponse:
    def __init__(self, status_code=200, text='', json_data=None):
        self.status_code = status_code
        self.text = text
        self._json_data = json_data

    def json(self):
        if self._json_data is None:
            raise ValueError("No JSON object could be decoded")
        return self._json_data


class FakeSession:
    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def get(self, url, timeout=None, headers=None):
        self.calls.append((url, headers))
        response = self.responses[url]
        if isinstance(response, Exception):
            raise response
        return response


def test_fetch_whitelists_merges_and_deduplicates():
    session = FakeSession({
        'https://a.example/list.txt': FakeResponse(text='# header\n66.249.64.0/19\r\n8.8.8.8\n\n'),
        'https://b.example/list.txt': FakeResponse(text='8.8.8.8\n1.1.1.1\n'),
    })
    entries = fetch_whitelists(['https://a.example/list.txt', 'https://b.example/list.txt'], session=session)
    assert entries == ['66.249.64.0/19', '8.8.8.8', '1.1.1.1']


def test_fetch_whitelists_fails_on_bad_status():
    session = FakeSession({'https://a.example/list.txt': FakeResponse(status_code=503)})
    with pytest.raises(SourceError):
        fetch_whitelists(['https://a.example/list.txt'], session=session)


def test_fetch_log_events_sends_api_key():
    url = 'https://api.example/logs'
    session = FakeSession({url: FakeResponse(json_data={'logs': [{'rayId': 'r1', 'ip': '45.9.20.1'}]})})
    events = fetch_log_events('secret', api_url=url, session=session)
    assert events == [{'rayId': 'r1', 'ip': '45.9.20.1'}]
    assert session.calls == [(url, {'X-API-Key': 'secret'})]


def test_fetch_log_events_errors():
    url = 'https://api.example/logs'
    with pytest.raises(SourceError):
        fetch_log_events('secret', api_url=url, session=FakeSession({url: FakeResponse(text='<html>')}))
    with pytest.raises(SourceError):
        fetch_log_events('secret', api_url=url, session=FakeSession({url: requests.ConnectionError('down')}))
    assert fetch_log_events('secret', api_url=url, session=FakeSession({url: FakeResponse(json_data={})})) == []


def test_fetch_json_ranges_reads_both_families():
    googlebot, special = GOOGLEBOT_RANGE_URLS
    session = FakeSession({
        googlebot: FakeResponse(json_data={'creationTime': '2024-05-01T00:00:00', 'prefixes': [
            {'ipv6Prefix': '2001:4860:4801:10::/64'},
            {'ipv4Prefix': '66.249.64.0/27'},
            {'ipv4Prefix': '66.249.64.32/27'},
        ]}),
        special: FakeResponse(json_data={'prefixes': [{'ipv4Prefix': '66.249.64.0/27'}, {'service': 'none'}]}),
    })
    entries = fetch_json_ranges(GOOGLEBOT_RANGE_URLS, session=session)
    assert entries == ['2001:4860:4801:10::/64', '66.249.64.0/27', '66.249.64.32/27']
    assert [url for url, _ in session.calls] == GOOGLEBOT_RANGE_URLS


def test_fetch_json_ranges_errors():
    url = 'https://ranges.example/crawlers.json'
    with pytest.raises(SourceError):
        fetch_json_ranges([url], session=FakeSession({url: FakeResponse(text='<html>')}))
    with pytest.raises(SourceError):
        fetch_json_ranges([url], session=FakeSession({url: FakeResponse(json_data={'ranges': []})}))
    with pytest.raises(SourceError):
        fetch_json_ranges([url], session=FakeSession({url: FakeResponse(status_code=404)}))
