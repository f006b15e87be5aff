import json

import pytest
import requests

import travis_build_times as tbt


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=None):
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else json.dumps(body)

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append({'url': url, 'params': params, 'timeout': timeout})
        if self.error is not None:
            raise self.error
        return self.response


def _patch_session(monkeypatch, session):
    tokens = []

    def fake_session(token):
        tokens.append(token)
        return session

    monkeypatch.setattr(tbt, '_session', fake_session)
    return tokens


UNSORTED_BUILDS = {
    'builds': [
        {'started_at': '2024-01-02T00:00:00Z', 'duration': 120},
        {'started_at': '2024-01-01T00:00:00Z', 'duration': 60},
    ]
}


def test_fetch_sorts_and_converts_minutes(monkeypatch):
    session = FakeSession(FakeResponse(200, UNSORTED_BUILDS))
    tokens = _patch_session(monkeypatch, session)

    samples = tbt.fetch_build_samples('abc', 'foo/bar')

    assert samples == [
        tbt.BuildSample(date='2024-01-01T00:00:00.000Z', duration=1),
        tbt.BuildSample(date='2024-01-02T00:00:00.000Z', duration=2),
    ]
    assert tokens == ['abc']


def test_fetch_requests_passed_push_builds_on_default_branch(monkeypatch):
    session = FakeSession(FakeResponse(200, {'builds': []}))
    _patch_session(monkeypatch, session)

    tbt.fetch_build_samples('abc', 'foo/bar')

    assert len(session.calls) == 1
    call = session.calls[0]
    assert call['url'] == 'https://api.travis-ci.com/repo/foo%2Fbar/builds'
    assert call['params'] == {
        'state': 'passed',
        'event_type': 'push',
        'limit': 100,
        'branch.name': 'master',
    }
    assert call['timeout'] == 30.0


def test_fetch_honors_config(monkeypatch):
    session = FakeSession(FakeResponse(200, {'builds': []}))
    _patch_session(monkeypatch, session)
    cfg = tbt.Config(api_url='https://travis.example.org/', branch='main', limit=20, timeout=5)

    tbt.fetch_build_samples('abc', 'acme/widgets', cfg)

    call = session.calls[0]
    assert call['url'] == 'https://travis.example.org/repo/acme%2Fwidgets/builds'
    assert call['params']['branch.name'] == 'main'
    assert call['params']['limit'] == 20
    assert call['timeout'] == 5


def test_session_headers_carry_api_version_and_token():
    s = tbt._session('secret')
    assert s.headers['Travis-API-Version'] == '3'
    assert s.headers['Authorization'] == 'token secret'


def test_missing_builds_key_is_empty_not_an_error(monkeypatch):
    _patch_session(monkeypatch, FakeSession(FakeResponse(200, {'@type': 'builds'})))
    assert tbt.fetch_build_samples('abc', 'foo/bar') == []


@pytest.mark.parametrize('status', [401, 404, 500])
def test_http_error_raises_with_status(monkeypatch, status):
    _patch_session(monkeypatch, FakeSession(FakeResponse(status, {'error_type': 'x'})))
    with pytest.raises(tbt.BuildFetchError) as excinfo:
        tbt.fetch_build_samples('abc', 'foo/bar')
    assert excinfo.value.status_code == status
    assert str(status) in str(excinfo.value)


def test_malformed_json_propagates(monkeypatch):
    bad = FakeResponse(200, ValueError('Expecting value'), text='<html>')
    _patch_session(monkeypatch, FakeSession(bad))
    with pytest.raises(ValueError):
        tbt.fetch_build_samples('abc', 'foo/bar')


def test_transport_error_propagates(monkeypatch):
    _patch_session(monkeypatch, FakeSession(error=requests.exceptions.ConnectionError('down')))
    with pytest.raises(requests.exceptions.ConnectionError):
        tbt.fetch_build_samples('abc', 'foo/bar')


def test_empty_inputs_never_touch_network(monkeypatch):
    def boom(token):
        raise AssertionError('session should not be created')

    monkeypatch.setattr(tbt, '_session', boom)
    with pytest.raises(ValueError):
        tbt.fetch_build_samples('', 'foo/bar')
    with pytest.raises(ValueError):
        tbt.fetch_build_samples('abc', '')


def test_samples_keep_duplicates_and_offsets_normalised():
    payload = {
        'builds': [
            {'started_at': '2024-03-01T12:00:00+02:00', 'duration': 90},
            {'started_at': '2024-03-01T10:00:00Z', 'duration': 30},
            {'started_at': '2024-02-28T23:59:59.500Z', 'duration': 45},
        ]
    }
    samples = tbt.samples_from_payload(payload)
    assert [s.date for s in samples] == [
        '2024-02-28T23:59:59.500Z',
        '2024-03-01T10:00:00.000Z',
        '2024-03-01T10:00:00.000Z',
    ]
    assert [s.duration for s in samples] == [0.75, 1.5, 0.5]


def test_null_builds_is_empty():
    assert tbt.samples_from_payload({'builds': None}) == []


@pytest.mark.parametrize('payload', [
    [],
    {'builds': 'nope'},
    {'builds': [{'duration': 10}]},
    {'builds': [{'started_at': 'yesterday', 'duration': 10}]},
    {'builds': [{'started_at': '2024-01-01T00:00:00Z', 'duration': None}]},
])
def test_unexpected_shapes_raise(payload):
    with pytest.raises(ValueError):
        tbt.samples_from_payload(payload)


def test_mapping_is_pure():
    first = tbt.samples_from_payload(UNSORTED_BUILDS)
    second = tbt.samples_from_payload(UNSORTED_BUILDS)
    assert first == second
    assert UNSORTED_BUILDS['builds'][0]['started_at'] == '2024-01-02T00:00:00Z'
