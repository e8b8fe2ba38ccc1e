"""
Tests for the create-or-update store contract and the events API client.
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import aiohttp
import pytest

from EventModels import NormalizedEvent
from EventUpsertClient import (
    STATUS_PENDING,
    STATUS_PUBLISHED,
    EventApiClient,
    EventStoreError,
    InMemoryEventStore,
    record_key,
)


def record(title='Expo', start='2026-03-10T12:00:00.000Z', end='2026-03-10T22:00:00.000Z', location='Austin, TX', **extra):
    return dict(title=title, start=start, end=end, location=location, **extra)


class FailingStore(InMemoryEventStore):

    async def create(self, record):
        raise EventStoreError('rejected')


class TestInMemoryStore:

    def test_new_records_pending_unless_published(self):
        store = InMemoryEventStore()
        summary = asyncio.run(store.upsert_events([record('A'), record('B')]))

        assert summary.to_dict() == {'created': 2, 'updated': 0, 'skipped': 0, 'errors': 0}
        assert all(r['status'] == STATUS_PENDING for r in store.records.values())

        asyncio.run(store.upsert_events([record('C')], publish=True))
        assert store.records[record_key(record('C'))]['status'] == STATUS_PUBLISHED

    def test_existing_record_keeps_status_unless_published(self):
        store = InMemoryEventStore()
        asyncio.run(store.upsert_events([record(description='first')]))

        summary = asyncio.run(store.upsert_events([record(description='second')]))
        stored = store.records[record_key(record())]
        assert summary.updated == 1
        assert stored['status'] == STATUS_PENDING
        assert stored['description'] == 'second'
        assert stored['id'] == 1

        asyncio.run(store.upsert_events([record()], publish=True))
        assert stored['status'] == STATUS_PUBLISHED

        asyncio.run(store.upsert_events([record()]))
        assert stored['status'] == STATUS_PUBLISHED

    def test_records_without_dates_skipped(self):
        store = InMemoryEventStore()
        summary = asyncio.run(store.upsert_events([record(end=None), {'title': 'No dates'}]))

        assert summary.skipped == 2
        assert store.records == {}

    def test_errors_counted_and_batch_continues(self):
        summary = asyncio.run(FailingStore().upsert_events([record('A'), record('B')]))
        assert summary.errors == 2
        assert summary.created == 0

    def test_normalized_events_accepted(self):
        event = NormalizedEvent(
            title='Expo',
            start=datetime(2026, 3, 10, 12, tzinfo=timezone.utc),
            end=datetime(2026, 3, 10, 22, tzinfo=timezone.utc),
            all_day=True,
            location='Austin, TX',
        )
        store = InMemoryEventStore()
        asyncio.run(store.upsert_events([event]))

        assert list(store.records) == [('Expo', '2026-03-10T12:00:00.000Z', 'Austin, TX')]


class TestEventApiClient:

    @pytest.fixture
    def client(self):
        return EventApiClient('Editor', 'secret', 'https://api.example.com/', delay_between_requests=0)

    def test_credentials_and_base_url_normalized(self, client):
        assert client.username == 'editor'
        assert client.password == 'secret'
        assert client.base_url == 'https://api.example.com'

    def test_create_when_no_match(self, client):
        responses = [{'events': []}, {'id': 7}]
        request = AsyncMock(side_effect=responses)
        with patch.object(client, '_request', request):
            summary = asyncio.run(client.upsert_events([record()]))

        assert summary.created == 1
        method, path = request.call_args_list[1].args
        assert (method, path) == ('POST', '/events')
        assert request.call_args_list[1].kwargs['json']['status'] == STATUS_PENDING

    def test_update_matching_record(self, client):
        existing = dict(record(), id=12, status=STATUS_PUBLISHED)
        decoy = dict(record(location='Dallas, TX'), id=13)
        request = AsyncMock(side_effect=[[decoy, existing], {'id': 12}])
        with patch.object(client, '_request', request):
            summary = asyncio.run(client.upsert_events([record()]))

        assert summary.updated == 1
        method, path = request.call_args_list[1].args
        assert (method, path) == ('PUT', '/events/12')
        assert request.call_args_list[1].kwargs['json']['status'] == STATUS_PUBLISHED

    def test_existing_without_id_is_an_error(self, client):
        request = AsyncMock(return_value=[record()])
        with patch.object(client, '_request', request):
            summary = asyncio.run(client.upsert_events([record()]))
        assert summary.errors == 1

    def test_authentication_failure_counts_errors(self, client):
        with patch.object(client, 'login', AsyncMock(return_value=False)):
            summary = asyncio.run(client.upsert_events([record('A'), record('B')]))
        assert summary.errors == 2

    def test_login_network_error_returns_false(self, client):
        with patch('EventUpsertClient.aiohttp.ClientSession', side_effect=aiohttp.ClientError('down')):
            assert asyncio.run(client.login()) is False
        assert client.jwt_token is None

    def test_valid_token_not_refreshed(self, client):
        client.jwt_token = 'token'
        client.token_expiry = 4102444800
        login = AsyncMock(return_value=True)
        with patch.object(client, 'login', login):
            assert asyncio.run(client.ensure_authenticated())
        login.assert_not_awaited()
