# EventUpsertClient.py

import asyncio
import itertools
import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

import aiohttp

from config import EVENTS_API_PASSWORD, EVENTS_API_URL, EVENTS_API_USERNAME, REQUEST_DELAY
from EventModels import NormalizedEvent

logger = logging.getLogger('EventUpsertClient')

STATUS_PUBLISHED = 'PUBLISHED'
STATUS_PENDING = 'PENDING'

TOKEN_LIFETIME_SECONDS = 86400
TOKEN_REFRESH_BUFFER_SECONDS = 300
TOKEN_KEYS = ('token', 'access', 'jwt', 'id_token', 'auth_token', 'token_access')


class EventStoreError(Exception):
    """A store operation failed for one record."""


@dataclass
class UpsertSummary:
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def _as_record(event: Union[NormalizedEvent, Dict[str, Any]]) -> Dict[str, Any]:
    return event.to_dict() if isinstance(event, NormalizedEvent) else dict(event)


def record_key(record: Dict[str, Any]) -> Tuple[str, str, str]:
    """Identity of a stored event: (title, start, location)."""
    return (record.get('title') or '', record.get('start') or '', record.get('location') or '')


class EventStore:
    """
    Persistence collaborator: create-or-update normalized records.

    Subclasses supply find/create/update; the batch loop, skip rules and
    counting live here.
    """

    delay_between_requests: float = 0.0

    async def find_existing(self, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    async def create(self, record: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    async def update(self, existing: Dict[str, Any], record: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    async def upsert_events(self, events: List[Union[NormalizedEvent, Dict[str, Any]]],
                            publish: bool = False) -> UpsertSummary:
        """
        Create or update each record, keyed by (title, start, location).

        Args:
            events: Normalized events or their dict form
            publish: Mark records PUBLISHED; otherwise new ones are PENDING
                and existing ones keep their status

        Returns:
            UpsertSummary with created/updated/skipped/error counts
        """
        summary = UpsertSummary()
        for i, event in enumerate(events):
            record = _as_record(event)
            title = record.get('title', 'Unknown event')
            if not record.get('start') or not record.get('end'):
                logger.info(f"Skipping event '{title}' - missing start or end date")
                summary.skipped += 1
                continue

            try:
                existing = await self.find_existing(record)
                if existing:
                    record['status'] = STATUS_PUBLISHED if publish else existing.get('status', STATUS_PENDING)
                    await self.update(existing, record)
                    logger.info(f"Updated event: '{title}' (status {record['status']})")
                    summary.updated += 1
                else:
                    record['status'] = STATUS_PUBLISHED if publish else STATUS_PENDING
                    await self.create(record)
                    logger.info(f"Created event: '{title}' (status {record['status']})")
                    summary.created += 1
            except Exception as e:
                logger.error(f"Error upserting event '{title}': {e}")
                summary.errors += 1

            if self.delay_between_requests and i < len(events) - 1:
                await asyncio.sleep(self.delay_between_requests)

        logger.info(f"Upsert finished: {summary.created} created, {summary.updated} updated, "
                    f"{summary.skipped} skipped, {summary.errors} errors")
        return summary


class InMemoryEventStore(EventStore):
    """Local store used for dry runs and tests."""

    def __init__(self):
        self.records: Dict[Tuple[str, str, str], Dict[str, Any]] = {}
        self._ids = itertools.count(1)

    async def find_existing(self, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self.records.get(record_key(record))

    async def create(self, record: Dict[str, Any]) -> Dict[str, Any]:
        stored = dict(record, id=next(self._ids))
        self.records[record_key(record)] = stored
        return stored

    async def update(self, existing: Dict[str, Any], record: Dict[str, Any]) -> Dict[str, Any]:
        existing.update(record)
        return existing


class EventApiClient(EventStore):
    """Remote events API with JWT authentication."""

    def __init__(self, username: Optional[str] = None, password: Optional[str] = None,
                 base_url: Optional[str] = None, delay_between_requests: float = REQUEST_DELAY):
        """
        Args:
            username: Login name (lowercased)
            password: Password (case-sensitive)
            base_url: Base URL of the events API
            delay_between_requests: Seconds to wait between records to avoid rate limiting
        """
        self.username = (username or EVENTS_API_USERNAME or '').lower()
        self.password = password or EVENTS_API_PASSWORD or ''
        self.base_url = (base_url or EVENTS_API_URL or '').rstrip('/')
        self.delay_between_requests = delay_between_requests
        self.jwt_token = None
        self.token_expiry = 0

        logger.info(f"Initialized events API client for {self.username} with base URL: {self.base_url}")

    async def login(self) -> bool:
        """
        Log in and store a JWT token.

        Returns:
            True if login was successful, False otherwise
        """
        url = f"{self.base_url}/auth/login"
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(url, json={'username': self.username, 'password': self.password}) as response:
                    if response.status != 200:
                        logger.error(f"Login failed with status {response.status}: {await response.text()}")
                        return False
                    data = await response.json()
        except aiohttp.ClientError as e:
            logger.error(f"Login error: {e}")
            return False

        token = next((data[key] for key in TOKEN_KEYS if data.get(key)), None)
        if not token:
            logger.error(f"No token found in login response. Available keys: {list(data.keys())}")
            return False

        self.jwt_token = token
        self.token_expiry = int(time.time()) + TOKEN_LIFETIME_SECONDS
        logger.info("Login successful, JWT token obtained")
        return True

    async def ensure_authenticated(self) -> bool:
        """Log in again when the token is missing or about to expire."""
        if not self.jwt_token or int(time.time()) > self.token_expiry - TOKEN_REFRESH_BUFFER_SECONDS:
            return await self.login()
        return True

    async def _request(self, method: str, path: str, retry_auth: bool = True, **kwargs) -> Any:
        if not await self.ensure_authenticated():
            raise EventStoreError("Failed to authenticate")

        url = f"{self.base_url}{path}"
        headers = {'Authorization': f"Bearer {self.jwt_token}", 'Content-Type': 'application/json'}
        async with aiohttp.ClientSession() as session:
            async with session.request(method, url, headers=headers, **kwargs) as response:
                if response.status == 401 and retry_auth:
                    logger.info("Token expired, logging in again")
                    self.jwt_token = None
                    return await self._request(method, path, retry_auth=False, **kwargs)
                if response.status not in (200, 201):
                    raise EventStoreError(f"API error {response.status} for {method} {path}: {await response.text()}")
                return await response.json(content_type=None)

    async def find_existing(self, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        title, start, location = record_key(record)
        data = await self._request('GET', '/events', params={'title': title, 'start': start, 'location': location})
        matches = data.get('events', []) if isinstance(data, dict) else (data or [])
        for match in matches:
            if isinstance(match, dict) and record_key(match) == (title, start, location):
                return match
        return None

    async def create(self, record: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request('POST', '/events', json=record)

    async def update(self, existing: Dict[str, Any], record: Dict[str, Any]) -> Dict[str, Any]:
        if existing.get('id') is None:
            raise EventStoreError(f"Existing event '{record.get('title')}' has no id")
        return await self._request('PUT', f"/events/{existing['id']}", json=record)
