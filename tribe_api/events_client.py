"""Client for The Events Calendar (Tribe Events) WordPress REST API."""
import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urljoin

import requests

from processor.models import (
    ErrorKind,
    Event,
    MutationFailure,
    MutationResult,
    QueryFailure,
    QueryResult,
    ReconciliationFilter,
)
from tribe_api.payload import build_update_payload

logger = logging.getLogger(__name__)


def _response_body(response: requests.Response) -> Any:
    """Decode a response body as JSON, falling back to text."""
    try:
        return response.json()
    except ValueError:
        return response.text


class TribeEventsClient:
    """Queries events and writes their categories.

    One request per call; failures are returned, never retried.
    """

    DEFAULT_API_ROOT = 'https://klimateam-schoental.de/wp-json/tribe/events/v1/'

    def __init__(
        self,
        auth_token: str,
        api_root: str = DEFAULT_API_ROOT,
        timeout: int = 30,
        per_page: int = 50
    ):
        """
        Initialize the events client.

        Args:
            auth_token: Base64 Basic-auth token used for writes
            api_root: Base URL of the tribe/events/v1 namespace
            timeout: HTTP request timeout in seconds (default: 30)
            per_page: Page size requested from the events endpoint (default: 50)
        """
        if not api_root.endswith('/'):
            api_root += '/'
        self.api_root = api_root
        self.auth_token = auth_token
        self.timeout = timeout
        self.per_page = per_page

    @property
    def events_url(self) -> str:
        return urljoin(self.api_root, 'events')

    def event_url(self, event_id: int) -> str:
        return urljoin(self.api_root, f'events/{event_id}')

    def query_events(self, event_filter: ReconciliationFilter) -> QueryResult:
        """
        Fetch all events matching a filter, following pagination.

        Args:
            event_filter: Filter selecting the events

        Returns:
            QueryResult with the events in server order, or with a QueryFailure
        """
        params: Optional[Dict[str, Any]] = dict(event_filter.to_params())
        params['per_page'] = self.per_page
        url: Optional[str] = self.events_url
        visited = set()
        events: List[Event] = []

        while url:
            request_url = requests.Request('GET', url, params=params).prepare().url
            if request_url in visited:
                logger.warning(f"Pagination loop detected at {request_url}, stopping")
                break
            visited.add(request_url)
            logger.debug(f"request-URL: {request_url}")

            try:
                response = requests.get(request_url, timeout=self.timeout)
            except requests.RequestException as e:
                logger.debug(f"Query transport error: {e}")
                return QueryResult(
                    failure=QueryFailure(kind=ErrorKind.TRANSPORT, reason=str(e))
                )

            if not response.ok:
                return QueryResult(
                    failure=QueryFailure(
                        kind=ErrorKind.REMOTE_REJECTED,
                        status=response.status_code,
                        reason=response.reason,
                        body=_response_body(response)
                    )
                )

            records, next_url = self._parse_page(response)
            if records is None:
                return QueryResult(
                    failure=QueryFailure(
                        kind=ErrorKind.MALFORMED_RESPONSE,
                        status=response.status_code,
                        reason='unexpected response body',
                        body=_response_body(response)
                    )
                )

            try:
                events.extend(self._parse_record(record) for record in records)
            except (TypeError, ValueError, AttributeError) as e:
                return QueryResult(
                    failure=QueryFailure(
                        kind=ErrorKind.MALFORMED_RESPONSE,
                        status=response.status_code,
                        reason=f'invalid event record: {e}',
                        body=_response_body(response)
                    )
                )
            url = next_url
            params = None

        logger.info(f"Query returned {len(events)} events")
        return QueryResult(events=events)

    def _parse_page(self, response: requests.Response) -> Tuple[Optional[List[dict]], Optional[str]]:
        """
        Extract event records and the next page URL from one response.

        The endpoint returns either a bare list or an object holding an
        ``events`` list and an optional ``next_rest_url``.

        Returns:
            Tuple of (records or None if the body is malformed, next page URL)
        """
        try:
            body = response.json()
        except ValueError:
            return None, None

        if isinstance(body, list):
            return body, None
        if isinstance(body, dict) and isinstance(body.get('events'), list):
            return body['events'], body.get('next_rest_url') or None
        return None, None

    def _parse_record(self, record: Any) -> Event:
        if not isinstance(record, dict):
            raise TypeError(f'expected an object, got {type(record).__name__}')
        return Event.from_api(record)

    def set_categories(self, event: Event, categories: List[int]) -> MutationResult:
        """
        Replace the stored categories of one event.

        Args:
            event: Event snapshot from a query
            categories: Target category ids

        Returns:
            MutationResult, carrying a MutationFailure when the write failed
        """
        url = self.event_url(event.event_id)
        headers = {
            'Authorization': f'Basic {self.auth_token}',
            'Content-Type': 'application/json'
        }
        logger.debug(f"request-URL: {url}")

        try:
            response = requests.post(
                url,
                json=build_update_payload(event, categories),
                headers=headers,
                timeout=self.timeout
            )
        except requests.RequestException as e:
            return MutationResult(
                ok=False,
                failure=MutationFailure(
                    event_id=event.event_id,
                    kind=ErrorKind.TRANSPORT,
                    reason=str(e)
                )
            )

        if not response.ok:
            return MutationResult(
                ok=False,
                failure=MutationFailure(
                    event_id=event.event_id,
                    kind=ErrorKind.REMOTE_REJECTED,
                    status=response.status_code,
                    reason=response.reason,
                    body=_response_body(response)
                )
            )

        return MutationResult(ok=True)
