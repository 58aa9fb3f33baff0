"""PostgREST stay record store client.

Reads rooms and reservations from a PostgREST-style HTTP API and sends
partial reservation updates back to it.
"""

import logging
import os
from typing import Any

import httpx

from models.room import Room
from models.stay import Stay, StayUpdate
from stores.base import RoomFilter, StayFilter
from utils.errors import MutationRejectedError, StayNotFoundError, StoreError

logger = logging.getLogger(__name__)

STAY_SELECT = "*,guests(first_name,last_name)"


def _in_list(values: Any) -> str:
    return "in.(" + ",".join(str(v) for v in values) + ")"


class RestStayStore:
    """Client for a PostgREST reservations API.

    Requires INNSYNC_REST_URL and INNSYNC_REST_KEY environment variables when
    not given explicitly.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize REST store client.

        Args:
            base_url: API root, e.g. https://example.org/rest/v1 (defaults to INNSYNC_REST_URL)
            api_key: API key (defaults to INNSYNC_REST_KEY)
            timeout: HTTP timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = (base_url or os.environ.get("INNSYNC_REST_URL", "")).rstrip("/")
        self.api_key = api_key or os.environ.get("INNSYNC_REST_KEY")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        if not self.base_url:
            logger.warning("REST store URL not configured")

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url)

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        params: list[tuple[str, str]] | None = None,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Make a request and return the decoded JSON body.

        Raises:
            StoreError: On transport failure or an error status
        """
        if not self.is_configured:
            raise StoreError("REST store URL not configured")

        client = await self._get_client()
        try:
            response = await client.request(method, path, params=params, json=json, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"REST store request failed: {e!r}")
            raise StoreError(str(e) or type(e).__name__) from e

        if response.status_code >= 400:
            raise StoreError(
                f"HTTP error {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        if not response.content:
            return None
        return response.json()

    async def fetch_rooms(self, filters: RoomFilter | None = None) -> list[Room]:
        """Fetch rooms ordered by room number."""
        filters = filters or RoomFilter()
        params = [("select", "*"), ("order", "room_number")]
        if filters.property_id:
            params.append(("property_id", f"eq.{filters.property_id}"))
        if filters.room_ids:
            params.append(("id", _in_list(filters.room_ids)))

        data = await self._request("GET", "/rooms", params=params)
        return [Room.from_record(record) for record in data or []]

    async def fetch_stays(self, filters: StayFilter | None = None) -> list[Stay]:
        """Fetch reservations overlapping the filter's date range."""
        filters = filters or StayFilter()
        params = [("select", STAY_SELECT), ("order", "check_in_date")]
        if filters.property_id:
            params.append(("property_id", f"eq.{filters.property_id}"))
        if filters.start is not None and filters.end is not None:
            params.append(("check_in_date", f"lt.{filters.end.isoformat()}"))
            params.append(("check_out_date", f"gt.{filters.start.isoformat()}"))
        if filters.room_ids:
            params.append(("room_id", _in_list(filters.room_ids)))
        if filters.statuses:
            params.append(("status", _in_list(s.value for s in filters.statuses)))

        data = await self._request("GET", "/reservations", params=params)
        return [Stay.from_record(record) for record in data or []]

    async def update_stay(self, stay_id: str, update: StayUpdate) -> Stay:
        """PATCH a reservation and return the updated representation.

        Raises:
            MutationRejectedError: If the API answers 409 (conflict)
            StayNotFoundError: If no reservation has this id
            StoreError: On any other failure
        """
        try:
            data = await self._request(
                "PATCH",
                "/reservations",
                params=[("id", f"eq.{stay_id}"), ("select", STAY_SELECT)],
                json=update.to_record(),
                headers={"Prefer": "return=representation"},
            )
        except StoreError as e:
            if e.status_code == 409:
                raise MutationRejectedError(stay_id, "conflicting reservation", 409)
            raise

        if not data:
            raise StayNotFoundError(stay_id)
        record = data[0] if isinstance(data, list) else data
        logger.info(f"Updated reservation {stay_id}: {update.to_record()}")
        return Stay.from_record(record)
