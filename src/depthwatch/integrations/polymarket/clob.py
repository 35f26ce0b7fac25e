"""Polymarket CLOB REST client for order book snapshots.

Only the public, unauthenticated book endpoint is used:
    GET {clob_url}/book?token_id={token_id}
"""

from typing import Optional

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from depthwatch.core.errors import SnapshotFetchError, ValidationError
from depthwatch.integrations.polymarket.normalizer import (
    LevelDecoder,
    get_level_decoder,
    parse_book,
)
from depthwatch.integrations.polymarket.types import PolymarketSettings, RawBook

log = structlog.get_logger()

# Retry configuration for transient transport errors
RETRY_ATTEMPTS = 3
RETRY_WAIT_MIN = 1
RETRY_WAIT_MAX = 10


class SnapshotClient:
    """Async HTTP client that fetches full book snapshots.

    Transport-level failures (connection reset, timeouts) are retried a few
    times; any non-2xx response or undecodable body is raised as
    SnapshotFetchError.

    Usage:
        async with SnapshotClient(settings) as client:
            book = await client.fetch_snapshot(token_id)
    """

    def __init__(
        self,
        settings: PolymarketSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        decoder: Optional[LevelDecoder] = None,
    ):
        """Initialize the snapshot client.

        Args:
            settings: Polymarket connection settings.
            transport: Optional httpx transport (tests pass a MockTransport).
            decoder: Level decoder; defaults to the configured level format.
        """
        self._base_url = settings.clob_url.rstrip("/")
        self._timeout = settings.request_timeout
        self._proxy = settings.http_proxy
        self._transport = transport
        self._decoder = decoder or get_level_decoder(settings.level_format)
        self._client: Optional[httpx.AsyncClient] = None
        self._log = log.bind(component="snapshot_client")

    async def connect(self) -> None:
        """Initialize the HTTP client."""
        if self._client is not None:
            return

        transport = self._transport
        if transport is None and self._proxy:
            transport = httpx.AsyncHTTPTransport(proxy=self._proxy)

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )
        self._log.info("snapshot_client_connected", base_url=self._base_url)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            self._log.info("snapshot_client_closed")

    async def __aenter__(self) -> "SnapshotClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @retry(
        stop=stop_after_attempt(RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=1, min=RETRY_WAIT_MIN, max=RETRY_WAIT_MAX),
        retry=retry_if_exception_type((httpx.TransportError, httpx.TimeoutException)),
        reraise=True,
    )
    async def _get_book(self, token_id: str) -> httpx.Response:
        if self._client is None:
            await self.connect()
        return await self._client.get("/book", params={"token_id": token_id})

    async def fetch_snapshot(self, token_id: str) -> RawBook:
        """Fetch the current book for a token.

        Args:
            token_id: The token's ID (string to preserve precision).

        Returns:
            RawBook with unsorted, normalized levels.

        Raises:
            SnapshotFetchError: On transport failure, non-success status, or
                a body that is not a valid book.
        """
        try:
            response = await self._get_book(token_id)
        except httpx.HTTPError as e:
            raise SnapshotFetchError(f"book request for {token_id} failed", cause=e) from e

        if response.is_error:
            raise SnapshotFetchError(
                f"HTTP {response.status_code} fetching book for {token_id}",
                status_code=response.status_code,
            )

        try:
            book = parse_book(response.json(), self._decoder)
        except ValueError as e:
            raise SnapshotFetchError(f"book response for {token_id} is not JSON", cause=e) from e
        except ValidationError as e:
            raise SnapshotFetchError(f"book response for {token_id} is malformed", cause=e) from e

        self._log.debug(
            "snapshot_fetched",
            token_id=token_id,
            bid_levels=len(book.bids),
            ask_levels=len(book.asks),
        )
        return book
