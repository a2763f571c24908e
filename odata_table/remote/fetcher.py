"""HTTP access to the remote OData-style service."""

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from ..core.config import EngineSettings
from ..core.errors import ContinuationLimitError, DecodeError, TransportError
from ..core.types import Record, ResultSet

logger = logging.getLogger(__name__)

NEXT_LINK_FIELD = "@odata.nextLink"
COUNT_SEGMENT = "$count"


def _with_query(url: str, query: str) -> str:
    if not query:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{query}"


class RemoteFetcher:
    """
    Fetches records from a remote resource.

    A short-lived httpx.AsyncClient is opened per operation so the fetcher
    can be reused across event loops (e.g. one asyncio.run per Streamlit
    rerun).

    Example:
        fetcher = RemoteFetcher("https://host/service/People")
        records = await fetcher.fetch_all()
        page = await fetcher.fetch_page("$count=true&$top=10&$skip=0")
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        max_continuation_hops: int = 1000,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize the fetcher.

        Args:
            base_url: URL of the resource collection. Used as-is.
            timeout: Per-request timeout in seconds
            max_continuation_hops: Maximum number of continuation links
                followed by fetch_all before giving up
            transport: Optional httpx transport (tests pass MockTransport)
            headers: Extra request headers
        """
        if max_continuation_hops < 1:
            raise ValueError("max_continuation_hops must be at least 1")
        self._base_url = base_url
        self._timeout = timeout
        self._max_hops = max_continuation_hops
        self._transport = transport
        self._headers = {"Accept": "application/json", **(headers or {})}

    @classmethod
    def from_settings(
        cls,
        settings: EngineSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "RemoteFetcher":
        return cls(
            settings.base_url,
            timeout=settings.timeout_seconds,
            max_continuation_hops=settings.max_continuation_hops,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def count_url(self) -> str:
        return f"{self._base_url.rstrip('/')}/{COUNT_SEGMENT}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._timeout,
            transport=self._transport,
            headers=self._headers,
            follow_redirects=True,
        )

    async def _get(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        logger.debug("GET %s", url)
        try:
            response = await client.get(url)
        except httpx.HTTPError as exc:
            raise TransportError(f"Request to {url} failed: {exc}", url=url) from exc
        if not response.is_success:
            raise TransportError(
                f"Request to {url} failed with status {response.status_code}",
                status_code=response.status_code,
                url=url,
            )
        return response

    async def _get_envelope(
        self, client: httpx.AsyncClient, url: str
    ) -> Dict[str, Any]:
        """GET a JSON envelope and check it carries a 'value' array."""
        response = await self._get(client, url)
        try:
            payload = response.json()
        except ValueError as exc:
            raise DecodeError(f"Response from {url} is not valid JSON", url=url) from exc
        if not isinstance(payload, dict) or not isinstance(payload.get("value"), list):
            raise DecodeError(
                f"Response from {url} has no 'value' array", url=url
            )
        if not all(isinstance(item, dict) for item in payload["value"]):
            raise DecodeError(
                f"Response from {url} has non-object items in 'value'", url=url
            )
        return payload

    async def _get_count(self, client: httpx.AsyncClient, url: str) -> int:
        response = await self._get(client, url)
        text = response.text.strip()
        try:
            count = int(text)
        except ValueError as exc:
            raise DecodeError(
                f"Count response from {url} is not an integer: {text[:50]!r}",
                url=url,
            ) from exc
        if count < 0:
            raise DecodeError(f"Count response from {url} is negative", url=url)
        return count

    async def _get_count_or_zero(self, client: httpx.AsyncClient, url: str) -> int:
        """Count fetch that degrades to 0 instead of failing the page."""
        try:
            return await self._get_count(client, url)
        except (TransportError, DecodeError) as exc:
            logger.warning("Count request failed, reporting 0 rows: %s", exc)
            return 0

    async def iter_pages(self, url: Optional[str] = None) -> AsyncIterator[List[Record]]:
        """
        Lazily yield the 'value' array of each chunk of a bulk result.

        Follows continuation links until a response carries none. Relative
        links are resolved against the URL that returned them.

        Args:
            url: Start URL, defaults to the base resource

        Raises:
            TransportError: On a failed hop
            ContinuationLimitError: After max_continuation_hops follow-ups
            DecodeError: On an undecodable body
        """
        next_url: Optional[str] = url or self._base_url
        hops = 0
        async with self._client() as client:
            while next_url is not None:
                payload = await self._get_envelope(client, next_url)
                yield payload["value"]

                link = payload.get(NEXT_LINK_FIELD)
                if not link:
                    break
                if not isinstance(link, str):
                    raise DecodeError(
                        f"Continuation link from {next_url} is not a string: {link!r}",
                        url=next_url,
                    )
                if hops >= self._max_hops:
                    raise ContinuationLimitError(self._max_hops, url=next_url)
                hops += 1
                try:
                    next_url = str(httpx.URL(next_url).join(link))
                except httpx.InvalidURL as exc:
                    raise DecodeError(
                        f"Continuation link from {next_url} is not a valid URL: {link!r}",
                        url=next_url,
                    ) from exc
                logger.debug("Following continuation link %s (hop %d)", next_url, hops)

    async def fetch_all(self, url: Optional[str] = None) -> List[Record]:
        """
        Retrieve a complete unpaginated result, following continuation links.

        All or nothing: records are only returned once the final chunk has
        arrived. Any failing hop raises and nothing is returned.

        Args:
            url: Start URL, defaults to the base resource

        Returns:
            Records in server order
        """
        records: List[Record] = []
        async for chunk in self.iter_pages(url):
            records.extend(chunk)
        logger.debug("Fetched %d records from %s", len(records), url or self._base_url)
        return records

    async def fetch_page(self, query: str, count_query: str = "") -> ResultSet:
        """
        Fetch one page of rows and the filtered row count concurrently.

        Row data failures raise. Count failures degrade to a total of 0.

        Args:
            query: Encoded data query (see remote.query.translate)
            count_query: Encoded count query (see remote.query.translate_count)

        Returns:
            ResultSet with the page rows and the total count
        """
        data_url = _with_query(self._base_url, query)
        count_url = _with_query(self.count_url, count_query)

        async with self._client() as client:
            payload, total_count = await asyncio.gather(
                self._get_envelope(client, data_url),
                self._get_count_or_zero(client, count_url),
                return_exceptions=True,
            )

        if isinstance(payload, BaseException):
            raise payload
        if isinstance(total_count, Exception):
            logger.warning("Count request failed, reporting 0 rows: %s", total_count)
            total_count = 0
        elif isinstance(total_count, BaseException):
            raise total_count
        return ResultSet(rows=list(payload["value"]), total_count=total_count)
