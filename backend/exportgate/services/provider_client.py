"""HTTP client for the scraping provider's dataset API."""
import asyncio
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from ..errors import UpstreamUnavailableError
from ..utils.logger import logger


class ProviderClient:
    """Async client reading collected datasets from the scraping provider."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_token: Optional[str] = None,
        timeout: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the provider client.

        Args:
            base_url: Provider API root. Defaults to settings.provider_api_url
            api_token: Bearer token for the provider. Defaults to settings.provider_token
            timeout: Request timeout in seconds. Defaults to settings.default_timeout
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = (base_url or settings.provider_api_url).rstrip("/")
        self.api_token = api_token if api_token is not None else settings.provider_token
        self.timeout = timeout or settings.default_timeout
        self.transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        """Async context manager entry."""
        headers = {"Accept": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            follow_redirects=True,
            headers=headers,
            transport=self.transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self._client:
            await self._client.aclose()

    async def list_records(
        self, dataset_id: str, limit: Optional[int] = None, max_retries: int = 3
    ) -> List[Dict[str, Any]]:
        """Fetch the raw records of a dataset.

        Args:
            dataset_id: Provider dataset identifier
            limit: Maximum number of records to request
            max_retries: Maximum number of attempts

        Returns:
            Records in provider order; entries that are not objects are dropped

        Raises:
            UpstreamUnavailableError: If the provider cannot be reached or
                answers with an error or a malformed payload
        """
        if not self._client:
            raise RuntimeError("ProviderClient must be used as an async context manager")

        params: Dict[str, Any] = {"format": "json", "clean": "true"}
        if limit:
            params["limit"] = limit

        last_error = None

        for attempt in range(max_retries):
            try:
                response = await self._client.get(f"/datasets/{dataset_id}/items", params=params)
                response.raise_for_status()
                return self._records_from_payload(dataset_id, response.json())

            except httpx.HTTPStatusError as e:
                last_error = f"HTTP {e.response.status_code}: {e.response.reason_phrase}"
                # Don't retry on 4xx errors (client errors)
                if 400 <= e.response.status_code < 500:
                    break

            except httpx.TimeoutException:
                last_error = f"Request timed out after {self.timeout} seconds"

            except httpx.RequestError as e:
                last_error = f"Request failed: {str(e)}"

            except ValueError as e:
                last_error = f"Malformed payload: {str(e)}"
                break

            # Wait a bit before retrying (exponential backoff)
            if attempt < max_retries - 1:
                await asyncio.sleep(2**attempt)

        logger.error(f"Dataset {dataset_id} unavailable: {last_error}")
        raise UpstreamUnavailableError(f"Dataset {dataset_id} unavailable: {last_error}")

    async def delete_dataset(self, dataset_id: str) -> bool:
        """Delete a dataset at the provider. Best effort, never raises.

        Args:
            dataset_id: Provider dataset identifier

        Returns:
            True if the provider confirmed the deletion
        """
        if not self._client:
            raise RuntimeError("ProviderClient must be used as an async context manager")

        try:
            response = await self._client.delete(f"/datasets/{dataset_id}")
            response.raise_for_status()
            logger.info(f"Dataset {dataset_id} deleted at provider")
            return True
        except httpx.HTTPError as e:
            logger.warning(f"Could not delete dataset {dataset_id}: {e}")
            return False

    @staticmethod
    def _records_from_payload(dataset_id: str, payload: Any) -> List[Dict[str, Any]]:
        if not isinstance(payload, list):
            raise ValueError(f"expected a list of records, got {type(payload).__name__}")

        records = [entry for entry in payload if isinstance(entry, dict)]
        dropped = len(payload) - len(records)
        if dropped:
            logger.warning(f"Dataset {dataset_id}: dropped {dropped} non-object entries")
        return records

