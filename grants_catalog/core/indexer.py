"""
Async client for the Grants Stack indexer GraphQL API.

Built on httpx. One POST per round, filtered server-side to approved
applications. No retries: a failed round is refreshed on the next cycle.
"""

from typing import Optional

import httpx
import structlog

from .errors import IndexerError
from .models import RoundRef

logger = structlog.get_logger(__name__)


DEFAULT_INDEXER_URL = "https://grants-stack-indexer-v2.gitcoin.co"

APPLICATIONS_QUERY = """
query {{
  applications(filter: {{
    chainId: {{ equalTo: {chain_id} }}
    roundId: {{ equalTo: "{round_id}" }}
    status: {{ equalTo: APPROVED }}
  }}) {{
    id
    chainId
    roundId
    projectId
    metadata
    totalAmountDonatedInUsd
    totalDonationsCount
    round {{
      id
      chainId
      roundMetadata
      matchAmountInUsd
      applicationMetadata
    }}
  }}
}}
"""


def build_applications_query(ref: RoundRef) -> str:
    """Render the approved-applications query for one round."""
    return APPLICATIONS_QUERY.format(chain_id=int(ref.chain_id), round_id=int(ref.round_id))


class IndexerClient:
    """
    Indexer client used by the refresh orchestrator.

    Usage:
        async with IndexerClient() as indexer:
            applications = await indexer.fetch_applications(RoundRef(10, 9))
    """

    def __init__(
        self,
        base_url: str = DEFAULT_INDEXER_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize indexer client.

        Args:
            base_url: Indexer root URL (the GraphQL endpoint is ``/graphql``)
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def graphql_url(self) -> str:
        return f"{self.base_url}/graphql"

    async def __aenter__(self) -> "IndexerClient":
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            headers={"content-type": "application/json"},
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def fetch_applications(self, ref: RoundRef) -> list[dict]:
        """
        Fetch all approved applications of one round.

        Args:
            ref: Round to fetch

        Returns:
            Raw application records in indexer order

        Raises:
            IndexerError: On network failure, HTTP error or malformed response
        """
        if not self._client:
            raise RuntimeError("Client not initialized. Use 'async with' context.")

        logger.info("fetching_applications", round=str(ref))

        try:
            response = await self._client.post(
                self.graphql_url,
                json={"query": build_applications_query(ref)},
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            raise IndexerError(f"Indexer request failed for round {ref}: {e}", str(ref)) from e
        except ValueError as e:
            raise IndexerError(f"Indexer returned invalid JSON for round {ref}: {e}", str(ref)) from e

        if not isinstance(payload, dict):
            raise IndexerError(f"Unexpected indexer response for round {ref}", str(ref))

        if payload.get("errors"):
            messages = "; ".join(
                str(err.get("message", err)) if isinstance(err, dict) else str(err)
                for err in payload["errors"]
            )
            raise IndexerError(f"Indexer query failed for round {ref}: {messages}", str(ref))

        applications = (payload.get("data") or {}).get("applications")
        if not isinstance(applications, list):
            raise IndexerError(f"Indexer response has no applications for round {ref}", str(ref))

        logger.info("applications_fetched", round=str(ref), count=len(applications))
        return applications
