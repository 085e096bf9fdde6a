"""
Client for the external proposal index (Polkassembly).

Only fetches title/content for a referendum; sanitizing the HTML content
is left to the presentation layer.
"""
from typing import Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from govagent.data_models.schemas import ProposalCreate
from govagent.exceptions import ProposalSourceError
from govagent.utils.logger import logger


class PolkassemblyClient:
    """Fetches OpenGov referenda (``referendums_v2``) by index."""

    def __init__(self, network: str = "kusama", base_url: Optional[str] = None, timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.network = network
        self.base_url = (base_url or f"https://{network}.polkassembly.io").rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def fetch(self, chain_id: str) -> ProposalCreate:
        url = f"{self.base_url}/api/v1/posts/on-chain-post"
        params = {"postId": chain_id, "proposalType": "referendums_v2"}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(url, params=params, headers={"x-network": self.network})
        except httpx.TimeoutException as e:
            logger.error("PolkassemblyClient: timeout fetching referendum %s", chain_id)
            raise ProposalSourceError(f"Timed out fetching referendum {chain_id}") from e
        except httpx.HTTPError as e:
            logger.error("PolkassemblyClient: error fetching referendum %s: %s", chain_id, e)
            raise ProposalSourceError(f"Failed to fetch referendum {chain_id}: {e}") from e

        if response.status_code != 200:
            logger.warning("PolkassemblyClient: referendum %s returned %s", chain_id, response.status_code)
            raise ProposalSourceError(f"Failed to fetch proposal: {response.status_code} {response.reason_phrase}")

        try:
            data = response.json()
        except ValueError as e:
            raise ProposalSourceError(f"Proposal index returned invalid JSON for {chain_id}") from e

        if not isinstance(data, dict):
            logger.warning("PolkassemblyClient: referendum %s payload is %s, not an object", chain_id, type(data).__name__)
            raise ProposalSourceError(f"Proposal index returned an unexpected payload for {chain_id}")

        title = data.get("title")
        title = (title.strip() if isinstance(title, str) else "") or f"Referendum #{chain_id}"
        try:
            return ProposalCreate(
                chain_id=chain_id,
                title=title,
                description=data.get("content") or "",
                proposer=data.get("proposer") or "polkassembly",
            )
        except PydanticValidationError as e:
            logger.warning("PolkassemblyClient: unusable referendum %s: %s", chain_id, e)
            raise ProposalSourceError(f"Proposal index returned unusable data for {chain_id}") from e

