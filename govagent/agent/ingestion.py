"""Proposal ingestion: create a pending proposal and record its one-time analysis."""
from typing import Optional

from govagent.agent.oracle import DecisionOracle
from govagent.data_models.schemas import Proposal, ProposalCreate
from govagent.exceptions import ConfigurationError, ConflictError
from govagent.services.proposal_source import PolkassemblyClient
from govagent.services.storage import ProposalStorage
from govagent.utils.logger import logger


class ProposalIngestor:
    def __init__(self, storage: ProposalStorage, oracle: DecisionOracle, source: Optional[PolkassemblyClient] = None):
        self._storage = storage
        self._oracle = oracle
        self._source = source

    async def ingest(self, data: ProposalCreate) -> Proposal:
        """Store the proposal as pending with score 0, then score it. Oracle trouble never blocks this."""
        proposal = await self._storage.create_proposal(data)
        logger.info("ProposalIngestor: created proposal %s for referendum %s", proposal.id, proposal.chain_id)
        analysis = await self._oracle.analyze(proposal)
        return await self._storage.record_analysis(proposal.id, analysis)

    async def import_referendum(self, chain_id: str) -> Proposal:
        """Fetch a referendum from the proposal index and ingest it."""
        if self._source is None:
            raise ConfigurationError("No proposal index configured")
        if await self._storage.get_proposal_by_chain_id(chain_id) is not None:
            raise ConflictError(f"Proposal with chainId '{chain_id}' already exists")
        data = await self._source.fetch(chain_id)
        return await self.ingest(data)
