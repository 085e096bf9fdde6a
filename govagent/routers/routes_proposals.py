from typing import List

from fastapi import Depends

from govagent.data_models.schemas import Proposal, ProposalCreate, ProposalImportRequest
from govagent.exceptions import ProposalNotFoundError, StorageError
from govagent.routers.deps import ServiceContainer, get_services
from govagent.utils.logger import logger


async def list_proposals(services: ServiceContainer = Depends(get_services)) -> List[Proposal]:
    """All proposals in ingestion order (ascending id). Storage trouble yields an empty list."""
    try:
        return await services.storage.list_proposals()
    except StorageError as e:
        logger.error("routes_proposals: list failed: %s", e.message)
        return []


async def get_proposal(proposal_id: int, services: ServiceContainer = Depends(get_services)) -> Proposal:
    try:
        proposal = await services.storage.get_proposal(proposal_id)
    except StorageError as e:
        logger.error("routes_proposals: read of proposal %s failed: %s", proposal_id, e.message)
        proposal = None
    if proposal is None:
        raise ProposalNotFoundError(proposal_id)
    return proposal


async def create_proposal(body: ProposalCreate, services: ServiceContainer = Depends(get_services)) -> Proposal:
    """Register a proposal and score it once."""
    return await services.ingestor.ingest(body)


async def import_proposal(body: ProposalImportRequest, services: ServiceContainer = Depends(get_services)) -> Proposal:
    """Fetch a referendum from the proposal index by chain id, then register it."""
    return await services.ingestor.import_referendum(body.chain_id)
