# Shared FastAPI router dependencies
from dataclasses import dataclass

from fastapi import Request

from govagent.agent.deliberation import DeliberationEngine
from govagent.agent.ingestion import ProposalIngestor
from govagent.agent.oracle import DecisionOracle
from govagent.agent.vote_executor import VoteExecutor
from govagent.chat.hub import ChatHub
from govagent.services.chain_gateway import ChainGateway
from govagent.services.storage import ProposalStorage


@dataclass
class ServiceContainer:
    """Every long-lived component, built once per application."""
    storage: ProposalStorage
    hub: ChatHub
    oracle: DecisionOracle
    chain: ChainGateway
    executor: VoteExecutor
    engine: DeliberationEngine
    ingestor: ProposalIngestor


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services
