"""
Persistence collaborator for proposals and chat messages.

Two relations: proposals keyed by internal id with a unique on-chain id,
and append-only chat messages referencing a proposal, ordered by
timestamp. ``record_vote`` is a compare-and-set on ``status = pending``.
"""
import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

from govagent.agent import lifecycle
from govagent.data_models.schemas import (
    AnalysisResult,
    ChatMessage,
    ChatMessageCreate,
    Proposal,
    ProposalCreate,
    VoteChoice,
)
from govagent.exceptions import ConflictError, ProposalNotFoundError


class ProposalStorage(ABC):
    """Async storage interface used by the hub, the engine and the routes."""

    @abstractmethod
    async def get_proposal(self, proposal_id: int) -> Optional[Proposal]:
        ...

    @abstractmethod
    async def get_proposal_by_chain_id(self, chain_id: str) -> Optional[Proposal]:
        ...

    @abstractmethod
    async def list_proposals(self) -> List[Proposal]:
        ...

    @abstractmethod
    async def create_proposal(self, data: ProposalCreate) -> Proposal:
        """Insert with ``status=pending, score=0``. Raises ConflictError on a duplicate chain id."""

    @abstractmethod
    async def record_analysis(self, proposal_id: int, result: AnalysisResult) -> Proposal:
        """Store score and analysis; only allowed while pending."""

    @abstractmethod
    async def record_vote(self, proposal_id: int, vote: VoteChoice, tx_hash: str) -> Proposal:
        """Atomically move a pending proposal to voted. Raises AlreadyVotedError otherwise."""

    @abstractmethod
    async def list_messages(self, proposal_id: int) -> List[ChatMessage]:
        ...

    @abstractmethod
    async def create_message(self, data: ChatMessageCreate) -> ChatMessage:
        """Append a message with a server-assigned id and timestamp."""

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class InMemoryStorage(ProposalStorage):
    """Process-local store, used for development and tests."""

    def __init__(self):
        self._proposals: Dict[int, Proposal] = {}
        self._messages: Dict[int, ChatMessage] = {}
        self._last_timestamp: Dict[int, datetime] = {}
        self._proposal_seq = 0
        self._message_seq = 0
        self._lock = asyncio.Lock()

    async def get_proposal(self, proposal_id: int) -> Optional[Proposal]:
        return self._proposals.get(proposal_id)

    async def get_proposal_by_chain_id(self, chain_id: str) -> Optional[Proposal]:
        for proposal in self._proposals.values():
            if proposal.chain_id == chain_id:
                return proposal
        return None

    async def list_proposals(self) -> List[Proposal]:
        return sorted(self._proposals.values(), key=lambda p: p.id)

    async def create_proposal(self, data: ProposalCreate) -> Proposal:
        async with self._lock:
            if await self.get_proposal_by_chain_id(data.chain_id) is not None:
                raise ConflictError(f"Proposal with chainId '{data.chain_id}' already exists")
            self._proposal_seq += 1
            proposal = Proposal(id=self._proposal_seq, **data.model_dump())
            self._proposals[proposal.id] = proposal
            return proposal

    async def record_analysis(self, proposal_id: int, result: AnalysisResult) -> Proposal:
        async with self._lock:
            proposal = self._require(proposal_id)
            updated = lifecycle.apply_analysis(proposal, result)
            self._proposals[proposal_id] = updated
            return updated

    async def record_vote(self, proposal_id: int, vote: VoteChoice, tx_hash: str) -> Proposal:
        async with self._lock:
            proposal = self._require(proposal_id)
            updated = lifecycle.apply_vote(proposal, vote, tx_hash)
            self._proposals[proposal_id] = updated
            return updated

    async def list_messages(self, proposal_id: int) -> List[ChatMessage]:
        messages = [m for m in self._messages.values() if m.proposal_id == proposal_id]
        return sorted(messages, key=lambda m: (m.timestamp, m.id))

    async def create_message(self, data: ChatMessageCreate) -> ChatMessage:
        async with self._lock:
            self._require(data.proposal_id)
            now = datetime.now(timezone.utc)
            last = self._last_timestamp.get(data.proposal_id)
            if last is not None and now < last:
                now = last
            self._last_timestamp[data.proposal_id] = now
            self._message_seq += 1
            message = ChatMessage(id=self._message_seq, timestamp=now, **data.model_dump())
            self._messages[message.id] = message
            return message

    def _require(self, proposal_id: int) -> Proposal:
        proposal = self._proposals.get(proposal_id)
        if proposal is None:
            raise ProposalNotFoundError(proposal_id)
        return proposal
