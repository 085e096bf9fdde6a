"""
Deliberation engine: one agent reaction per inbound user message.

The user's message is already persisted and broadcast when ``schedule`` is
called; the slower oracle and chain work runs as a background task. A
turn publishes the agent's reply and, when the oracle decided, the vote
announcement. Vote attempts are serialized per proposal here; this engine
is the only caller of the vote executor.
"""
import asyncio
import weakref
from typing import List, Optional, Set

from govagent.agent.oracle import DecisionOracle
from govagent.agent.vote_executor import VoteExecutor
from govagent.chat.hub import ChatHub
from govagent.data_models.schemas import (
    ChatMessage,
    ChatMessageCreate,
    Proposal,
    Sender,
    VoteIntent,
    VoteOutcome,
)
from govagent.services.storage import ProposalStorage
from govagent.utils.logger import logger


class DeliberationEngine:
    def __init__(self, storage: ProposalStorage, hub: ChatHub, oracle: DecisionOracle, executor: VoteExecutor):
        self._storage = storage
        self._hub = hub
        self._oracle = oracle
        self._executor = executor
        # a lock lives only while some turn holds or waits on it
        self._vote_locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending_turns(self) -> int:
        return len(self._tasks)

    def schedule(self, message: ChatMessage) -> Optional[asyncio.Task]:
        """Start a deliberation turn for a persisted user message without waiting for it."""
        if message.sender != Sender.USER:
            return None
        task = asyncio.create_task(self._run(message), name=f"deliberation-{message.proposal_id}-{message.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, message: ChatMessage) -> None:
        try:
            await self.respond(message)
        except Exception as e:
            logger.error("DeliberationEngine: turn for message %s on proposal %s failed: %s",
                         message.id, message.proposal_id, e, exc_info=True)

    async def respond(self, message: ChatMessage) -> List[ChatMessage]:
        """Run one turn; returns the agent messages it published."""
        proposal = await self._storage.get_proposal(message.proposal_id)
        if proposal is None:
            logger.warning("DeliberationEngine: proposal %s not found for message %s", message.proposal_id, message.id)
            return []

        history = await self._storage.list_messages(proposal.id)
        result = await self._oracle.deliberate(proposal, history)

        published = [await self._say(proposal.id, result.response_text)]
        if result.intent is None:
            return published

        outcome = await self.execute_vote(proposal, result.intent)
        if outcome.announcement:
            published.append(await self._say(proposal.id, outcome.announcement))
        return published

    async def execute_vote(self, proposal: Proposal, intent: VoteIntent) -> VoteOutcome:
        """Run the vote executor while holding the proposal's lock."""
        lock = self._vote_locks.setdefault(proposal.id, asyncio.Lock())
        async with lock:
            return await self._executor.execute(proposal, intent)

    async def _say(self, proposal_id: int, content: str) -> ChatMessage:
        return await self._hub.publish(ChatMessageCreate(proposal_id=proposal_id, sender=Sender.AGENT, content=content))

    async def drain(self) -> None:
        """Wait for every scheduled turn, including turns scheduled while waiting."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
