"""Test doubles for the chain, the language model and websocket connections."""
import asyncio
from typing import Any, List, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock

from langchain_core.messages import AIMessage

from ..data_models.schemas import ProposalCreate, VoteChoice
from ..utils.circuit_breaker import CircuitBreaker, CircuitBreakerConfig


class FakeChain:
    """Stands in for ChainGateway; records every submitted vote."""

    def __init__(self, balance: int = 1000, tx_hash: str = "0xfeed", submit_error: Optional[Exception] = None,
                 balance_error: Optional[Exception] = None, submit_delay: float = 0.0):
        self.balance = balance
        self.tx_hash = tx_hash
        self.submit_error = submit_error
        self.balance_error = balance_error
        self.submit_delay = submit_delay
        self.submissions: List[Tuple[int, VoteChoice, int, str]] = []
        self.breaker = CircuitBreaker(CircuitBreakerConfig(name="chain"))
        self.closed = False

    async def get_free_balance(self, address: Optional[str] = None) -> int:
        if self.balance_error is not None:
            raise self.balance_error
        return self.balance

    async def submit_vote(self, referendum_index: int, vote: VoteChoice, stake: int, conviction: str) -> str:
        self.submissions.append((referendum_index, VoteChoice(vote), stake, conviction))
        if self.submit_delay:
            await asyncio.sleep(self.submit_delay)
        if self.submit_error is not None:
            raise self.submit_error
        return self.tx_hash

    async def health(self) -> dict:
        return {"url": "fake", "connected": True, "breaker": self.breaker.get_status()}

    async def close(self) -> None:
        self.closed = True


class RecordingConnection:
    """Websocket stand-in that keeps every event sent to it."""

    def __init__(self, fail: bool = False, delay: float = 0.0):
        self.events: List[Any] = []
        self.fail = fail
        self.delay = delay

    async def send_json(self, data: Any) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ConnectionError("client went away")
        self.events.append(data)


def fake_llm(*replies: Any, analysis: Optional[Any] = None) -> MagicMock:
    """
    A chat model whose tool-bound variant answers deliberation turns with ``replies``
    (AIMessage, plain text, or an exception) and whose plain ``ainvoke`` answers analysis.
    """
    queued = [AIMessage(content=r) if isinstance(r, str) else r for r in replies]
    llm = MagicMock()
    bound = MagicMock()
    bound.ainvoke = AsyncMock(side_effect=queued or [AIMessage(content="Noted.")])
    llm.bind_tools.return_value = bound
    if isinstance(analysis, Exception):
        llm.ainvoke = AsyncMock(side_effect=analysis)
    else:
        llm.ainvoke = AsyncMock(return_value=AIMessage(content=analysis or '{"score": 50}'))
    return llm


def vote_call(vote: str, reasoning: str = "Convinced by the discussion", content: str = "") -> AIMessage:
    return AIMessage(
        content=content,
        tool_calls=[{"name": "cast_vote", "args": {"vote": vote, "reasoning": reasoning}, "id": "call_1"}],
    )


def referendum(chain_id: str = "42", title: str = "Treasury: fund RPC nodes") -> ProposalCreate:
    return ProposalCreate(
        chain_id=chain_id,
        title=title,
        description="Fund three public RPC nodes for twelve months.",
        proposer="HqRcfhH8VXMhuCk5JXe28WMgDDuW9MVDVNofe1nnTcefVZn",
    )
