"""
Type definitions for proposals, chat messages and vote decisions.

JSON payloads use camelCase (chainId, proposalId, voteTxHash) while Python
code uses snake_case attributes; serialize with ``by_alias=True``.
"""
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class ProposalStatus(str, Enum):
    """Lifecycle states. ``voted`` is terminal."""
    PENDING = "pending"
    VOTED = "voted"


class VoteChoice(str, Enum):
    AYE = "aye"
    NAY = "nay"


class Sender(str, Enum):
    USER = "user"
    AGENT = "agent"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ==================
# Proposals
# ==================

class ProposalCreate(CamelModel):
    """Fields supplied when a proposal is ingested."""
    chain_id: str = Field(min_length=1, description="On-chain referendum index")
    title: str = Field(min_length=1)
    description: str = ""
    proposer: str = Field(min_length=1)

    @field_validator("chain_id", mode="before")
    @classmethod
    def _chain_id_as_text(cls, v: Any) -> Any:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        if isinstance(v, str):
            return v.strip()
        return v


class Proposal(ProposalCreate):
    """A persisted proposal.

    ``vote_tx_hash`` is set iff ``status`` is voted, and ``vote_result`` is set
    iff ``vote_tx_hash`` is set.
    """
    id: int
    score: int = Field(0, ge=0, le=100)
    status: ProposalStatus = ProposalStatus.PENDING
    vote_result: Optional[VoteChoice] = None
    vote_tx_hash: Optional[str] = None
    analysis: Optional[Dict[str, Any]] = None


class ProposalImportRequest(CamelModel):
    chain_id: str = Field(min_length=1)

    @field_validator("chain_id", mode="before")
    @classmethod
    def _chain_id_as_text(cls, v: Any) -> Any:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


# ==================
# Chat
# ==================

class ChatMessageCreate(CamelModel):
    """A message about to be published; id and timestamp are assigned on persistence."""
    proposal_id: int
    sender: Sender
    content: str

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("content must not be empty")
        return v


class ChatMessage(ChatMessageCreate):
    id: int
    timestamp: datetime


class ClientChatPayload(ChatMessageCreate):
    """What a client may send. Clients only ever speak as the user."""
    sender: Sender = Sender.USER

    @field_validator("sender")
    @classmethod
    def _user_only(cls, v: Sender) -> Sender:
        if v != Sender.USER:
            raise ValueError("clients may only send user messages")
        return v


class ClientEnvelope(BaseModel):
    type: Literal["chat"]
    data: ClientChatPayload


class ChatSubmitRequest(CamelModel):
    content: str

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("content must not be empty")
        return v


def chat_envelope(message: ChatMessage) -> Dict[str, Any]:
    """Wire form of an outbound chat event."""
    return {"type": "chat", "data": message.model_dump(mode="json", by_alias=True)}


# ==================
# Oracle
# ==================

class AnalysisResult(BaseModel):
    """Ingestion-time alignment score."""
    score: int = Field(ge=0, le=100)
    reasoning: List[str] = Field(default_factory=list)
    recommendation: Literal["approve", "reject", "discuss"] = "discuss"

    @field_validator("recommendation", mode="before")
    @classmethod
    def _known_recommendation(cls, v: Any) -> Any:
        # Only the score is load-bearing; an odd recommendation must not discard it
        normalized = v.strip().lower() if isinstance(v, str) else None
        return normalized if normalized in ("approve", "reject", "discuss") else "discuss"


class VoteIntent(BaseModel):
    vote: VoteChoice
    reasoning: str = ""


class CastVote(BaseModel):
    """Cast the agent's binding on-chain vote on the proposal under discussion.

    Call this only once the conversation has convinced you either way.
    """
    vote: Literal["aye", "nay"] = Field(description="'aye' to support the referendum, 'nay' to oppose it")
    reasoning: str = Field(description="Short justification shown to the community")

    @field_validator("vote", mode="before")
    @classmethod
    def _lowercase_vote(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v


class VoteDecision(BaseModel):
    kind: Literal["vote"] = "vote"
    vote: VoteChoice
    reasoning: str = ""
    content: str = ""


class TextReply(BaseModel):
    kind: Literal["text"] = "text"
    content: str
    # a cast_vote call was made but its arguments could not be used
    rejected_vote_call: bool = False


OracleDecision = Annotated[Union[VoteDecision, TextReply], Field(discriminator="kind")]


class DeliberationResult(BaseModel):
    response_text: str
    intent: Optional[VoteIntent] = None


# ==================
# Vote execution
# ==================

class VoteOutcome(BaseModel):
    """Terminal result of one vote attempt."""
    success: bool
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    stake: Optional[int] = None
    already_voted: bool = False
    announcement: str = ""
