"""
Decision oracle adapter.

All interaction with the language model lives here. The model is a black
box: ``analyze`` turns a proposal into an alignment score at ingestion
time and ``deliberate`` turns the chat history into a reply plus, when the
model has decided, a vote intent. Neither operation ever raises; oracle
failures become a default score or an apology with no intent.
"""
import asyncio
import json
from typing import Any, Dict, List, Optional, Sequence, Tuple

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from govagent.agent.prompts import (
    ANALYSIS_PROMPT_TEMPLATE,
    DELIBERATION_CONTEXT_TEMPLATE,
    MALFORMED_VOTE_REPLY,
    ORACLE_DISABLED_REPLY,
    ORACLE_UNAVAILABLE_REPLY,
    SYSTEM_PROMPT,
)
from govagent.data_models.schemas import (
    AnalysisResult,
    CastVote,
    ChatMessage,
    DeliberationResult,
    OracleDecision,
    Proposal,
    Sender,
    TextReply,
    VoteChoice,
    VoteDecision,
    VoteIntent,
)
from govagent.llm.factory import extract_text_content
from govagent.utils.logger import logger

DEFAULT_SCORE = 50
CAST_VOTE_TOOL = "cast_vote"

# Exact final-line markers; anything else is ordinary prose
VOTE_MARKERS = {
    "VOTE: AYE": VoteChoice.AYE,
    "VOTE: NAY": VoteChoice.NAY,
}

_decision_adapter: TypeAdapter = TypeAdapter(OracleDecision)


def default_analysis() -> AnalysisResult:
    return AnalysisResult(score=DEFAULT_SCORE, reasoning=[], recommendation="discuss")


def cast_vote_tool_spec() -> Dict[str, Any]:
    """OpenAI function-calling spec for the cast_vote tool."""
    schema = CastVote.model_json_schema()
    return {
        "type": "function",
        "function": {
            "name": CAST_VOTE_TOOL,
            "description": " ".join((CastVote.__doc__ or "").split()),
            "parameters": {
                "type": "object",
                "properties": schema["properties"],
                "required": schema.get("required", ["vote", "reasoning"]),
            },
        },
    }


def extract_json(content: str) -> str:
    """Extract a JSON object from an LLM response that may wrap it in prose or fences."""
    json_str = content.strip()

    if "```json" in content:
        start = content.find("```json") + 7
        end = content.find("```", start)
        if end > start:
            json_str = content[start:end].strip()
    elif "```" in content:
        start = content.find("```") + 3
        end = content.find("```", start)
        if end > start:
            json_str = content[start:end].strip()

    if not json_str.startswith("{"):
        start = content.find("{")
        end = content.rfind("}") + 1
        if start >= 0 and end > start:
            json_str = content[start:end]

    return json_str


def split_vote_marker(text: str) -> Tuple[str, Optional[VoteChoice]]:
    """Strip a terminal ``VOTE: AYE``/``VOTE: NAY`` line; returns (remaining text, vote)."""
    lines = text.rstrip().splitlines()
    if not lines:
        return text, None
    vote = VOTE_MARKERS.get(lines[-1].strip())
    if vote is None:
        return text, None
    return "\n".join(lines[:-1]).rstrip(), vote


def normalize_response(message: BaseMessage) -> OracleDecision:
    """Turn a raw model message into a ``vote`` or ``text`` decision."""
    text = extract_text_content(message.content).strip()
    rejected_vote_call = False

    for call in getattr(message, "tool_calls", None) or []:
        if call.get("name") != CAST_VOTE_TOOL:
            logger.warning("DecisionOracle: ignoring unknown tool call %r", call.get("name"))
            continue
        try:
            args = CastVote.model_validate(call.get("args") or {})
        except PydanticValidationError as e:
            logger.warning("DecisionOracle: malformed cast_vote arguments: %s", e)
            rejected_vote_call = True
            continue
        return _decision_adapter.validate_python(
            {"kind": "vote", "vote": args.vote, "reasoning": args.reasoning, "content": text}
        )

    remaining, vote = split_vote_marker(text)
    if vote is not None:
        return _decision_adapter.validate_python(
            {"kind": "vote", "vote": vote, "reasoning": remaining, "content": remaining}
        )
    return _decision_adapter.validate_python(
        {"kind": "text", "content": text, "rejected_vote_call": rejected_vote_call}
    )


class DecisionOracle:
    """Adapter around the external reasoning service."""

    def __init__(
        self,
        llm: Optional[BaseChatModel],
        timeout: float = 45.0,
        analysis_llm: Optional[BaseChatModel] = None,
    ):
        self._llm = llm
        self._analysis_llm = analysis_llm or llm
        self._timeout = timeout
        self._deliberation_llm = self._bind_vote_tool(llm) if llm is not None else None

    @property
    def enabled(self) -> bool:
        return self._llm is not None

    @staticmethod
    def _bind_vote_tool(llm: BaseChatModel) -> Any:
        try:
            return llm.bind_tools([cast_vote_tool_spec()])
        except NotImplementedError:
            logger.warning("DecisionOracle: model does not support tools; relying on the VOTE: marker")
            return llm

    async def _invoke(self, model: Any, messages: List[BaseMessage]) -> BaseMessage:
        return await asyncio.wait_for(model.ainvoke(messages), timeout=self._timeout)

    # ------------------------------------------------------------------
    # Ingestion-time analysis
    # ------------------------------------------------------------------

    async def analyze(self, proposal: Proposal) -> AnalysisResult:
        if self._analysis_llm is None:
            logger.info("DecisionOracle: oracle disabled, default score for proposal %s", proposal.id)
            return default_analysis()

        messages = [
            SystemMessage(content=SYSTEM_PROMPT),
            HumanMessage(content=ANALYSIS_PROMPT_TEMPLATE.format(
                title=proposal.title, description=proposal.description,
            )),
        ]
        try:
            response = await self._invoke(self._analysis_llm, messages)
        except asyncio.TimeoutError:
            logger.error("DecisionOracle: analysis of proposal %s timed out after %.0fs", proposal.id, self._timeout)
            return default_analysis()
        except Exception as e:
            logger.error("DecisionOracle: analysis of proposal %s failed: %s", proposal.id, e)
            return default_analysis()

        content = extract_text_content(response.content)
        try:
            data = json.loads(extract_json(content))
            result = AnalysisResult.model_validate(data)
        except (json.JSONDecodeError, PydanticValidationError, TypeError) as e:
            logger.warning("DecisionOracle: malformed analysis for proposal %s: %s", proposal.id, e)
            return default_analysis()

        logger.info("DecisionOracle: proposal %s scored %d (%s)", proposal.id, result.score, result.recommendation)
        return result

    # ------------------------------------------------------------------
    # Deliberation
    # ------------------------------------------------------------------

    def _build_messages(self, proposal: Proposal, history: Sequence[ChatMessage]) -> List[BaseMessage]:
        messages: List[BaseMessage] = [
            SystemMessage(content=SYSTEM_PROMPT),
            SystemMessage(content=DELIBERATION_CONTEXT_TEMPLATE.format(
                chain_id=proposal.chain_id,
                title=proposal.title,
                proposer=proposal.proposer,
                description=proposal.description,
                score=proposal.score,
                status=proposal.status.value,
            )),
        ]
        for msg in history:
            if msg.sender == Sender.AGENT:
                messages.append(AIMessage(content=msg.content))
            else:
                messages.append(HumanMessage(content=msg.content))
        return messages

    async def deliberate(self, proposal: Proposal, history: Sequence[ChatMessage]) -> DeliberationResult:
        if self._deliberation_llm is None:
            return DeliberationResult(response_text=ORACLE_DISABLED_REPLY, intent=None)

        try:
            response = await self._invoke(self._deliberation_llm, self._build_messages(proposal, history))
            decision = normalize_response(response)
        except asyncio.TimeoutError:
            logger.error("DecisionOracle: deliberation on proposal %s timed out after %.0fs", proposal.id, self._timeout)
            return DeliberationResult(response_text=ORACLE_UNAVAILABLE_REPLY, intent=None)
        except Exception as e:
            logger.error("DecisionOracle: deliberation on proposal %s failed: %s", proposal.id, e, exc_info=True)
            return DeliberationResult(response_text=ORACLE_UNAVAILABLE_REPLY, intent=None)

        if isinstance(decision, VoteDecision):
            logger.info("DecisionOracle: proposal %s decided %s", proposal.id, decision.vote.value)
            text = decision.content or f"I have reached a decision: I will vote {decision.vote.value.upper()}."
            return DeliberationResult(
                response_text=text,
                intent=VoteIntent(vote=decision.vote, reasoning=decision.reasoning or decision.content),
            )

        assert isinstance(decision, TextReply)
        if not decision.content and decision.rejected_vote_call:
            return DeliberationResult(response_text=MALFORMED_VOTE_REPLY, intent=None)
        if not decision.content:
            logger.warning("DecisionOracle: empty reply for proposal %s", proposal.id)
            return DeliberationResult(response_text=ORACLE_UNAVAILABLE_REPLY, intent=None)
        return DeliberationResult(response_text=decision.content, intent=None)
