"""Tests for the decision oracle adapter: response normalization and fallbacks."""
import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

from langchain_core.messages import AIMessage

from ..agent.oracle import (
    DEFAULT_SCORE,
    DecisionOracle,
    cast_vote_tool_spec,
    extract_json,
    normalize_response,
    split_vote_marker,
)
from ..agent.prompts import MALFORMED_VOTE_REPLY, ORACLE_DISABLED_REPLY, ORACLE_UNAVAILABLE_REPLY
from ..data_models.schemas import (
    ChatMessage,
    Proposal,
    Sender,
    TextReply,
    VoteChoice,
    VoteDecision,
)
from .fakes import fake_llm, vote_call


def make_proposal() -> Proposal:
    return Proposal(id=1, chain_id="42", title="Fund RPC nodes", description="Three nodes", proposer="alice")


class TestVoteMarker:
    def test_final_line_marker(self):
        remaining, vote = split_vote_marker("The costs are justified.\nVOTE: AYE")
        assert vote == VoteChoice.AYE
        assert remaining == "The costs are justified."

    def test_marker_must_be_exact(self):
        for text in ("vote: aye", "VOTE: AYE!", "My VOTE: AYE", "VOTE:AYE"):
            assert split_vote_marker(text)[1] is None

    def test_marker_must_be_last_line(self):
        _, vote = split_vote_marker("VOTE: NAY\nbut I might change my mind")
        assert vote is None

    def test_prose_mentioning_votes_is_text(self):
        message = AIMessage(content="Should I vote aye or nay? Many voted aye on the last one.")
        decision = normalize_response(message)
        assert isinstance(decision, TextReply)


class TestNormalizeResponse:
    def test_tool_call_wins(self):
        decision = normalize_response(vote_call("nay", "Too expensive", content="I oppose this."))
        assert isinstance(decision, VoteDecision)
        assert decision.vote == VoteChoice.NAY
        assert decision.reasoning == "Too expensive"
        assert decision.content == "I oppose this."

    def test_unknown_tool_ignored(self):
        message = AIMessage(content="Let me check.", tool_calls=[{"name": "search", "args": {}, "id": "c1"}])
        assert isinstance(normalize_response(message), TextReply)

    def test_malformed_tool_args_ignored(self):
        message = AIMessage(content="Hmm.", tool_calls=[{"name": "cast_vote", "args": {"vote": "maybe"}, "id": "c1"}])
        assert isinstance(normalize_response(message), TextReply)
        assert normalize_response(message).rejected_vote_call is True

    def test_tool_args_case_insensitive(self):
        decision = normalize_response(vote_call(" AYE ", "convinced"))
        assert isinstance(decision, VoteDecision)
        assert decision.vote == VoteChoice.AYE

    def test_content_blocks(self):
        message = AIMessage(content=[{"type": "text", "text": "Agreed.\n"}, {"type": "text", "text": "VOTE: AYE"}])
        decision = normalize_response(message)
        assert isinstance(decision, VoteDecision)
        assert decision.content == "Agreed."


class TestHelpers:
    def test_tool_spec(self):
        spec = cast_vote_tool_spec()
        assert spec["function"]["name"] == "cast_vote"
        assert set(spec["function"]["parameters"]["required"]) == {"vote", "reasoning"}
        assert spec["function"]["parameters"]["properties"]["vote"]["enum"] == ["aye", "nay"]

    def test_extract_json_from_fence(self):
        assert extract_json('Here:\n```json\n{"score": 70}\n```') == '{"score": 70}'

    def test_extract_json_from_prose(self):
        assert extract_json('Result {"score": 70} done') == '{"score": 70}'


class TestAnalyze:
    def test_parses_score(self):
        llm = fake_llm(analysis='{"score": 82, "reasoning": ["aligned"], "recommendation": "approve"}')
        result = asyncio.run(DecisionOracle(llm).analyze(make_proposal()))
        assert result.score == 82
        assert result.recommendation == "approve"

    def test_default_when_disabled(self):
        result = asyncio.run(DecisionOracle(None).analyze(make_proposal()))
        assert result.score == DEFAULT_SCORE

    def test_default_on_error(self):
        llm = fake_llm(analysis=RuntimeError("rate limited"))
        result = asyncio.run(DecisionOracle(llm).analyze(make_proposal()))
        assert result.score == DEFAULT_SCORE

    def test_default_on_garbage(self):
        for content in ("not json at all", '{"score": 250}', '{"reasoning": []}'):
            llm = fake_llm(analysis=content)
            assert asyncio.run(DecisionOracle(llm).analyze(make_proposal())).score == DEFAULT_SCORE

    def test_odd_recommendation_keeps_score(self):
        for recommendation, expected in (("Approve", "approve"), (" REJECT ", "reject"), ("abstain", "discuss"), (None, "discuss")):
            llm = fake_llm(analysis=json.dumps({"score": 88, "reasoning": ["good"], "recommendation": recommendation}))
            result = asyncio.run(DecisionOracle(llm).analyze(make_proposal()))
            assert result.score == 88
            assert result.recommendation == expected

    def test_default_on_timeout(self):
        async def slow(_messages):
            await asyncio.sleep(1)

        llm = fake_llm()
        llm.ainvoke = AsyncMock(side_effect=slow)
        result = asyncio.run(DecisionOracle(llm, timeout=0.01).analyze(make_proposal()))
        assert result.score == DEFAULT_SCORE

    def test_uses_analysis_model(self):
        chat_llm = fake_llm(analysis='{"score": 10}')
        analysis_llm = fake_llm(analysis='{"score": 90}')
        result = asyncio.run(DecisionOracle(chat_llm, analysis_llm=analysis_llm).analyze(make_proposal()))
        assert result.score == 90
        chat_llm.ainvoke.assert_not_called()


class TestDeliberate:
    def history(self):
        return [
            ChatMessage(id=1, proposal_id=1, sender=Sender.USER, content="Why fund this?", timestamp="2024-01-01T00:00:00Z"),
            ChatMessage(id=2, proposal_id=1, sender=Sender.AGENT, content="Uptime matters.", timestamp="2024-01-01T00:00:01Z"),
            ChatMessage(id=3, proposal_id=1, sender=Sender.USER, content="Convinced?", timestamp="2024-01-01T00:00:02Z"),
        ]

    def test_text_reply(self):
        llm = fake_llm("I need to know more about the operators.")
        result = asyncio.run(DecisionOracle(llm).deliberate(make_proposal(), self.history()))
        assert result.intent is None
        assert result.response_text == "I need to know more about the operators."

    def test_tool_vote(self):
        llm = fake_llm(vote_call("aye", "Uptime is worth it"))
        result = asyncio.run(DecisionOracle(llm).deliberate(make_proposal(), self.history()))
        assert result.intent.vote == VoteChoice.AYE
        assert result.intent.reasoning == "Uptime is worth it"
        assert "AYE" in result.response_text

    def test_marker_vote(self):
        llm = fake_llm("Fine, the budget is reasonable.\nVOTE: NAY")
        result = asyncio.run(DecisionOracle(llm).deliberate(make_proposal(), self.history()))
        assert result.intent.vote == VoteChoice.NAY
        assert result.response_text == "Fine, the budget is reasonable."

    def test_history_roles(self):
        llm = fake_llm("ok")
        asyncio.run(DecisionOracle(llm).deliberate(make_proposal(), self.history()))
        messages = llm.bind_tools.return_value.ainvoke.call_args.args[0]
        assert [m.type for m in messages] == ["system", "system", "human", "ai", "human"]

    def test_apology_on_error(self):
        llm = fake_llm(RuntimeError("boom"))
        result = asyncio.run(DecisionOracle(llm).deliberate(make_proposal(), self.history()))
        assert result.intent is None
        assert result.response_text == ORACLE_UNAVAILABLE_REPLY

    def test_apology_on_empty_reply(self):
        llm = fake_llm(AIMessage(content="   "))
        result = asyncio.run(DecisionOracle(llm).deliberate(make_proposal(), self.history()))
        assert result.response_text == ORACLE_UNAVAILABLE_REPLY

    def test_uppercase_tool_vote(self):
        llm = fake_llm(vote_call("AYE", "convinced"))
        result = asyncio.run(DecisionOracle(llm).deliberate(make_proposal(), self.history()))
        assert result.intent.vote == VoteChoice.AYE
        assert result.response_text != ORACLE_UNAVAILABLE_REPLY

    def test_unusable_tool_vote_is_not_an_outage(self):
        llm = fake_llm(vote_call("abstain", "unsure"))
        result = asyncio.run(DecisionOracle(llm).deliberate(make_proposal(), self.history()))
        assert result.intent is None
        assert result.response_text == MALFORMED_VOTE_REPLY

    def test_disabled(self):
        result = asyncio.run(DecisionOracle(None).deliberate(make_proposal(), self.history()))
        assert result.intent is None
        assert result.response_text == ORACLE_DISABLED_REPLY

    def test_model_without_tools_uses_marker(self):
        llm = MagicMock()
        llm.bind_tools.side_effect = NotImplementedError
        llm.ainvoke = AsyncMock(return_value=AIMessage(content="Agreed.\nVOTE: AYE"))
        result = asyncio.run(DecisionOracle(llm).deliberate(make_proposal(), self.history()))
        assert result.intent.vote == VoteChoice.AYE
