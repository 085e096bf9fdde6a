"""Tests for the Polkassembly client and proposal ingestion."""
import asyncio

import httpx
import pytest

from ..agent.ingestion import ProposalIngestor
from ..agent.oracle import DecisionOracle
from ..exceptions import ConfigurationError, ConflictError, ProposalSourceError
from ..services.proposal_source import PolkassemblyClient
from ..services.storage import InMemoryStorage
from .fakes import fake_llm, referendum


def client_for(handler) -> PolkassemblyClient:
    return PolkassemblyClient(network="kusama", transport=httpx.MockTransport(handler))


class TestPolkassemblyClient:
    def test_fetch_referendum(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = request.url
            seen["network"] = request.headers.get("x-network")
            return httpx.Response(200, json={
                "title": "  Fund public RPC nodes  ",
                "content": "<p>Three nodes</p>",
                "proposer": "HqRcfhH8VXMhuCk5JXe28WMgDDuW9MVDVNofe1nnTcefVZn",
            })

        proposal = asyncio.run(client_for(handler).fetch("311"))
        assert proposal.chain_id == "311"
        assert proposal.title == "Fund public RPC nodes"
        assert proposal.description == "<p>Three nodes</p>"
        assert seen["url"].path == "/api/v1/posts/on-chain-post"
        assert seen["url"].params["postId"] == "311"
        assert seen["url"].params["proposalType"] == "referendums_v2"
        assert seen["network"] == "kusama"

    def test_missing_fields_get_defaults(self):
        def handler(request):
            return httpx.Response(200, json={"title": None, "content": None})

        proposal = asyncio.run(client_for(handler).fetch("12"))
        assert proposal.title == "Referendum #12"
        assert proposal.proposer == "polkassembly"
        assert proposal.description == ""

    def test_not_found(self):
        def handler(request):
            return httpx.Response(404, json={"error": "not found"})

        with pytest.raises(ProposalSourceError) as exc_info:
            asyncio.run(client_for(handler).fetch("9999"))
        assert "404" in exc_info.value.message

    def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProposalSourceError):
            asyncio.run(client_for(handler).fetch("1"))

    def test_invalid_json(self):
        def handler(request):
            return httpx.Response(200, text="<html>maintenance</html>")

        with pytest.raises(ProposalSourceError):
            asyncio.run(client_for(handler).fetch("1"))

    def test_payload_not_an_object(self):
        for payload in ([], None, "referendum", 7):
            def handler(request, payload=payload):
                return httpx.Response(200, json=payload)

            with pytest.raises(ProposalSourceError):
                asyncio.run(client_for(handler).fetch("1"))

    def test_wrongly_typed_fields(self):
        def handler(request):
            return httpx.Response(200, json={"title": 12, "content": "text", "proposer": {"address": "bob"}})

        with pytest.raises(ProposalSourceError):
            asyncio.run(client_for(handler).fetch("1"))


class TestProposalIngestor:
    def test_ingest_scores_once(self):
        llm = fake_llm(analysis='{"score": 64, "reasoning": ["modest cost"], "recommendation": "approve"}')

        async def scenario():
            storage = InMemoryStorage()
            proposal = await ProposalIngestor(storage, DecisionOracle(llm)).ingest(referendum("5"))
            return proposal, await storage.get_proposal(proposal.id)

        proposal, stored = asyncio.run(scenario())
        assert proposal.score == 64
        assert stored.analysis["recommendation"] == "approve"
        assert llm.ainvoke.await_count == 1

    def test_ingest_without_oracle_uses_default_score(self):
        async def scenario():
            return await ProposalIngestor(InMemoryStorage(), DecisionOracle(None)).ingest(referendum("5"))

        assert asyncio.run(scenario()).score == 50

    def test_import_from_index(self):
        def handler(request):
            return httpx.Response(200, json={"title": "Upgrade runtime", "content": "v1.2", "proposer": "bob"})

        async def scenario():
            storage = InMemoryStorage()
            ingestor = ProposalIngestor(storage, DecisionOracle(None), client_for(handler))
            return await ingestor.import_referendum("400")

        proposal = asyncio.run(scenario())
        assert proposal.chain_id == "400"
        assert proposal.title == "Upgrade runtime"

    def test_import_duplicate(self):
        def handler(request):
            raise AssertionError("index must not be called for a known referendum")

        async def scenario():
            storage = InMemoryStorage()
            await storage.create_proposal(referendum("400"))
            await ProposalIngestor(storage, DecisionOracle(None), client_for(handler)).import_referendum("400")

        with pytest.raises(ConflictError):
            asyncio.run(scenario())

    def test_import_without_source(self):
        async def scenario():
            await ProposalIngestor(InMemoryStorage(), DecisionOracle(None)).import_referendum("1")

        with pytest.raises(ConfigurationError):
            asyncio.run(scenario())
