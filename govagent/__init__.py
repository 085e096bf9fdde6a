"""
Governance deliberation agent backend.

Community members chat with an LLM-backed agent about on-chain referenda;
once the agent is convinced it casts a conviction-weighted vote on chain.
"""

__all__ = [
]
