"""
Proposal lifecycle: ``pending -> voted``.

``voted`` is terminal. Score and analysis may only be written while the
proposal is pending; the vote fields are written together, once, on the
``pending -> voted`` edge. Storage backends apply these functions so every
write goes through the same guards.
"""
from typing import Union

from govagent.data_models.schemas import AnalysisResult, Proposal, ProposalStatus, VoteChoice
from govagent.exceptions import AlreadyVotedError, LifecycleError


def is_terminal(proposal: Proposal) -> bool:
    return proposal.status == ProposalStatus.VOTED


def check_invariants(proposal: Proposal) -> None:
    """Raise LifecycleError if the vote fields disagree with the status."""
    voted = proposal.status == ProposalStatus.VOTED
    if voted != (proposal.vote_tx_hash is not None):
        raise LifecycleError(
            f"Proposal {proposal.id}: status {proposal.status.value} with vote_tx_hash={proposal.vote_tx_hash!r}"
        )
    if (proposal.vote_result is not None) != (proposal.vote_tx_hash is not None):
        raise LifecycleError(f"Proposal {proposal.id}: vote_result and vote_tx_hash must be set together")


def apply_analysis(proposal: Proposal, result: AnalysisResult) -> Proposal:
    """Return a copy carrying the ingestion-time score and analysis."""
    if is_terminal(proposal):
        raise LifecycleError(f"Proposal {proposal.id} is already voted; analysis is frozen")
    return proposal.model_copy(update={
        "score": result.score,
        "analysis": result.model_dump(),
    })


def apply_vote(proposal: Proposal, vote: Union[VoteChoice, str], tx_hash: str) -> Proposal:
    """Return a copy moved across the ``pending -> voted`` edge."""
    if is_terminal(proposal):
        raise AlreadyVotedError(proposal.id)
    if not tx_hash:
        raise LifecycleError("A vote can only be recorded with a transaction hash")
    updated = proposal.model_copy(update={
        "status": ProposalStatus.VOTED,
        "vote_result": VoteChoice(vote),
        "vote_tx_hash": tx_hash,
    })
    check_invariants(updated)
    return updated
