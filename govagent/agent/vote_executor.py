"""
Vote executor: turns a vote intent into at most one on-chain vote per proposal.

Every call is a single terminal attempt (no internal retries):

1. re-read the proposal and refuse if it is already voted,
2. stake half of the signing account's free balance,
3. submit one ConvictionVoting.vote and wait for inclusion,
4. commit ``status=voted`` with the transaction hash (compare-and-set).

Callers must serialize ``execute`` per proposal; the guard plus the atomic
commit keep a second concurrent attempt from recording another vote.
"""
from typing import Optional

from govagent.data_models.schemas import Proposal, ProposalStatus, VoteIntent, VoteOutcome
from govagent.exceptions import (
    AlreadyVotedError,
    ChainError,
    ConfigurationError,
    InsufficientBalanceError,
    StorageError,
)
from govagent.services.chain_gateway import ChainGateway
from govagent.services.storage import ProposalStorage
from govagent.utils.logger import logger


def compute_stake(balance: int) -> int:
    """Half the free balance, rounded down; the rest is left for fees."""
    if balance <= 0:
        raise InsufficientBalanceError(balance)
    return balance // 2


class VoteExecutor:
    def __init__(self, storage: ProposalStorage, chain: ChainGateway, conviction: str = "Locked1x",
                 enabled: bool = True):
        self._storage = storage
        self._chain = chain
        self.conviction = conviction
        self.enabled = enabled

    async def execute(self, proposal: Proposal, intent: VoteIntent) -> VoteOutcome:
        vote = intent.vote.value.upper()

        current = await self._storage.get_proposal(proposal.id)
        if current is None:
            logger.error("VoteExecutor: proposal %s vanished before voting", proposal.id)
            return self._failure(proposal, vote, "proposal not found")
        if current.status == ProposalStatus.VOTED:
            logger.info("VoteExecutor: proposal %s already voted (%s), skipping", current.id, current.vote_tx_hash)
            return VoteOutcome(
                success=False,
                already_voted=True,
                tx_hash=current.vote_tx_hash,
                error="already voted",
                announcement=(
                    f"I have already voted {current.vote_result.value.upper()} on referendum "
                    f"#{current.chain_id} (transaction {current.vote_tx_hash}); no further vote was cast."
                ),
            )

        if not self.enabled:
            logger.warning("VoteExecutor: voting disabled, not voting on proposal %s", current.id)
            return self._failure(current, vote, "voting is disabled on this deployment")

        try:
            referendum_index = int(current.chain_id)
        except ValueError:
            logger.error("VoteExecutor: proposal %s has non-numeric chainId %r", current.id, current.chain_id)
            return self._failure(current, vote, f"invalid referendum id '{current.chain_id}'")

        try:
            balance = await self._chain.get_free_balance()
            stake = compute_stake(balance)
        except InsufficientBalanceError as e:
            logger.warning("VoteExecutor: insufficient balance (%s) for proposal %s", e.balance, current.id)
            return self._failure(current, vote, "insufficient balance")
        except (ChainError, ConfigurationError) as e:
            logger.error("VoteExecutor: balance read failed for proposal %s: %s", current.id, e.message)
            return self._failure(current, vote, f"could not read account balance ({e.message})")

        try:
            tx_hash = await self._chain.submit_vote(referendum_index, intent.vote, stake, self.conviction)
        except (ChainError, ConfigurationError) as e:
            logger.error("VoteExecutor: vote submission failed for proposal %s: %s", current.id, e.message)
            return self._failure(current, vote, e.message, stake=stake)

        try:
            await self._storage.record_vote(current.id, intent.vote, tx_hash)
        except AlreadyVotedError:
            # Another writer committed first; the chain keeps only the latest vote per account
            logger.error("VoteExecutor: proposal %s was committed concurrently; tx %s not recorded", current.id, tx_hash)
            return VoteOutcome(
                success=False, already_voted=True, tx_hash=tx_hash, stake=stake, error="already voted",
                announcement=f"A vote on referendum #{current.chain_id} had already been recorded; transaction {tx_hash} was not recorded.",
            )
        except StorageError as e:
            logger.critical("VoteExecutor: vote %s on proposal %s is on chain but could not be recorded: %s",
                            tx_hash, current.id, e.message)
            return self._failure(current, vote, "the vote was submitted but could not be recorded", stake=stake, tx_hash=tx_hash)

        logger.info("VoteExecutor: voted %s on referendum %s with stake %d (tx %s)", vote, current.chain_id, stake, tx_hash)
        return VoteOutcome(
            success=True,
            tx_hash=tx_hash,
            stake=stake,
            announcement=(
                f"I have voted {vote} on referendum #{current.chain_id} with a stake of {stake} "
                f"(conviction {self.conviction}).\n"
                f"Reasoning: {intent.reasoning or 'n/a'}\n"
                f"Transaction: {tx_hash}"
            ),
        )

    def _failure(self, proposal: Proposal, vote: str, error: str, stake: Optional[int] = None,
                 tx_hash: Optional[str] = None) -> VoteOutcome:
        return VoteOutcome(
            success=False,
            error=error,
            stake=stake,
            tx_hash=tx_hash,
            announcement=f"I tried to vote {vote} on referendum #{proposal.chain_id}, but the vote failed: {error}.",
        )
