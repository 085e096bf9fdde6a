"""
Error types shared by the REST layer, the chat path and the vote executor.

Each carries an HTTP-style status code. REST handlers turn that into the
response status; the chat path turns the message into an agent reply.
"""
from typing import Optional


class GovAgentError(Exception):
    """Root of every error the agent raises on purpose."""

    def __init__(
        self,
        message: str,
        code: int = 500,
        retryable: bool = True,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.retryable = retryable
        self.retry_after = retry_after

    def to_dict(self) -> dict:
        """JSON body for error responses."""
        result = {
            "error_code": self.code,
            "error_message": self.message,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        return result


# ============================================
# 4xx Client Errors
# ============================================

class ValidationError(GovAgentError):
    """400: request data failed validation."""

    def __init__(self, message: str = "Invalid request data"):
        super().__init__(message, code=400, retryable=False)


class ProposalNotFoundError(GovAgentError):
    """404: no proposal with that id."""

    def __init__(self, proposal_id: object = None):
        message = f"Proposal '{proposal_id}' not found" if proposal_id is not None else "Proposal not found"
        super().__init__(message, code=404, retryable=False)
        self.proposal_id = proposal_id


class ConflictError(GovAgentError):
    """409: duplicate chain id or a state change the proposal cannot take."""

    def __init__(self, message: str = "Resource conflict"):
        super().__init__(message, code=409, retryable=False)


class LifecycleError(ConflictError):
    """A write the proposal's current lifecycle state does not allow."""

    def __init__(self, message: str = "Operation not allowed in the proposal's current state"):
        super().__init__(message)


class AlreadyVotedError(LifecycleError):
    """The proposal already carries a vote."""

    def __init__(self, proposal_id: object = None):
        message = f"Proposal '{proposal_id}' already voted" if proposal_id is not None else "already voted"
        super().__init__(message)
        self.proposal_id = proposal_id


# ============================================
# Vote execution errors
# ============================================

class InsufficientBalanceError(GovAgentError):
    """Free balance of the voting account cannot fund a stake."""

    def __init__(self, balance: int = 0):
        super().__init__("insufficient balance", code=402, retryable=False)
        self.balance = balance


class ChainError(GovAgentError):
    """Base for chain client failures."""

    def __init__(self, message: str = "Chain request failed.", code: int = 502):
        super().__init__(message, code=code, retryable=True)


class ChainConnectionError(ChainError):
    """RPC endpoint unreachable, timed out, or circuit open."""

    def __init__(self, message: str = "Chain connection failed."):
        super().__init__(message, code=503)


class ChainSubmissionError(ChainError):
    """Extrinsic could not be built, signed, included, or was rejected."""

    def __init__(self, message: str = "Vote transaction failed."):
        super().__init__(message, code=502)


# ============================================
# Collaborator errors
# ============================================

class StorageError(GovAgentError):
    """Persistence store read or write failed."""

    def __init__(self, message: str = "Storage operation failed. Please try again."):
        super().__init__(message, code=503, retryable=True, retry_after=5.0)


class ProposalSourceError(GovAgentError):
    """External proposal index could not provide the proposal."""

    def __init__(self, message: str = "Proposal index unavailable."):
        super().__init__(message, code=502, retryable=True)


class ConfigurationError(GovAgentError):
    """Required configuration is missing or invalid."""

    def __init__(self, message: str = "Invalid configuration."):
        super().__init__(message, code=500, retryable=False)
