"""
Chain client gateway.

Owns the single connection to the governance chain (Substrate RPC via
substrate-interface) and the signing keypair. The connection is created
lazily, dropped on errors so the next call reconnects, and guarded by a
circuit breaker. The SDK is blocking and not safe for concurrent use, so
calls run one at a time in a worker thread with bounded timeouts.
"""
import asyncio
from typing import Any, Callable, Dict, Optional, TypeVar

from substrateinterface import Keypair, SubstrateInterface
from substrateinterface.exceptions import SubstrateRequestException

from govagent.data_models.schemas import VoteChoice
from govagent.exceptions import (
    ChainConnectionError,
    ChainSubmissionError,
    ConfigurationError,
)
from govagent.utils.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitBreakerOpenError
from govagent.utils.logger import logger

T = TypeVar("T")


def keypair_from_seed(seed: str, ss58_format: int = 2) -> Keypair:
    """Build the signing keypair from a hex seed, mnemonic or secret URI (``//Alice``)."""
    try:
        if seed.startswith("0x"):
            return Keypair.create_from_seed(seed_hex=seed, ss58_format=ss58_format)
        return Keypair.create_from_uri(seed, ss58_format=ss58_format)
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"SIGNING_SEED is not a valid seed, mnemonic or URI: {e}") from e


class ChainGateway:
    """Reads balances and submits conviction votes for the signing account."""

    def __init__(
        self,
        url: str,
        keypair: Optional[Keypair] = None,
        ss58_format: int = 2,
        connect_timeout: float = 20.0,
        read_timeout: float = 15.0,
        submit_timeout: float = 120.0,
        breaker: Optional[CircuitBreaker] = None,
        client_factory: Callable[..., Any] = SubstrateInterface,
    ):
        self.url = url
        self._keypair = keypair
        self._ss58_format = ss58_format
        self._connect_timeout = connect_timeout
        self._read_timeout = read_timeout
        self._submit_timeout = submit_timeout
        self._breaker = breaker or CircuitBreaker(CircuitBreakerConfig(name="chain", failure_threshold=3))
        self._client_factory = client_factory
        self._client = None
        self._connect_lock = asyncio.Lock()
        self._call_lock = asyncio.Lock()

    @property
    def address(self) -> Optional[str]:
        return self._keypair.ss58_address if self._keypair is not None else None

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    async def _get_client(self):
        async with self._connect_lock:
            if self._client is None:
                logger.info("ChainGateway: connecting to %s", self.url)
                self._client = await asyncio.wait_for(
                    asyncio.to_thread(self._client_factory, url=self.url, ss58_format=self._ss58_format),
                    timeout=self._connect_timeout,
                )
            return self._client

    def _drop_client(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            try:
                client.close()
            except Exception as e:
                logger.warning("ChainGateway: error closing connection: %s", e)

    async def _call(self, label: str, fn: Callable[[Any], T], timeout: float) -> T:
        """Run ``fn(client)`` in a worker thread through the breaker."""

        async def attempt() -> T:
            client = await self._get_client()
            async with self._call_lock:
                return await asyncio.wait_for(asyncio.to_thread(fn, client), timeout=timeout)

        try:
            return await self._breaker.call(attempt)
        except CircuitBreakerOpenError as e:
            raise ChainConnectionError(f"{label}: {e}") from e
        except asyncio.TimeoutError as e:
            logger.error("ChainGateway: %s timed out", label)
            self._drop_client()
            raise ChainConnectionError(f"{label} timed out") from e
        except SubstrateRequestException as e:
            logger.error("ChainGateway: %s rejected by node: %s", label, e)
            raise ChainSubmissionError(f"{label} rejected: {e}") from e
        except (ConnectionError, OSError) as e:
            logger.error("ChainGateway: %s connection error: %s", label, e)
            self._drop_client()
            raise ChainConnectionError(f"{label} failed: {e}") from e
        except (ChainConnectionError, ChainSubmissionError, ConfigurationError):
            raise
        except Exception as e:
            # Websocket/codec errors surface as library-specific types
            logger.error("ChainGateway: %s failed: %s", label, e, exc_info=True)
            self._drop_client()
            raise ChainConnectionError(f"{label} failed: {e}") from e

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def get_free_balance(self, address: Optional[str] = None) -> int:
        """Free balance (planck) of ``address``, defaulting to the signing account."""
        target = address or self.address
        if not target:
            raise ConfigurationError("No signing account configured (SIGNING_SEED)")

        def read(client) -> int:
            account = client.query("System", "Account", [target])
            return int(account.value["data"]["free"])

        return await self._call("balance read", read, self._read_timeout)

    async def submit_vote(self, referendum_index: int, vote: VoteChoice, stake: int, conviction: str) -> str:
        """Sign and submit one ConvictionVoting.vote; returns the extrinsic hash once included."""
        if self._keypair is None:
            raise ConfigurationError("No signing account configured (SIGNING_SEED)")
        keypair = self._keypair
        call_params = {
            "poll_index": int(referendum_index),
            "vote": {
                "Standard": {
                    "vote": {"aye": VoteChoice(vote) == VoteChoice.AYE, "conviction": conviction},
                    "balance": int(stake),
                }
            },
        }

        def submit(client) -> Dict[str, Any]:
            call = client.compose_call(call_module="ConvictionVoting", call_function="vote", call_params=call_params)
            extrinsic = client.create_signed_extrinsic(call=call, keypair=keypair)
            receipt = client.submit_extrinsic(extrinsic, wait_for_inclusion=True, wait_for_finalization=False)
            return {
                "hash": receipt.extrinsic_hash,
                "success": receipt.is_success,
                "error": receipt.error_message,
            }

        logger.info("ChainGateway: submitting %s vote on referendum %s (stake=%d, conviction=%s)",
                    VoteChoice(vote).value, referendum_index, stake, conviction)
        result = await self._call("vote submission", submit, self._submit_timeout)
        if not result["success"]:
            raise ChainSubmissionError(f"Vote extrinsic {result['hash']} failed on chain: {result['error']}")
        if not result["hash"]:
            raise ChainSubmissionError("Vote was included but no transaction hash was returned")
        return result["hash"]

    async def health(self) -> Dict[str, Any]:
        status: Dict[str, Any] = {"url": self.url, "address": self.address, "breaker": self._breaker.get_status()}
        try:
            status["head"] = await self._call("health check", lambda client: client.get_chain_head(), self._read_timeout)
            status["connected"] = True
        except (ChainConnectionError, ChainSubmissionError) as e:
            status["connected"] = False
            status["error"] = e.message
        return status

    async def close(self) -> None:
        async with self._connect_lock:
            self._drop_client()
