"""
Chat hub: persisted, ordered broadcast of chat messages.

One transport carries every proposal; clients filter on ``proposalId``.
A message is always persisted before it is broadcast, so a crash between
the two can lose the live delivery but never the durable record. Publishes
are serialized, so every connection sees messages in publish order.
Connections that join later fetch history over REST.
"""
import asyncio
import json
from typing import Any, Dict, List, Optional, Protocol, Set, Union

from pydantic import ValidationError as PydanticValidationError

from govagent.data_models.schemas import (
    ChatMessage,
    ChatMessageCreate,
    ClientEnvelope,
    chat_envelope,
)
from govagent.exceptions import ProposalNotFoundError, ValidationError
from govagent.services.storage import ProposalStorage
from govagent.utils.logger import logger


class Connection(Protocol):
    """Anything that can receive a JSON event, e.g. a Starlette WebSocket."""

    async def send_json(self, data: Any) -> None:  # pragma: no cover
        ...


class ChatHub:
    def __init__(self, storage: ProposalStorage, send_timeout: float = 5.0):
        self._storage = storage
        self._send_timeout = send_timeout
        self._connections: Set[Connection] = set()
        self._lock = asyncio.Lock()
        self._publish_lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def subscribe(self, connection: Connection) -> None:
        async with self._lock:
            self._connections.add(connection)
            total = len(self._connections)
        logger.info("ChatHub: connection subscribed. Total: %d", total)

    async def unsubscribe(self, connection: Connection) -> None:
        """Safe to call more than once for the same connection."""
        async with self._lock:
            if connection not in self._connections:
                return
            self._connections.discard(connection)
            total = len(self._connections)
        logger.info("ChatHub: connection unsubscribed. Total: %d", total)

    async def publish(self, message: Union[ChatMessageCreate, Dict[str, Any]]) -> ChatMessage:
        """Validate, persist, then broadcast a message. Returns the persisted message."""
        if not isinstance(message, ChatMessageCreate):
            try:
                message = ChatMessageCreate.model_validate(message)
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid chat message: {e.errors(include_url=False)}") from e

        async with self._publish_lock:
            saved = await self._storage.create_message(message)
            await self._broadcast(chat_envelope(saved))
        return saved

    async def _broadcast(self, event: Dict[str, Any]) -> None:
        async with self._lock:
            targets: List[Connection] = list(self._connections)
        if not targets:
            return

        results = await asyncio.gather(
            *(asyncio.wait_for(conn.send_json(event), timeout=self._send_timeout) for conn in targets),
            return_exceptions=True,
        )
        for conn, result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.warning("ChatHub: dropping connection after failed send: %r", result)
                await self.unsubscribe(conn)

    async def handle_inbound(self, raw: Union[str, bytes]) -> Optional[ChatMessage]:
        """
        Publish a client envelope ``{"type": "chat", "data": {...}}``.

        Malformed payloads are dropped with a warning and None is returned;
        the connection stays open. Storage failures propagate.
        """
        try:
            envelope = ClientEnvelope.model_validate(json.loads(raw))
        except PydanticValidationError as e:
            logger.warning("ChatHub: dropping malformed payload: %s", e.errors(include_url=False))
            return None
        except ValueError as e:
            logger.warning("ChatHub: dropping non-JSON payload: %s", e)
            return None

        try:
            return await self.publish(ChatMessageCreate.model_validate(envelope.data.model_dump()))
        except (ValidationError, ProposalNotFoundError) as e:
            logger.warning("ChatHub: dropping payload: %s", e.message)
            return None
