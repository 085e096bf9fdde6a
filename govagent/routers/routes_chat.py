from typing import List

from fastapi import Depends, WebSocket, WebSocketDisconnect

from govagent.data_models.schemas import ChatMessage, ChatMessageCreate, ChatSubmitRequest, Sender
from govagent.exceptions import GovAgentError, StorageError
from govagent.routers.deps import ServiceContainer, get_services
from govagent.utils.logger import logger


async def list_messages(proposal_id: int, services: ServiceContainer = Depends(get_services)) -> List[ChatMessage]:
    """Chat history for a proposal in timestamp order. Storage trouble yields an empty list."""
    try:
        return await services.storage.list_messages(proposal_id)
    except StorageError as e:
        logger.error("routes_chat: history for proposal %s failed: %s", proposal_id, e.message)
        return []


async def submit_message(
    proposal_id: int,
    body: ChatSubmitRequest,
    services: ServiceContainer = Depends(get_services),
) -> ChatMessage:
    """REST twin of the websocket chat path: publish a user message and let the agent respond."""
    saved = await services.hub.publish(
        ChatMessageCreate(proposal_id=proposal_id, sender=Sender.USER, content=body.content)
    )
    services.engine.schedule(saved)
    return saved


async def chat_websocket(websocket: WebSocket) -> None:
    """
    Bidirectional chat for every proposal.

    Inbound frames are ``{"type": "chat", "data": {"proposalId", "sender", "content"}}``;
    outbound frames carry the persisted message in the same envelope.
    """
    services: ServiceContainer = websocket.app.state.services
    await websocket.accept()
    await services.hub.subscribe(websocket)
    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                break
            raw = frame.get("text")
            if raw is None:
                raw = frame.get("bytes")
            if raw is None:
                continue

            try:
                saved = await services.hub.handle_inbound(raw)
            except GovAgentError as e:
                logger.error("routes_chat: inbound message not stored: %s", e.message)
                continue
            if saved is not None:
                services.engine.schedule(saved)
    except WebSocketDisconnect:
        logger.info("routes_chat: client disconnected")
    except RuntimeError as e:
        # Starlette raises RuntimeError when receiving on a closed socket
        logger.warning("routes_chat: websocket closed unexpectedly: %s", e)
    finally:
        await services.hub.unsubscribe(websocket)
