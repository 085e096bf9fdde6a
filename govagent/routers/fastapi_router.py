from typing import List

from fastapi import APIRouter

from .routes_chat import chat_websocket, list_messages, submit_message
from .routes_proposals import create_proposal, get_proposal, import_proposal, list_proposals
from govagent.data_models.schemas import ChatMessage, Proposal

router = APIRouter()
router.add_api_route("/api/proposals", list_proposals, methods=["GET"], response_model=List[Proposal])
router.add_api_route("/api/proposals", create_proposal, methods=["POST"], response_model=Proposal,
                     status_code=201)
router.add_api_route("/api/proposals/import", import_proposal, methods=["POST"], response_model=Proposal,
                     status_code=201)
router.add_api_route("/api/proposals/{proposal_id}", get_proposal, methods=["GET"], response_model=Proposal)
router.add_api_route("/api/proposals/{proposal_id}/messages", list_messages, methods=["GET"],
                     response_model=List[ChatMessage])
router.add_api_route("/api/proposals/{proposal_id}/messages", submit_message, methods=["POST"],
                     response_model=ChatMessage, status_code=201)
router.add_api_websocket_route("/ws", chat_websocket)
