"""
LINE endpoints: the signed inbound webhook that drives auto-registration,
plus operator actions (direct message, registration invite broadcast,
profile and bot info lookups).
"""

import json

from fastapi import APIRouter, Depends, HTTPException, Request, status

from coachdesk.dependencies import (
    get_line_channel_secret,
    get_messaging,
    get_record_store,
    get_welcome_back_enabled,
)
from coachdesk.infrastructure.observability.logging import get_logger
from coachdesk.models.api.requests import SendMessageRequest
from coachdesk.models.api.responses import LineProfileResponse
from coachdesk.services.line.signature import LINE_SIGNATURE_HEADER, verify_line_signature
from coachdesk.services.reconciliation import REGISTRATION_INVITE_TEXT, handle_webhook_events

logger = get_logger(__name__)

router = APIRouter(prefix="/line", tags=["line"])


@router.post("/webhook")
async def line_webhook(
    request: Request,
    store=Depends(get_record_store),
    messaging=Depends(get_messaging),
    channel_secret: str | None = Depends(get_line_channel_secret),
    welcome_back: bool = Depends(get_welcome_back_enabled),
):
    raw = await request.body()
    signature = request.headers.get(LINE_SIGNATURE_HEADER)
    if not verify_line_signature(channel_secret, raw, signature):
        logger.warning("Rejected LINE webhook", has_signature=bool(signature))
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    try:
        payload = json.loads(raw)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")

    results = await handle_webhook_events(store, messaging, payload, welcome_back=welcome_back)
    return {
        "success": True,
        "results": [
            {"sender_id": r.sender_id, "outcome": r.outcome.value, "reply_sent": r.reply_sent}
            for r in results
        ],
    }


@router.post("/send-message")
async def send_message(body: SendMessageRequest, messaging=Depends(get_messaging)):
    await messaging.push_message(body.user_id, body.message)
    return {"success": True, "message": "Message sent successfully"}


@router.post("/broadcast-registration")
async def broadcast_registration(messaging=Depends(get_messaging)):
    await messaging.broadcast(REGISTRATION_INVITE_TEXT)
    logger.info("Registration invite broadcast")
    return {"success": True, "message": "Registration message broadcast to all followers"}


@router.get("/profile/{user_id}", response_model=LineProfileResponse)
async def user_profile(user_id: str, messaging=Depends(get_messaging)):
    profile = await messaging.get_profile(user_id)
    return LineProfileResponse(
        user_id=profile.user_id,
        display_name=profile.display_name,
        picture_url=profile.picture_url,
        status_message=profile.status_message,
    )


@router.get("/bot-info")
async def bot_info(messaging=Depends(get_messaging)):
    return await messaging.get_bot_info()
