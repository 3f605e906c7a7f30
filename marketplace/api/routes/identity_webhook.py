import json
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from marketplace.core import config
from marketplace.core.auth_dependency import get_db
from marketplace.core.errors import BadRequestError
from marketplace.core.rate_limit import rate_limit
from marketplace.core.webhook_signature import WebhookSignatureError, verify_webhook
from marketplace.services import user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


# ✅ IDENTITY PROVIDER EVENTS (user.created / user.updated / user.deleted)
@router.post("/identity", dependencies=[Depends(rate_limit(max_requests=300))])
async def identity_webhook(request: Request, db: Session = Depends(get_db)):
    payload = await request.body()

    try:
        verify_webhook(payload, request.headers, config.IDENTITY_WEBHOOK_SECRET)
    except WebhookSignatureError as e:
        logger.warning(f"Identity webhook rejected: {e}")
        raise BadRequestError(f"Webhook verification failed: {e}")

    try:
        event = json.loads(payload)
    except ValueError:
        raise BadRequestError("Invalid webhook payload")

    return user_service.handle_identity_event(db, event)
