import base64
import binascii
import logging
import re

from fastapi import APIRouter, Depends, HTTPException
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from intake.config import settings
from intake.database import get_db
from intake.dependencies import http_error
from intake.exceptions import IntakeError
from intake.routers.documents import result_to_response
from intake.schemas.document import IntakeResponse
from intake.schemas.webhook import MediaWebhookPayload
from intake.services import intake_service
from intake.services.intake_service import IntakeContext

logger = logging.getLogger(__name__)

CHANNEL_PATTERN = re.compile(r"^[a-z][a-z0-9_-]{1,31}$")

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/{channel}/media", response_model=IntakeResponse, status_code=201)
async def receive_media(channel: str, payload: MediaWebhookPayload, db: Session = Depends(get_db)):
    """Media forwarded by a messaging channel; the sender becomes the uploader."""
    if not CHANNEL_PATTERN.match(channel):
        raise HTTPException(status_code=404, detail="Unknown channel")
    try:
        content = base64.b64decode(payload.content_base64, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="content_base64 is not valid base64")
    if len(content) > settings.max_upload_bytes:
        raise HTTPException(status_code=413, detail=f"File too large (max {settings.max_upload_bytes} bytes)")

    context = IntakeContext(
        uploaded_by=f"{channel}:{payload.sender}",
        channel=channel,
        shipment_id=payload.shipment_id,
        caption=payload.caption,
    )
    try:
        result = await run_in_threadpool(
            intake_service.intake, db, content, payload.file_name, payload.mime_type, context,
        )
    except IntakeError as exc:
        logger.info("Rejected %s media from %s: %s", channel, payload.sender, exc)
        raise http_error(exc)
    return result_to_response(result)
