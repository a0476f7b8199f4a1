"""ElevenLabs webhook handlers"""

import hashlib
import hmac
import json
import time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from callinsight.config import settings
from callinsight.database import get_db
from callinsight.errors import InvalidPayload
from callinsight.ingestion.coordinator import IngestionCoordinator, get_ingestion_coordinator

router = APIRouter()
logger = structlog.get_logger()

SIGNATURE_HEADER = "elevenlabs-signature"


def verify_signature(
    body: bytes,
    header: Optional[str],
    secret: str,
    tolerance_seconds: int = 1800,
    now: Optional[float] = None,
) -> bool:
    """
    Check a ``t=<timestamp>,v0=<hex digest>`` signature header.

    The digest is HMAC-SHA256 over ``"<timestamp>.<raw body>"``. Verification
    is skipped when no secret is configured (local development).
    """
    if not secret:
        return True
    if not header:
        return False

    parts = dict(item.split("=", 1) for item in header.split(",") if "=" in item)
    timestamp = parts.get("t", "").strip()
    signature = parts.get("v0", "").strip()
    if not timestamp or not signature:
        return False

    try:
        signed_at = int(timestamp)
    except ValueError:
        return False

    current = time.time() if now is None else now
    if abs(current - signed_at) > tolerance_seconds:
        return False

    digest = hmac.new(
        secret.encode(),
        timestamp.encode() + b"." + body,
        hashlib.sha256,
    ).hexdigest()
    return hmac.compare_digest(digest, signature)


@router.post("/{tenant_id}")
async def handle_post_call_webhook(
    tenant_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    coordinator: IngestionCoordinator = Depends(get_ingestion_coordinator),
):
    """
    Handle a post-call event from ElevenLabs.
    Responds 200 only once the call is committed.
    """
    body = await request.body()

    if not verify_signature(
        body,
        request.headers.get(SIGNATURE_HEADER),
        settings.elevenlabs_webhook_secret,
        settings.webhook_signature_tolerance_seconds,
    ):
        logger.warning("Webhook signature verification failed", tenant_id=tenant_id)
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        raise InvalidPayload("Webhook body is not valid JSON")

    result = await coordinator.ingest(db, tenant_id, payload)

    return {
        "status": "ok",
        "call_id": str(result.call_id),
        "call_source": result.call_source,
        "analysis_status": result.analysis_status,
        "stage": result.stage.value,
    }
