import base64
import hashlib
import hmac
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from shared.core import get_logger
from stock_sync.application.schemas import InventoryLevelWebhook, WebhookAck
from stock_sync.application.service import ReconciliationEngine

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

def get_engine(request: Request) -> ReconciliationEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Catalog index not loaded")
    return engine

def verify_hmac(body: bytes, secret: str, signature: Optional[str]) -> bool:
    """Shopify signs the raw body with HMAC-SHA256, base64 encoded."""
    if not signature:
        return False
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return hmac.compare_digest(base64.b64encode(digest).decode("ascii"), signature)

@router.post("/inventory", response_model=WebhookAck)
async def inventory_webhook(request: Request, engine: ReconciliationEngine = Depends(get_engine)):
    body = await request.body()

    secret = request.app.state.settings.SHOPIFY_WEBHOOK_SECRET
    if secret and not verify_hmac(body, secret, request.headers.get("X-Shopify-Hmac-Sha256")):
        logger.warning("Rejected inventory webhook with invalid HMAC signature")
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    try:
        payload = InventoryLevelWebhook.model_validate_json(body)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False, include_input=False))

    try:
        result = await engine.handle_event(payload.to_event())
    except Exception:
        logger.error(
            "Inventory webhook processing failed",
            exc_info=True,
            extra={'extra_fields': {'item_id': str(payload.inventory_item_id), 'location_id': str(payload.location_id)}}
        )
        return JSONResponse(status_code=500, content={"status": "error"})

    return WebhookAck(
        status="ok",
        outcome=result.outcome.value,
        sku=result.sku,
        groups=result.groups,
        sets=[outcome.set_group for outcome in result.set_outcomes if not outcome.skipped],
    )
