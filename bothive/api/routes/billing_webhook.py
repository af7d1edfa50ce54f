from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse

from bothive.core.context import AppContext, get_context

router = APIRouter(prefix="/webhooks", tags=["Billing Webhook"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    context: AppContext = Depends(get_context),
):
    # Signature is computed over the exact bytes Stripe sent
    payload = await request.body()
    outcome = await context.reconciler.handle(payload, stripe_signature)
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)
