"""
Payment gateway feed.

The gateway posts normalized paid/refunded events here, authenticated by a
shared secret header.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from parcelmatch.app.db.session import get_db
from parcelmatch.app.core.dependencies import verify_payment_webhook
from parcelmatch.app.domain.status.payments import PaymentEvent, apply_payment_event
from parcelmatch.app.schemas.match import MatchResponse
from parcelmatch.app.schemas.payment import PaymentEventResult

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/events", response_model=PaymentEventResult, dependencies=[Depends(verify_payment_webhook)])
async def receive_payment_event(
    event: PaymentEvent,
    db: AsyncSession = Depends(get_db)
):
    """Apply a gateway event. Unknown event types are acknowledged and ignored."""
    match = await apply_payment_event(db, event)
    if match is None:
        return PaymentEventResult(applied=False)
    return PaymentEventResult(applied=True, match=MatchResponse.model_validate(match))
