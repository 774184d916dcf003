"""
Payment event Pydantic schemas.
"""

from pydantic import BaseModel
from typing import Optional
from parcelmatch.app.schemas.match import MatchResponse


class PaymentEventResult(BaseModel):
    """Outcome of a gateway event; match is None when the event type is ignored."""
    applied: bool
    match: Optional[MatchResponse] = None
