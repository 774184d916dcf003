"""
Match and payment enumerations.
"""

import enum


class MatchStatus(str, enum.Enum):
    """Match status enumeration."""
    PENDING = "pending"  # Created by generation, awaiting courier decision
    ACCEPTED = "accepted"  # Courier accepted, parcel is matched to the trip
    REJECTED = "rejected"  # Courier rejected or another match won the parcel


class PaymentStatus(str, enum.Enum):
    """Payment status, driven only by payment gateway events."""
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"


# Matches that block creating another row for the same (parcel, trip) pair
OPEN_MATCH_STATUSES = (MatchStatus.PENDING, MatchStatus.ACCEPTED)
