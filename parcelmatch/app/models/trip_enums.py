"""
Trip-related enumerations.
"""

import enum


class TripStatus(str, enum.Enum):
    """Trip status enumeration."""
    SCHEDULED = "scheduled"  # Published by courier, open for matching
    IN_PROGRESS = "in_progress"  # Courier is on the road, still open for matching
    COMPLETED = "completed"  # Route finished
    CANCELLED = "cancelled"  # Trip withdrawn


# Trips that can still receive candidate matches
MATCHABLE_TRIP_STATUSES = (TripStatus.SCHEDULED, TripStatus.IN_PROGRESS)
