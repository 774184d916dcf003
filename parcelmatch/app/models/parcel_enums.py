"""
Parcel Status Enumeration.
"""

import enum


class ParcelStatus(str, enum.Enum):
    """
    Parcel status enumeration.

    Status flow:
        PENDING → MATCHED (only through match acceptance)
        MATCHED → PICKED_UP → IN_TRANSIT → DELIVERED
        MATCHED, PICKED_UP and IN_TRANSIT can transition to CANCELLED
    """
    PENDING = "pending"
    MATCHED = "matched"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class CapacityClass(str, enum.Enum):
    """Coarse parcel-size / trip-capacity bucket, ordered small < medium < large."""
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"

    @property
    def rank(self) -> int:
        return _CAPACITY_RANK[self]


_CAPACITY_RANK = {
    CapacityClass.SMALL: 1,
    CapacityClass.MEDIUM: 2,
    CapacityClass.LARGE: 3,
}
