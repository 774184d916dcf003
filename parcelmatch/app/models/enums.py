"""
User roles enumeration.

Defines the role types for the parcel matching platform.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        SENDER: Creates parcels (delivery requests)
        COURIER: Publishes trips and carries parcels
        ADMIN: Platform operator, may act on any parcel or trip
    """
    SENDER = "sender"
    COURIER = "courier"
    ADMIN = "admin"
