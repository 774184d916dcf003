"""
User database model.

Senders own parcels, couriers own trips. The role column is the source of
truth for authorization decisions and is re-read on every status change.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum
from sqlalchemy.sql import func
from parcelmatch.app.db.session import Base
from parcelmatch.app.models.enums import UserRole


class User(Base):
    """
    User model for platform participants.

    Credentials live with the external identity provider; only the profile
    fields needed for matching and notifications are stored here.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    username = Column(String(100), unique=True, index=True, nullable=False)
    full_name = Column(String(200), nullable=True)
    phone_number = Column(String(32), unique=True, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    role = Column(Enum(UserRole), default=UserRole.SENDER, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', role='{self.role.value}')>"
