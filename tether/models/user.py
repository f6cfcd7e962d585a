from sqlalchemy import Column, Integer, String, Boolean, ForeignKey
from sqlalchemy.orm import relationship

from tether.db.base import Base, UTCDateTime, utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    notification_channels = relationship("NotificationChannel", back_populates="user", cascade="all, delete-orphan")
    vault_memberships = relationship("VaultMembership", back_populates="user", cascade="all, delete-orphan")


class NotificationChannel(Base):
    """A delivery destination owned by a user (email address, push token, webhook URL)."""
    __tablename__ = "user_notification_channels"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String, nullable=False)  # email, push, webhook, ntfy, gotify, ...
    label = Column(String, nullable=True)
    content = Column(String, nullable=False)  # destination address for the transport
    active = Column(Boolean, nullable=False, default=False)
    fails = Column(Integer, nullable=False, default=0)
    verified_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user = relationship("User", back_populates="notification_channels")
