import uuid

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey
from sqlalchemy.orm import relationship

from tether.db.base import Base, UTCDateTime, utcnow


class Contact(Base):
    __tablename__ = "contacts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    vault_id = Column(String(36), ForeignKey("vaults.id", ondelete="CASCADE"), nullable=False, index=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    vault = relationship("Vault", back_populates="contacts")
    important_dates = relationship("ImportantDate", back_populates="contact", cascade="all, delete-orphan")


class ImportantDateType(Base):
    """Vault-level label for a kind of important date (Birthday, Anniversary, ...)."""
    __tablename__ = "contact_important_date_types"

    id = Column(Integer, primary_key=True, index=True)
    vault_id = Column(String(36), ForeignKey("vaults.id", ondelete="CASCADE"), nullable=False, index=True)
    label = Column(String, nullable=False)
    internal_type = Column(String, nullable=True)


class ImportantDate(Base):
    __tablename__ = "contact_important_dates"

    id = Column(Integer, primary_key=True, index=True)
    contact_id = Column(String(36), ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False, index=True)
    contact_important_date_type_id = Column(
        Integer, ForeignKey("contact_important_date_types.id", ondelete="SET NULL"), nullable=True
    )
    label = Column(String, nullable=False)
    day = Column(Integer, nullable=True)
    month = Column(Integer, nullable=True)
    year = Column(Integer, nullable=True)
    calendar_type = Column(String, nullable=False, default="gregorian")
    original_day = Column(Integer, nullable=True)
    original_month = Column(Integer, nullable=True)
    original_year = Column(Integer, nullable=True)
    remind_me = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    contact = relationship("Contact", back_populates="important_dates")
    date_type = relationship("ImportantDateType")
