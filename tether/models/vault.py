import uuid

from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from tether.db.base import Base, UTCDateTime, utcnow


class Vault(Base):
    __tablename__ = "vaults"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    memberships = relationship("VaultMembership", back_populates="vault", cascade="all, delete-orphan")
    contacts = relationship("Contact", back_populates="vault", cascade="all, delete-orphan")


class VaultMembership(Base):
    """Maps users to the vaults they can see."""
    __tablename__ = "user_vaults"

    id = Column(Integer, primary_key=True, index=True)
    vault_id = Column(String(36), ForeignKey("vaults.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    permission = Column(Integer, nullable=False, default=100)

    vault = relationship("Vault", back_populates="memberships")
    user = relationship("User", back_populates="vault_memberships")

    __table_args__ = (
        UniqueConstraint("vault_id", "user_id", name="uq_user_vaults_vault_user"),
    )
