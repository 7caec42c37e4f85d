"""User and signature models."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from cla_api.db.base import Base


class User(Base):
    """GitHub user known to the bot."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    github_id = Column(String(64), unique=True, nullable=False, index=True)
    github_username = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    avatar_url = Column(String(1024), nullable=True)
    email = Column(String(320), nullable=True)
    role = Column(String(20), default="contributor", nullable=False)  # admin, contributor
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    signatures = relationship("Signature", back_populates="user")


class Signature(Base):
    """One user's consent to one CLA hash. Re-signing adds a row."""

    __tablename__ = "signatures"
    __table_args__ = (
        UniqueConstraint("org_id", "user_id", "cla_sha256", name="uq_signature_org_user_sha"),
    )

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    cla_sha256 = Column(String(64), nullable=False, index=True)
    accepted_sha256 = Column(String(64), nullable=True)
    consent_text_version = Column(String(32), default="v1", nullable=False)
    assented = Column(Boolean, default=True, nullable=False)
    signed_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Evidence captured at signing time
    github_user_id_at_signature = Column(String(64), nullable=True)
    github_username = Column(String(255), nullable=False)
    email_at_signature = Column(String(320), nullable=True)
    name = Column(String(255), nullable=True)
    avatar_url = Column(String(1024), nullable=True)
    ip_hash = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)

    # Relationships
    organization = relationship("Organization")
    user = relationship("User", back_populates="signatures")
