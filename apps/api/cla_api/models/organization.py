"""Organization, CLA archive and bypass models."""

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from cla_api.db.base import Base


class Organization(Base):
    """An installed GitHub account (organization or personal)."""

    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, index=True)
    github_org_slug = Column(String(255), unique=True, nullable=False, index=True)
    github_account_type = Column(String(20), default="organization", nullable=False)  # organization, user
    github_account_id = Column(String(64), nullable=True)
    name = Column(String(255), nullable=False)
    avatar_url = Column(String(1024), nullable=True)
    installed_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    admin_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    installation_id = Column(BigInteger, nullable=True)
    cla_text = Column(Text, default="", nullable=False)
    cla_text_sha256 = Column(String(64), nullable=True)  # null iff cla_text is blank

    # Relationships
    admin_user = relationship("User")
    archives = relationship("ClaArchive", back_populates="organization")
    bypass_accounts = relationship("BypassAccount", back_populates="organization")

    @property
    def has_cla(self) -> bool:
        return bool(self.cla_text_sha256) and bool((self.cla_text or "").strip())


class ClaArchive(Base):
    """Immutable snapshot of every CLA text ever published or signed."""

    __tablename__ = "cla_archives"
    __table_args__ = (UniqueConstraint("org_id", "sha256", name="uq_cla_archive_org_sha"),)

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    sha256 = Column(String(64), nullable=False)
    cla_text = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    organization = relationship("Organization", back_populates="archives")


class BypassAccount(Base):
    """Allow-listed PR author who never needs to sign."""

    __tablename__ = "bypass_accounts"
    __table_args__ = (UniqueConstraint("org_id", "github_user_id", name="uq_bypass_org_user"),)

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    github_user_id = Column(String(64), nullable=False)
    github_username = Column(String(255), nullable=False)
    created_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    organization = relationship("Organization", back_populates="bypass_accounts")
