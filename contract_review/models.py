"""SQLAlchemy models for the contract review service."""
import uuid

from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from contract_review.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Organization(Base):
    """Tenant that owns users and contracts."""
    __tablename__ = "organizations"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    users = relationship("User", back_populates="organization")


class User(Base):
    """A member of an organization."""
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, default=_uuid)
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    email = Column(String(320), nullable=False, unique=True)
    name = Column(String(255))
    role = Column(String(20), nullable=False, default="member")  # 'admin' or 'member'
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    organization = relationship("Organization", back_populates="users")


class Contract(Base):
    """Model for an uploaded (or generated) contract."""
    __tablename__ = "contracts"

    id = Column(String(36), primary_key=True, default=_uuid)
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    uploaded_by = Column(String(64), ForeignKey("users.id"), nullable=False)

    # Original upload; never touched by versioning
    file_name = Column(String(500), nullable=False)
    file_path = Column(String(1000), nullable=False)
    file_size = Column(Integer, nullable=False)
    file_type = Column(String(100), default="application/pdf")

    contract_title = Column(String(500))
    contract_type = Column(String(100))
    counterparty = Column(String(255))
    our_position = Column(String(20))  # 'party_a' or 'party_b'
    status = Column(String(20), nullable=False, default="analyzing", index=True)
    current_version = Column(Integer, nullable=False, default=0)
    edited_content = Column(Text)
    expiry_date = Column(Date)
    tags = Column(JSON, default=list)
    folder_id = Column(String(36))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    versions = relationship(
        "ContractVersion",
        back_populates="contract",
        cascade="all, delete-orphan",
        order_by="desc(ContractVersion.version_number)",
    )
    review = relationship(
        "ContractReview",
        back_populates="contract",
        cascade="all, delete-orphan",
        uselist=False,
    )


class ContractVersion(Base):
    """Immutable snapshot of a contract's edited content."""
    __tablename__ = "contract_versions"
    __table_args__ = (
        UniqueConstraint("contract_id", "version_number", name="uq_contract_version_number"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    contract_id = Column(
        String(36), ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    version_number = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    created_by = Column(String(64), nullable=False)
    changes_summary = Column(String(500))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    contract = relationship("Contract", back_populates="versions")


class ContractReview(Base):
    """The single current AI risk assessment of a contract."""
    __tablename__ = "contract_reviews"

    id = Column(String(36), primary_key=True, default=_uuid)
    contract_id = Column(
        String(36), ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    risk_level = Column(String(20), nullable=False)  # 'high', 'medium', 'low'
    overall_score = Column(Integer, nullable=False)
    summary = Column(Text)
    checklist = Column(JSON)  # List of {item, checked, note}
    ai_model = Column(String(100))
    analysis_duration = Column(Float)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    contract = relationship("Contract", back_populates="review")
    risk_items = relationship(
        "RiskItem",
        back_populates="review",
        cascade="all, delete-orphan",
        order_by="RiskItem.position",
    )


class RiskItem(Base):
    """One finding within a review."""
    __tablename__ = "risk_items"

    id = Column(String(36), primary_key=True, default=_uuid)
    review_id = Column(
        String(36), ForeignKey("contract_reviews.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = Column(Integer, nullable=False, default=0)
    risk_type = Column(String(100), nullable=False)
    risk_level = Column(String(20), nullable=False)
    section_title = Column(String(500))
    original_text = Column(Text)
    suggested_text = Column(Text)
    reason = Column(Text)
    legal_basis = Column(String(500))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    review = relationship("ContractReview", back_populates="risk_items")


class AuditLog(Base):
    """Who did what to which resource."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(64), nullable=False)
    action = Column(String(50), nullable=False)
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(String(64))
    ip_address = Column(String(64))
    user_agent = Column(String(500))
    audit_metadata = Column("metadata", JSON)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
