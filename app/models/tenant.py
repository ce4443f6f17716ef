import uuid
from sqlalchemy import Column, String, DateTime, Uuid, func
from sqlalchemy.orm import relationship
from app.db.base_class import Base


class Tenant(Base):
    """Storefront tenant as owned by the host platform (read-mostly here)."""
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    name = Column(String, index=True, nullable=False)
    plan = Column(String, default="free")  # free, standard, premium
    status = Column(String, default="active")  # active, suspended
    subdomain = Column(String(63), unique=True, nullable=True)  # <subdomain>.<platform domain>
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    domain = relationship(
        "TenantDomain",
        back_populates="tenant",
        uselist=False,
        cascade="all, delete-orphan",
    )
