"""
Tenant Domain Model

One row per tenant that has (or had) a custom storefront hostname. Holds the
configuration the tenant chose plus the state-machine fields driven by the
reconciliation tasks in app/tasks/domain_tasks.py.
"""
import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Integer, ForeignKey, Text, Uuid, func
from sqlalchemy.orm import relationship
from app.db.base_class import Base
from app.services.subscription import get_plan_feature


class HostType:
    PLATFORM_SUBDOMAIN = "platform_subdomain"
    CUSTOM_DOMAIN = "custom_domain"


class CanonicalPreference:
    APEX = "apex"
    WWW = "www"


class MonitoringStatus:
    INACTIVE = "inactive"
    MONITORING = "monitoring"
    ACTIVE = "active"
    FAILED = "failed"

    ALL = (INACTIVE, MONITORING, ACTIVE, FAILED)


class TenantDomain(Base):
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    tenant_id = Column(Uuid(as_uuid=True), ForeignKey("tenant.id"), nullable=False, unique=True, index=True)

    # Tenant configuration
    hostname = Column(String(255), nullable=True, index=True)      # without scheme
    canonical_preference = Column(String(16), default=CanonicalPreference.APEX)
    host_type = Column(String(32), default=HostType.PLATFORM_SUBDOMAIN, nullable=False)

    # State machine
    monitoring_status = Column(String(16), default=MonitoringStatus.INACTIVE, nullable=False, index=True)
    monitoring_enabled = Column(Boolean, default=False, nullable=False)
    check_attempts = Column(Integer, default=0, nullable=False)
    last_checked_at = Column(DateTime(timezone=True), nullable=True)

    # Provider bookkeeping
    provider_domain_added = Column(Boolean, default=False, nullable=False)
    cert_retry_started_at = Column(DateTime(timezone=True), nullable=True)  # escalation for current session
    setup_error = Column(Text, nullable=True)                               # last terminal setup failure
    activated_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    tenant = relationship("Tenant", back_populates="domain")

    @property
    def tier_eligible(self) -> bool:
        """Plan entitlement, evaluated against the tenant row as currently loaded."""
        tenant = self.tenant
        if tenant is None or tenant.status != "active":
            return False
        return get_plan_feature(tenant.plan, "custom_domain")

    @property
    def is_custom_domain(self) -> bool:
        return self.host_type == HostType.CUSTOM_DOMAIN and bool(self.hostname)
