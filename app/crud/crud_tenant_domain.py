from datetime import datetime
from typing import Optional
from uuid import UUID
from sqlalchemy.orm import Session
from app.models.tenant import Tenant
from app.models.tenant_domain import TenantDomain, HostType, MonitoringStatus, CanonicalPreference
from app.services.domain_names import normalize_hostname
from app.services.domain_state import DomainSnapshot


def get(db: Session, tenant_id: UUID) -> Optional[TenantDomain]:
    return db.query(TenantDomain).filter(TenantDomain.tenant_id == tenant_id).first()


def get_by_hostname(db: Session, hostname: str) -> Optional[TenantDomain]:
    return db.query(TenantDomain).filter(TenantDomain.hostname == normalize_hostname(hostname)).first()


def get_tenant(db: Session, tenant_id: UUID) -> Optional[Tenant]:
    return db.query(Tenant).filter(Tenant.id == tenant_id).first()


def _save(db: Session, db_obj: TenantDomain) -> TenantDomain:
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj


def switch_to_custom_domain(
    db: Session,
    *,
    tenant: Tenant,
    hostname: str,
    canonical_preference: str = CanonicalPreference.APEX,
) -> TenantDomain:
    """Create or update the tenant's record for a new custom hostname (state → inactive)."""
    host = normalize_hostname(hostname)
    db_obj = get(db, tenant.id)
    if db_obj is None:
        db_obj = TenantDomain(tenant_id=tenant.id)
        db_obj.tenant = tenant
    elif db_obj.hostname != host:
        db_obj.provider_domain_added = False

    db_obj.hostname = host
    db_obj.canonical_preference = canonical_preference
    db_obj.host_type = HostType.CUSTOM_DOMAIN
    db_obj.monitoring_status = MonitoringStatus.INACTIVE
    db_obj.monitoring_enabled = False
    db_obj.check_attempts = 0
    db_obj.last_checked_at = None
    db_obj.cert_retry_started_at = None
    db_obj.setup_error = None
    db_obj.activated_at = None
    return _save(db, db_obj)


def start_monitoring(db: Session, *, db_obj: TenantDomain) -> TenantDomain:
    """Enter `monitoring`; the attempt budget restarts from zero."""
    db_obj.monitoring_status = MonitoringStatus.MONITORING
    db_obj.monitoring_enabled = True
    db_obj.check_attempts = 0
    db_obj.last_checked_at = None
    db_obj.cert_retry_started_at = None
    db_obj.setup_error = None
    return _save(db, db_obj)


def apply_snapshot(db: Session, *, db_obj: TenantDomain, snapshot: DomainSnapshot, now: datetime) -> TenantDomain:
    """Persist the scalar fields a monitoring step advanced (last writer wins)."""
    if snapshot.monitoring_status == MonitoringStatus.ACTIVE and db_obj.monitoring_status != MonitoringStatus.ACTIVE:
        db_obj.activated_at = now
    db_obj.monitoring_status = snapshot.monitoring_status
    db_obj.check_attempts = snapshot.check_attempts
    db_obj.last_checked_at = snapshot.last_checked_at
    return _save(db, db_obj)


def mark_provider_domain_added(db: Session, *, db_obj: TenantDomain, added: bool = True) -> TenantDomain:
    db_obj.provider_domain_added = added
    return _save(db, db_obj)


def mark_cert_retry_started(db: Session, *, db_obj: TenantDomain, now: datetime) -> TenantDomain:
    db_obj.cert_retry_started_at = now
    return _save(db, db_obj)


def mark_setup_failed(db: Session, *, db_obj: TenantDomain, error: str) -> TenantDomain:
    db_obj.setup_error = error[:1000]
    db_obj.monitoring_enabled = False
    return _save(db, db_obj)


def force_activate(db: Session, *, db_obj: TenantDomain, now: datetime) -> TenantDomain:
    """Admin override; the caller has just seen the canonical hostname pass the health probe."""
    db_obj.monitoring_status = MonitoringStatus.ACTIVE
    db_obj.monitoring_enabled = False
    db_obj.activated_at = now
    return _save(db, db_obj)


def disable(db: Session, *, db_obj: TenantDomain) -> TenantDomain:
    """Stop monitoring but keep the hostname configuration for re-enabling."""
    db_obj.monitoring_status = MonitoringStatus.INACTIVE
    db_obj.monitoring_enabled = False
    return _save(db, db_obj)


def revert_to_subdomain(db: Session, *, db_obj: TenantDomain) -> TenantDomain:
    db_obj.host_type = HostType.PLATFORM_SUBDOMAIN
    db_obj.monitoring_status = MonitoringStatus.INACTIVE
    db_obj.monitoring_enabled = False
    db_obj.check_attempts = 0
    db_obj.last_checked_at = None
    db_obj.cert_retry_started_at = None
    db_obj.provider_domain_added = False
    db_obj.setup_error = None
    db_obj.activated_at = None
    return _save(db, db_obj)
