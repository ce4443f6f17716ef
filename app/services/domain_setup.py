"""
Custom Domain Setup Service

One-shot operations on a tenant's custom hostname:
  - start_setup          register at the provider, enter `monitoring`, start the loop
  - restart_monitoring   manual retry from `inactive` / `failed` (fresh attempt budget)
  - force_activate       admin override to `active`, only once the probe passes
  - disable              stop monitoring, keep configuration
  - release_hostname     drop the provider domains of a hostname being replaced
  - remove_custom_domain drop provider domains and revert to the platform subdomain

Unlike the recurring units, failures here propagate to the caller.
"""
import logging
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from app.config import settings
from app.crud import crud_tenant_domain
from app.middleware.metrics import DOMAIN_TRANSITIONS
from app.models.tenant_domain import MonitoringStatus, TenantDomain
from app.services.domain_names import both_variants, canonical_hostname
from app.services.domain_notifications import DomainNotifier
from app.services.domain_state import (
    TENANT_STATUS_LABELS,
    tenant_facing_status,
    time_remaining_estimate,
)
from app.services.domain_workflows import ensure_registered, schedule_verification, utcnow
from app.services.provider_client import ProviderAPIError
from app.services.scheduler import Scheduler, WorkflowUnit

logger = logging.getLogger("storefront.domain.setup")

# A running monitoring session is never restarted: a second chain would poll alongside it
RESTARTABLE_STATUSES = (MonitoringStatus.INACTIVE, MonitoringStatus.FAILED)


class DomainSetupError(Exception):
    pass


class DomainNotConfiguredError(DomainSetupError):
    pass


class DomainIneligibleError(DomainSetupError):
    pass


class DomainNotServingError(DomainSetupError):
    pass


class DomainSetupService:
    def __init__(
        self,
        db: Session,
        scheduler: Scheduler,
        provider_factory: Optional[Callable[[], Any]] = None,
        clock=utcnow,
        config=settings,
        probe_factory: Optional[Callable[[], Any]] = None,
        dns_checker_factory: Optional[Callable[[], Any]] = None,
        notifier: Optional[DomainNotifier] = None,
    ):
        self.db = db
        self.scheduler = scheduler
        self._provider_factory = provider_factory
        self._provider = None
        self._probe_factory = probe_factory
        self._probe = None
        self._dns_checker_factory = dns_checker_factory
        self.clock = clock
        self.config = config
        self.notifier = notifier or DomainNotifier()

    @property
    def provider(self):
        # Status queries must work without provider credentials
        if self._provider is None:
            if self._provider_factory is None:
                from app.services.provider_client import ProvisioningProviderClient
                self._provider_factory = ProvisioningProviderClient
            self._provider = self._provider_factory()
        return self._provider

    @property
    def probe(self):
        if self._probe is None:
            if self._probe_factory is None:
                from app.services.health_probe import DomainHealthChecker
                self._probe_factory = DomainHealthChecker
            self._probe = self._probe_factory()
        return self._probe

    # ── validation ──

    def _get_record(self, tenant_id: UUID) -> TenantDomain:
        record = crud_tenant_domain.get(self.db, tenant_id)
        if record is None:
            raise DomainNotConfiguredError(f"No custom domain configured for tenant {tenant_id}")
        return record

    def _validate_eligibility(self, record: TenantDomain) -> None:
        if not record.tier_eligible:
            raise DomainIneligibleError("Custom domains are only available on the Premium plan")
        if not record.is_custom_domain:
            raise DomainIneligibleError("Tenant is not configured for custom domain hosting")

    # ── Setup Initiator ──

    def start_setup(self, tenant_id: UUID) -> TenantDomain:
        record = self._get_record(tenant_id)
        self._validate_eligibility(record)

        if record.monitoring_status == MonitoringStatus.ACTIVE:
            logger.info("Custom domain already active for %s, nothing to set up", record.hostname)
            return record
        if record.monitoring_status == MonitoringStatus.MONITORING and record.provider_domain_added:
            logger.info("Setup already completed for %s, monitoring in progress", record.hostname)
            return record

        logger.info(
            "Starting setup for tenant %s (%s, canonical=%s)",
            tenant_id, record.hostname, record.canonical_preference,
        )
        ensure_registered(self.provider, record.hostname, record.canonical_preference)
        crud_tenant_domain.mark_provider_domain_added(self.db, db_obj=record, added=True)

        self._begin_monitoring(record, first_check_delay=self.config.DOMAIN_SETUP_MONITOR_DELAY_SECONDS)
        logger.info("Setup initiated for %s", record.hostname)
        return record

    def record_setup_failure(self, tenant_id: UUID, error: str) -> None:
        record = crud_tenant_domain.get(self.db, tenant_id)
        if record is None:
            return
        crud_tenant_domain.mark_setup_failed(self.db, db_obj=record, error=error)
        logger.error("Custom domain setup failed for %s: %s", record.hostname, error)

    def _begin_monitoring(self, record: TenantDomain, first_check_delay: float) -> None:
        crud_tenant_domain.start_monitoring(self.db, db_obj=record)
        DOMAIN_TRANSITIONS.labels(status=MonitoringStatus.MONITORING).inc()
        schedule_verification(
            self.scheduler, record.hostname, timedelta(seconds=self.config.VERIFY_STAGGER_SECONDS)
        )
        self.scheduler.enqueue(
            WorkflowUnit.MONITOR,
            {"tenant_id": str(record.tenant_id)},
            delay=timedelta(seconds=first_check_delay),
        )

    # ── Manual operations ──

    def can_restart(self, record: TenantDomain) -> bool:
        return (
            record.monitoring_status in RESTARTABLE_STATUSES
            and record.is_custom_domain
            and record.tier_eligible
        )

    def restart_monitoring(self, tenant_id: UUID) -> TenantDomain:
        record = self._get_record(tenant_id)
        self._validate_eligibility(record)
        if record.monitoring_status not in RESTARTABLE_STATUSES:
            raise DomainSetupError(
                f"Domain monitoring can only be restarted from inactive or failed status "
                f"(currently {record.monitoring_status})"
            )

        if not record.provider_domain_added:
            # Never registered (or setup failed): run the full setup again
            return self.start_setup(tenant_id)

        logger.info("Restarting monitoring for %s", record.hostname)
        self._begin_monitoring(record, first_check_delay=0)
        return record

    def force_activate(self, tenant_id: UUID) -> TenantDomain:
        """Skip the remaining attempt budget, but only for a hostname that serves over HTTPS now."""
        record = self._get_record(tenant_id)
        self._validate_eligibility(record)

        canonical = canonical_hostname(record.hostname, record.canonical_preference)
        health = self.probe.check_health(canonical)
        if not (health.healthy and health.ssl_ready):
            reason = health.error or (f"HTTP {health.status_code}" if health.status_code else "health check failed")
            logger.warning("Refusing to force activate %s: %s", canonical, reason)
            raise DomainNotServingError(f"{canonical} is not serving the storefront over HTTPS yet ({reason})")

        now = self.clock()
        logger.info("Force activating domain for %s", record.hostname)
        crud_tenant_domain.force_activate(self.db, db_obj=record, now=now)
        DOMAIN_TRANSITIONS.labels(status=MonitoringStatus.ACTIVE).inc()
        try:
            self.notifier.domain_activated(record, now)
        except Exception as e:
            logger.error("Failed to send domain notification for %s: %s", record.hostname, e)
        return record

    def disable(self, tenant_id: UUID) -> TenantDomain:
        record = self._get_record(tenant_id)
        logger.info("Disabling custom domain for %s", record.hostname)
        crud_tenant_domain.disable(self.db, db_obj=record)
        DOMAIN_TRANSITIONS.labels(status=MonitoringStatus.INACTIVE).inc()
        return record

    def _remove_provider_domains(self, hostname: str) -> Tuple[List[str], List[str]]:
        removed, failed = [], []
        for host in both_variants(hostname):
            try:
                domain = self.provider.find_domain_by_name(host)
                if domain is None:
                    logger.info("Domain not present at provider (skipped): %s", host)
                    continue
                self.provider.remove_domain(domain.id)
                removed.append(host)
            except ProviderAPIError as e:
                failed.append(host)
                logger.warning("Failed to remove %s at provider: %s", host, e)
        return removed, failed

    def release_hostname(self, record: TenantDomain, new_hostname: str) -> Dict[str, Any]:
        """Remove the apex / www domains of the hostname `new_hostname` replaces."""
        old = record.hostname
        if not (record.is_custom_domain and record.provider_domain_added and old) or old == new_hostname:
            return {"hostname": old, "removed": [], "failed": []}

        logger.info("Hostname for tenant %s changing %s → %s, releasing provider domains", record.tenant_id, old, new_hostname)
        removed, failed = self._remove_provider_domains(old)
        crud_tenant_domain.mark_provider_domain_added(self.db, db_obj=record, added=False)
        return {"hostname": old, "removed": removed, "failed": failed}

    def remove_custom_domain(self, tenant_id: UUID) -> Dict[str, Any]:
        record = self._get_record(tenant_id)
        hostname = record.hostname
        removed, failed = [], []
        if record.provider_domain_added and hostname:
            removed, failed = self._remove_provider_domains(hostname)

        crud_tenant_domain.revert_to_subdomain(self.db, db_obj=record)
        DOMAIN_TRANSITIONS.labels(status=MonitoringStatus.INACTIVE).inc()
        logger.info("Tenant %s reverted to platform subdomain (was %s)", tenant_id, hostname)
        return {"hostname": hostname, "removed": removed, "failed": failed}

    # ── Status ──

    def dns_report(self, record: TenantDomain) -> Optional[Dict[str, Any]]:
        """Live apex / www DNS state, so a tenant can tell wrong DNS from a pending certificate."""
        if not (record.is_custom_domain and record.hostname):
            return None
        if self._dns_checker_factory is None:
            from app.services.dns_checker import DnsTargetChecker
            self._dns_checker_factory = DnsTargetChecker
        return self._dns_checker_factory().check_both(record.hostname).as_dict()

    def status(self, record: TenantDomain, include_dns: bool = False) -> Dict[str, Any]:
        poll_interval = timedelta(seconds=self.config.DOMAIN_POLL_INTERVAL_SECONDS)
        tenant_status = tenant_facing_status(record.host_type, record.monitoring_status, record.setup_error)
        canonical = (
            canonical_hostname(record.hostname, record.canonical_preference) if record.hostname else None
        )
        return {
            "tenant_id": str(record.tenant_id),
            "hostname": record.hostname,
            "canonical_hostname": canonical,
            "canonical_preference": record.canonical_preference,
            "host_type": record.host_type,
            "monitoring_status": record.monitoring_status,
            "monitoring_enabled": bool(record.monitoring_enabled),
            "tenant_status": tenant_status,
            "tenant_status_label": TENANT_STATUS_LABELS[tenant_status],
            "attempts": record.check_attempts or 0,
            "max_attempts": self.config.DOMAIN_MAX_CHECK_ATTEMPTS,
            "time_remaining": time_remaining_estimate(
                record.monitoring_status,
                record.check_attempts or 0,
                self.config.DOMAIN_MAX_CHECK_ATTEMPTS,
                poll_interval,
            ),
            "last_checked_at": record.last_checked_at,
            "activated_at": record.activated_at,
            "can_restart": self.can_restart(record),
            "dns": self.dns_report(record) if include_dns else None,
        }
