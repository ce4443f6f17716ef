"""
Custom-domain reconciliation units

Each public method is the body of one Celery task (app/tasks/domain_tasks.py):

  run_monitoring_check    domains.monitor        5-minute poll, 12-attempt budget
  run_certificate_retry   domains.cert_retry     propagation retries, 5/10/20/30/30/30 min
  run_rebuild_remove      domains.rebuild_remove drop apex + www at the provider
  run_rebuild_readd       domains.rebuild_readd  re-add canonical, re-verify both (staggered)
  run_verification        domains.verify         nudge the provider for one hostname

Every unit re-reads the TenantDomain row and re-checks the guards before doing
anything; parameters captured at schedule time are never trusted. Units talk to
each other only through the scheduler.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.config import settings
from app.crud import crud_tenant_domain
from app.middleware.metrics import (
    DOMAIN_CERT_RETRIES,
    DOMAIN_CHECKS,
    DOMAIN_REBUILDS,
    DOMAIN_TRANSITIONS,
)
from app.models.tenant_domain import MonitoringStatus, TenantDomain
from app.services.domain_names import both_variants, canonical_hostname, hostnames_to_register
from app.services.domain_notifications import DomainNotifier
from app.services.domain_state import (
    REBUILD,
    RESCHEDULE,
    STOP,
    DomainSnapshot,
    NextAction,
    advance_monitoring,
    certificate_retry_allowed,
    certificate_retry_delay,
    is_eligible,
    plan_certificate_retry,
    plan_monitoring_run,
)
from app.services.health_probe import HealthResult
from app.services.provider_client import DomainNotFoundError, ProviderAPIError, ProviderConflictError
from app.services.scheduler import Scheduler, WorkflowUnit

logger = logging.getLogger("storefront.domain")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def schedule_verification(scheduler: Scheduler, hostname: str, stagger: timedelta) -> None:
    """Verification Trigger for apex now and www after `stagger`."""
    for index, host in enumerate(both_variants(hostname)):
        scheduler.enqueue(WorkflowUnit.VERIFY, {"hostname": host}, delay=stagger * index)


def ensure_registered(provider, hostname: str, preference: Optional[str]) -> list:
    """Add the canonical hostname(s) at the provider; an existing domain counts as success."""
    registered = []
    for host in hostnames_to_register(hostname, preference):
        existing = provider.find_domain_by_name(host)
        if existing is not None:
            logger.info("Domain already exists at provider: %s (%s)", host, existing.id)
            registered.append(host)
            continue
        try:
            provider.add_domain(host)
        except ProviderConflictError:
            logger.info("Provider reports %s already exists, treating as registered", host)
        registered.append(host)
    return registered


class DomainWorkflows:
    def __init__(
        self,
        db: Session,
        provider,
        probe,
        scheduler: Scheduler,
        clock: Callable[[], datetime] = utcnow,
        config=settings,
        dns_checker=None,
        notifier: Optional[DomainNotifier] = None,
    ):
        self.db = db
        self.provider = provider
        self.probe = probe
        self.scheduler = scheduler
        self.clock = clock
        self.config = config
        self.dns_checker = dns_checker
        self.notifier = notifier or DomainNotifier()

    # ── configuration ──

    @property
    def poll_interval(self) -> timedelta:
        return timedelta(seconds=self.config.DOMAIN_POLL_INTERVAL_SECONDS)

    @property
    def verify_stagger(self) -> timedelta:
        return timedelta(seconds=self.config.VERIFY_STAGGER_SECONDS)

    # ── helpers ──

    def _load(self, tenant_id: UUID) -> Optional[TenantDomain]:
        record = crud_tenant_domain.get(self.db, tenant_id)
        if record is None:
            logger.info("No domain record for tenant %s, nothing to do", tenant_id)
        return record

    def _check_health(self, hostname: str) -> HealthResult:
        try:
            return self.probe.check_health(hostname)
        except Exception as e:
            logger.warning("Health probe raised for %s: %s", hostname, e)
            return HealthResult(domain=hostname, error=str(e))

    def _provider_verified(self, hostname: str) -> Optional[bool]:
        """True / False from the provider, None when unknown (missing or API failure)."""
        try:
            domain = self.provider.find_domain_by_name(hostname)
        except ProviderAPIError as e:
            logger.warning("Provider status lookup failed for %s: %s", hostname, e)
            return None
        if domain is None:
            logger.info("Canonical domain %s not found at provider", hostname)
            return None
        return domain.verified

    # ── Verification Trigger ──

    def run_verification(self, hostname: str) -> str:
        domain = self.provider.find_domain_by_name(hostname)
        if domain is None:
            logger.info("Verification skipped, %s not present at provider", hostname)
            return "not_found"
        if domain.verified:
            logger.debug("Verification skipped, %s already verified", hostname)
            return "already_verified"

        try:
            result = self.provider.verify_domain(domain.id)
        except DomainNotFoundError:
            logger.info("Domain %s disappeared before verification", hostname)
            return "not_found"

        if result.verified:
            logger.info("Domain verified at provider: %s", hostname)
        elif result.queued:
            logger.info("Verification queued at provider: %s", hostname)
        else:
            logger.warning("Provider rejected verification for %s", hostname)
        return result.outcome

    # ── Monitoring Loop ──

    def run_monitoring_check(self, tenant_id: UUID) -> NextAction:
        record = self._load(tenant_id)
        if record is None:
            return NextAction.stop("not found")

        now = self.clock()
        snapshot = DomainSnapshot.from_record(record)
        action = plan_monitoring_run(snapshot, now, self.poll_interval)

        if action.kind == STOP:
            logger.debug("Monitoring stopped for tenant %s: %s", tenant_id, action.reason)
            return action
        if action.kind == RESCHEDULE:
            logger.debug("Tenant %s not due for check, waiting %s", tenant_id, action.delay)
            self._reschedule_monitor(tenant_id, action.delay)
            return action

        canonical = canonical_hostname(record.hostname, record.canonical_preference)
        try:
            provider_verified = self._provider_verified(canonical)
            health = self._check_health(canonical)
            healthy = bool(health.healthy and health.ssl_ready)
            DOMAIN_CHECKS.labels(outcome="healthy" if healthy else "unhealthy").inc()

            new_snapshot, action = advance_monitoring(
                snapshot,
                now,
                healthy,
                self.config.DOMAIN_MAX_CHECK_ATTEMPTS,
                self.poll_interval,
            )
            crud_tenant_domain.apply_snapshot(self.db, db_obj=record, snapshot=new_snapshot, now=now)
        except Exception as e:
            # The attempt is not counted; the next poll retries it
            self.db.rollback()
            DOMAIN_CHECKS.labels(outcome="error").inc()
            logger.error("Monitoring check for %s failed, next poll in %s: %s", canonical, self.poll_interval, e)
            self._reschedule_monitor(tenant_id, self.poll_interval)
            return NextAction.reschedule(self.poll_interval, "check failed")

        if new_snapshot.monitoring_status == MonitoringStatus.ACTIVE:
            DOMAIN_TRANSITIONS.labels(status=MonitoringStatus.ACTIVE).inc()
            logger.info("Domain live: %s (attempt %d)", canonical, new_snapshot.check_attempts)
            self._notify(self.notifier.domain_activated, record, now)
            return action
        if new_snapshot.monitoring_status == MonitoringStatus.FAILED:
            DOMAIN_TRANSITIONS.labels(status=MonitoringStatus.FAILED).inc()
            logger.warning(
                "Domain verification timed out: %s after %d checks",
                canonical, new_snapshot.check_attempts,
            )
            self._notify(self.notifier.domain_timed_out, record, now)
            return action

        logger.info(
            "Domain %s not ready (attempt %d/%d, provider_verified=%s, ssl_ready=%s)",
            canonical, new_snapshot.check_attempts, self.config.DOMAIN_MAX_CHECK_ATTEMPTS,
            provider_verified, health.ssl_ready,
        )
        self._log_dns_targets(record)
        self._after_unhealthy_check(record, provider_verified, now)
        self._reschedule_monitor(tenant_id, action.delay)
        return action

    def _notify(self, send: Callable[[TenantDomain, datetime], object], record: TenantDomain, now: datetime) -> None:
        try:
            send(record, now)
        except Exception as e:
            logger.error("Failed to send domain notification for %s: %s", record.hostname, e)

    def _log_dns_targets(self, record: TenantDomain) -> None:
        if self.dns_checker is None:
            return
        try:
            report = self.dns_checker.check_both(record.hostname)
        except Exception as e:
            logger.warning("DNS target check failed for %s: %s", record.hostname, e)
            return
        if report.verified:
            logger.info("DNS for %s points to the platform, waiting on the certificate", record.hostname)
        else:
            logger.warning(
                "DNS for %s is misconfigured: %s (%s)",
                record.hostname, report.message, "; ".join(report.next_steps),
            )

    def _after_unhealthy_check(self, record: TenantDomain, provider_verified: Optional[bool], now: datetime) -> None:
        try:
            if not provider_verified:
                schedule_verification(self.scheduler, record.hostname, self.verify_stagger)
            elif record.cert_retry_started_at is None:
                # Certificate issued but the edge still fails the handshake
                escalation = NextAction.escalate(WorkflowUnit.CERT_RETRY.value, "certificate not serving")
                logger.info("Certificate issued but not serving for %s, starting propagation retries", record.hostname)
                self.scheduler.enqueue(
                    WorkflowUnit(escalation.unit),
                    {"tenant_id": str(record.tenant_id), "retry_count": 0},
                    delay=escalation.delay,
                )
                crud_tenant_domain.mark_cert_retry_started(self.db, db_obj=record, now=now)
        except Exception as e:
            logger.error("Failed to schedule follow-up work for %s: %s", record.hostname, e)

    def _reschedule_monitor(self, tenant_id: UUID, delay: Optional[timedelta]) -> None:
        self.scheduler.enqueue(WorkflowUnit.MONITOR, {"tenant_id": str(tenant_id)}, delay=delay)

    # ── Certificate-Propagation Retry Loop ──

    def run_certificate_retry(self, tenant_id: UUID, retry_count: int = 0) -> NextAction:
        record = self._load(tenant_id)
        if record is None:
            return NextAction.stop("not found")

        logger.info("Certificate retry attempt %d for tenant %s (%s)", retry_count, tenant_id, record.hostname)
        max_attempts = self.config.CERT_RETRY_MAX_ATTEMPTS
        if retry_count >= max_attempts:
            DOMAIN_CERT_RETRIES.labels(action="abandoned").inc()
            logger.warning(
                "Max certificate retries exceeded for %s, giving up (manual intervention required)",
                record.hostname,
            )
            return NextAction.stop("abandoned")

        snapshot = DomainSnapshot.from_record(record)
        if not is_eligible(snapshot) or not certificate_retry_allowed(snapshot.monitoring_status):
            logger.debug("Stopping certificate retries for tenant %s", tenant_id)
            return NextAction.stop("ineligible")

        canonical = canonical_hostname(record.hostname, record.canonical_preference)
        health = self._check_health(canonical)
        if health.healthy and health.ssl_ready:
            DOMAIN_CERT_RETRIES.labels(action="resolved").inc()
            logger.info("SSL now working for %s, stopping retries", canonical)
            return NextAction.stop("resolved")

        step = plan_certificate_retry(retry_count, self.config.CERT_RETRY_REBUILD_THRESHOLD)
        DOMAIN_CERT_RETRIES.labels(action=step).inc()
        try:
            if step == REBUILD:
                logger.info("Re-verification has not helped after %d retries, rebuilding %s", retry_count, record.hostname)
                self.scheduler.enqueue(WorkflowUnit.REBUILD_REMOVE, {"tenant_id": str(tenant_id)})
            else:
                schedule_verification(self.scheduler, record.hostname, self.verify_stagger)
        except Exception as e:
            logger.error("Failed to schedule %s for %s: %s", step, record.hostname, e)

        delay = certificate_retry_delay(retry_count, self.config.CERT_RETRY_DELAYS_MINUTES)
        logger.info("Scheduling certificate retry %d in %s for %s", retry_count + 1, delay, record.hostname)
        self.scheduler.enqueue(
            WorkflowUnit.CERT_RETRY,
            {"tenant_id": str(tenant_id), "retry_count": retry_count + 1},
            delay=delay,
        )
        return NextAction.reschedule(delay, step)

    # ── Rebuild Flow ──

    def _rebuild_allowed(self, record: TenantDomain) -> bool:
        snapshot = DomainSnapshot.from_record(record)
        if is_eligible(snapshot) and certificate_retry_allowed(snapshot.monitoring_status):
            return True
        logger.debug("Rebuild skipped for tenant %s, record no longer eligible", record.tenant_id)
        return False

    def run_rebuild_remove(self, tenant_id: UUID) -> NextAction:
        record = self._load(tenant_id)
        if record is None or not self._rebuild_allowed(record):
            return NextAction.stop("ineligible")

        logger.info("Starting domain rebuild for %s", record.hostname)
        for host in both_variants(record.hostname):
            domain = self.provider.find_domain_by_name(host)
            if domain is None:
                logger.info("Domain not present at provider (skipped): %s", host)
                continue
            self.provider.remove_domain(domain.id)
            logger.info("Removed domain at provider: %s", host)

        crud_tenant_domain.mark_provider_domain_added(self.db, db_obj=record, added=False)
        DOMAIN_REBUILDS.inc()

        cooldown = timedelta(seconds=self.config.REBUILD_COOLDOWN_SECONDS)
        self.scheduler.enqueue(WorkflowUnit.REBUILD_READD, {"tenant_id": str(tenant_id)}, delay=cooldown)
        return NextAction.reschedule(cooldown, "cooldown")

    def run_rebuild_readd(self, tenant_id: UUID) -> NextAction:
        record = self._load(tenant_id)
        if record is None or not self._rebuild_allowed(record):
            return NextAction.stop("ineligible")

        added = ensure_registered(self.provider, record.hostname, record.canonical_preference)
        crud_tenant_domain.mark_provider_domain_added(self.db, db_obj=record, added=True)
        logger.info("Re-added %s at provider, triggering verification", ", ".join(added))

        schedule_verification(self.scheduler, record.hostname, self.verify_stagger)
        logger.info("Domain rebuild completed for %s", record.hostname)
        return NextAction.stop("rebuilt")
