"""
Custom-domain state machine

Pure functions over a snapshot of a TenantDomain row. Nothing here touches the
database, the provider or the scheduler; the workflow units in
app/services/domain_workflows.py read a snapshot, ask these functions what to
do, then apply the answer.

    inactive ──setup──▶ monitoring ──healthy──▶ active
                            │
                            └──budget spent──▶ failed
"""
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence, Tuple

from app.models.tenant_domain import HostType, MonitoringStatus

STOP = "stop"
RESCHEDULE = "reschedule"
ESCALATE = "escalate"
CHECK = "check"

VERIFY = "verify"
REBUILD = "rebuild"


@dataclass(frozen=True)
class DomainSnapshot:
    host_type: str
    tier_eligible: bool
    monitoring_enabled: bool
    monitoring_status: str
    check_attempts: int = 0
    last_checked_at: Optional[datetime] = None
    hostname: Optional[str] = None

    @classmethod
    def from_record(cls, record) -> "DomainSnapshot":
        return cls(
            host_type=record.host_type,
            tier_eligible=record.tier_eligible,
            monitoring_enabled=bool(record.monitoring_enabled),
            monitoring_status=record.monitoring_status,
            check_attempts=record.check_attempts or 0,
            last_checked_at=as_utc(record.last_checked_at),
            hostname=record.hostname,
        )


@dataclass(frozen=True)
class NextAction:
    kind: str
    delay: Optional[timedelta] = None
    unit: Optional[str] = None
    reason: str = ""

    @classmethod
    def stop(cls, reason: str = "") -> "NextAction":
        return cls(STOP, reason=reason)

    @classmethod
    def reschedule(cls, delay: timedelta, reason: str = "") -> "NextAction":
        return cls(RESCHEDULE, delay=delay, reason=reason)

    @classmethod
    def escalate(cls, unit: str, reason: str = "") -> "NextAction":
        return cls(ESCALATE, delay=timedelta(0), unit=unit, reason=reason)

    @classmethod
    def check(cls) -> "NextAction":
        return cls(CHECK)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # sqlite hands back naive datetimes even for timezone=True columns
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_eligible(snapshot: DomainSnapshot) -> bool:
    """host_type == custom_domain ∧ tier_eligible ∧ monitoring_enabled."""
    return (
        snapshot.host_type == HostType.CUSTOM_DOMAIN
        and bool(snapshot.hostname)
        and snapshot.tier_eligible
        and snapshot.monitoring_enabled
    )


def plan_monitoring_run(
    snapshot: DomainSnapshot,
    now: datetime,
    poll_interval: timedelta,
) -> NextAction:
    """Decide whether a monitoring invocation should stop, wait, or check now."""
    if not is_eligible(snapshot):
        return NextAction.stop("ineligible")
    if snapshot.monitoring_status != MonitoringStatus.MONITORING:
        return NextAction.stop(f"status is {snapshot.monitoring_status}")

    last = as_utc(snapshot.last_checked_at)
    if last is not None:
        elapsed = as_utc(now) - last
        if elapsed < poll_interval:
            return NextAction.reschedule(poll_interval - elapsed, "not due")
    return NextAction.check()


def advance_monitoring(
    snapshot: DomainSnapshot,
    now: datetime,
    healthy: bool,
    max_attempts: int,
    poll_interval: timedelta,
) -> Tuple[DomainSnapshot, NextAction]:
    """Apply one completed check to the snapshot and pick the next action."""
    checked = replace(
        snapshot,
        check_attempts=snapshot.check_attempts + 1,
        last_checked_at=as_utc(now),
    )
    if healthy:
        return replace(checked, monitoring_status=MonitoringStatus.ACTIVE), NextAction.stop("active")
    if checked.check_attempts >= max_attempts:
        return replace(checked, monitoring_status=MonitoringStatus.FAILED), NextAction.stop("budget exhausted")
    return checked, NextAction.reschedule(poll_interval, "unhealthy")


def certificate_retry_delay(retry_count: int, delays_minutes: Sequence[int] = (5, 10, 20, 30, 30, 30)) -> timedelta:
    """Progressive wait before the next propagation retry; the last entry repeats."""
    index = min(max(retry_count, 0), len(delays_minutes) - 1)
    return timedelta(minutes=delays_minutes[index])


def certificate_retry_schedule(max_attempts: int, delays_minutes: Sequence[int] = (5, 10, 20, 30, 30, 30)) -> List[timedelta]:
    return [certificate_retry_delay(n, delays_minutes) for n in range(max_attempts)]


def plan_certificate_retry(retry_count: int, rebuild_threshold: int = 3) -> str:
    """Plain re-verification for early attempts, tear down and rebuild after that."""
    return REBUILD if retry_count >= rebuild_threshold else VERIFY


def certificate_retry_allowed(status: str) -> bool:
    return status in (MonitoringStatus.MONITORING, MonitoringStatus.ACTIVE)


# ── Tenant-facing status ──

TENANT_STATUS_LABELS = {
    "not_configured": "Using platform subdomain",
    "pending": "Setting up",
    "setup_failed": "Setup failed, contact support or retry",
    "verifying": "Verifying",
    "live": "Live",
    "needs_attention": "Needs attention, contact support or retry",
}


def tenant_facing_status(host_type: str, monitoring_status: str, setup_error: Optional[str] = None) -> str:
    if host_type != HostType.CUSTOM_DOMAIN:
        return "not_configured"
    if monitoring_status == MonitoringStatus.MONITORING:
        return "verifying"
    if monitoring_status == MonitoringStatus.ACTIVE:
        return "live"
    if monitoring_status == MonitoringStatus.FAILED:
        return "needs_attention"
    if setup_error:
        return "setup_failed"
    return "pending"


def time_remaining_estimate(
    monitoring_status: str,
    check_attempts: int,
    max_attempts: int,
    poll_interval: timedelta,
) -> str:
    if monitoring_status != MonitoringStatus.MONITORING:
        return "Complete"

    minutes_left = max(max_attempts - check_attempts, 0) * int(poll_interval.total_seconds() // 60)
    if minutes_left <= 0:
        return "Timeout"
    if minutes_left < 60:
        return f"~{minutes_left} minutes"
    hours, minutes = divmod(minutes_left, 60)
    return f"~{hours}h {minutes}m"
