"""
自訂域名狀態通知（Domain Notifications）
在域名上線或驗證逾時時通知租戶

send() 目前只記錄結構化 log；郵件投遞由主平台訂閱 storefront.domain.notify 處理。
"""
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from app.models.tenant_domain import TenantDomain
from app.services.domain_names import canonical_hostname

logger = logging.getLogger("storefront.domain.notify")

DOMAIN_ACTIVATED = "domain_activated"
DOMAIN_TIMED_OUT = "domain_timed_out"


@dataclass
class DomainNotification:
    event: str
    tenant_id: str
    hostname: Optional[str]
    canonical_hostname: Optional[str]
    message: str
    attempts: int
    occurred_at: datetime

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


class DomainNotifier:
    """Builds one notification per terminal transition and hands it to `send`."""

    def _build(self, event: str, record: TenantDomain, message: str, now: datetime) -> DomainNotification:
        canonical = (
            canonical_hostname(record.hostname, record.canonical_preference) if record.hostname else None
        )
        return DomainNotification(
            event=event,
            tenant_id=str(record.tenant_id),
            hostname=record.hostname,
            canonical_hostname=canonical,
            message=message,
            attempts=record.check_attempts or 0,
            occurred_at=now,
        )

    def domain_activated(self, record: TenantDomain, now: datetime) -> DomainNotification:
        notification = self._build(
            DOMAIN_ACTIVATED, record, f"Your storefront is now live at https://{record.hostname}", now
        )
        self.send(notification)
        return notification

    def domain_timed_out(self, record: TenantDomain, now: datetime) -> DomainNotification:
        notification = self._build(
            DOMAIN_TIMED_OUT,
            record,
            f"We could not verify {record.hostname}. Check the DNS records and restart verification.",
            now,
        )
        self.send(notification)
        return notification

    def send(self, notification: DomainNotification) -> None:
        logger.info(
            "Domain notification %s for tenant %s (%s)",
            notification.event, notification.tenant_id, notification.hostname,
            extra={"notification": notification.as_dict()},
        )
