"""Tenant notifications on the terminal monitoring transitions."""
import json
import logging
from datetime import datetime, timezone

from app.logging_config import JSONFormatter
from app.models.tenant_domain import CanonicalPreference, MonitoringStatus
from app.services.domain_notifications import DOMAIN_ACTIVATED, DOMAIN_TIMED_OUT, DomainNotifier

NOW = datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc)


def test_activation_notification_is_logged_with_payload(make_domain, caplog):
    record = make_domain(
        canonical_preference=CanonicalPreference.WWW,
        monitoring_status=MonitoringStatus.ACTIVE,
        check_attempts=4,
    )

    with caplog.at_level(logging.INFO, logger="storefront.domain.notify"):
        notification = DomainNotifier().domain_activated(record, NOW)

    assert notification.event == DOMAIN_ACTIVATED
    assert notification.canonical_hostname == "www.example.com"
    assert notification.attempts == 4
    assert "https://example.com" in notification.message

    log = caplog.records[-1]
    assert log.notification["event"] == DOMAIN_ACTIVATED
    payload = json.loads(JSONFormatter().format(log))
    assert payload["notification"]["tenant_id"] == str(record.tenant_id)


def test_timeout_notification_points_at_dns(make_domain):
    record = make_domain(monitoring_status=MonitoringStatus.FAILED, check_attempts=12)

    notification = DomainNotifier().domain_timed_out(record, NOW)

    assert notification.event == DOMAIN_TIMED_OUT
    assert "DNS" in notification.message
    assert notification.as_dict()["occurred_at"] == NOW
