"""
Custom-domain Celery tasks

Thin wrappers: open a DB session, bind log context, build the collaborators,
and run one workflow unit. Transient provider failures are retried by Celery
with exponential backoff. Anything else in a recurring unit is logged; the
monitoring chain is re-enqueued one poll interval later so a verifying domain
always reaches `active` or `failed`.
"""
import logging
from datetime import timedelta
from uuid import UUID

from app.celery_app import celery_app
from app.config import settings
from app.db.session import SessionLocal
from app.logging_config import log_context
from app.services.dns_checker import DnsTargetChecker
from app.services.domain_setup import DomainSetupError, DomainSetupService
from app.services.domain_workflows import DomainWorkflows
from app.services.health_probe import DomainHealthChecker
from app.services.provider_client import ProviderAPIError, ProviderTransientError, ProvisioningProviderClient
from app.services.scheduler import CeleryScheduler, WorkflowUnit

logger = logging.getLogger("storefront.tasks")


def _retry_countdown(retries: int) -> int:
    return settings.JOB_RETRY_BACKOFF_SECONDS * (2 ** retries)


def _scheduler() -> CeleryScheduler:
    return CeleryScheduler(celery_app)


def _workflows(db) -> DomainWorkflows:
    return DomainWorkflows(
        db,
        provider=ProvisioningProviderClient(),
        probe=DomainHealthChecker(),
        scheduler=_scheduler(),
        dns_checker=DnsTargetChecker(),
    )


def _keep_monitoring(tenant_id: str) -> None:
    """Next poll after a failed monitoring run."""
    try:
        _scheduler().enqueue(
            WorkflowUnit.MONITOR,
            {"tenant_id": tenant_id},
            delay=timedelta(seconds=settings.DOMAIN_POLL_INTERVAL_SECONDS),
        )
    except Exception as e:
        logger.error("Could not re-enqueue monitoring for tenant %s: %s", tenant_id, e)


@celery_app.task(bind=True, name=WorkflowUnit.SETUP.value, max_retries=settings.JOB_MAX_RETRIES)
def setup_domain_task(self, tenant_id: str):
    """
    背景任務：自訂域名設定
    1. 在 provider 註冊 canonical hostname
    2. 進入 monitoring 狀態
    3. 觸發 apex / www 驗證（錯開 30 秒）
    4. 排程第一次健康檢查
    """
    db = SessionLocal()
    with log_context(tenant_id=tenant_id, job_id=self.request.id):
        try:
            service = DomainSetupService(db, scheduler=_scheduler())
            record = service.start_setup(UUID(tenant_id))
            return {"status": record.monitoring_status, "hostname": record.hostname}
        except DomainSetupError as e:
            logger.warning("Setup rejected for tenant %s: %s", tenant_id, e)
            return {"status": "rejected", "error": str(e)}
        except ProviderTransientError as e:
            if self.request.retries < self.max_retries:
                logger.warning("Setup hit a transient provider error, retrying: %s", e)
                raise self.retry(exc=e, countdown=_retry_countdown(self.request.retries))
            DomainSetupService(db, scheduler=None).record_setup_failure(UUID(tenant_id), str(e))
            raise
        except Exception as e:
            db.rollback()
            DomainSetupService(db, scheduler=None).record_setup_failure(UUID(tenant_id), str(e))
            raise
        finally:
            db.close()


@celery_app.task(bind=True, name=WorkflowUnit.MONITOR.value, max_retries=settings.JOB_MAX_RETRIES)
def monitor_domain_task(self, tenant_id: str):
    db = SessionLocal()
    with log_context(tenant_id=tenant_id, job_id=self.request.id):
        try:
            action = _workflows(db).run_monitoring_check(UUID(tenant_id))
            return {"action": action.kind, "reason": action.reason}
        except ProviderTransientError as e:
            if self.request.retries < self.max_retries:
                raise self.retry(exc=e, countdown=_retry_countdown(self.request.retries))
            logger.error("Monitoring check for tenant %s failed after retries: %s", tenant_id, e)
            _keep_monitoring(tenant_id)
            return {"action": "error", "error": str(e)}
        except Exception as e:
            db.rollback()
            logger.exception("Monitoring check for tenant %s failed: %s", tenant_id, e)
            _keep_monitoring(tenant_id)
            return {"action": "error", "error": str(e)}
        finally:
            db.close()


@celery_app.task(bind=True, name=WorkflowUnit.CERT_RETRY.value, max_retries=settings.JOB_MAX_RETRIES)
def certificate_retry_task(self, tenant_id: str, retry_count: int = 0):
    db = SessionLocal()
    with log_context(tenant_id=tenant_id, job_id=self.request.id):
        try:
            action = _workflows(db).run_certificate_retry(UUID(tenant_id), int(retry_count))
            return {"action": action.kind, "reason": action.reason, "retry_count": retry_count}
        except ProviderTransientError as e:
            if self.request.retries < self.max_retries:
                raise self.retry(exc=e, countdown=_retry_countdown(self.request.retries))
            logger.error("Certificate retry %s for tenant %s failed: %s", retry_count, tenant_id, e)
            return {"action": "error", "error": str(e)}
        except Exception as e:
            logger.exception("Certificate retry %s for tenant %s failed: %s", retry_count, tenant_id, e)
            return {"action": "error", "error": str(e)}
        finally:
            db.close()


@celery_app.task(bind=True, name=WorkflowUnit.REBUILD_REMOVE.value, max_retries=settings.JOB_MAX_RETRIES)
def rebuild_remove_task(self, tenant_id: str):
    db = SessionLocal()
    with log_context(tenant_id=tenant_id, job_id=self.request.id):
        try:
            action = _workflows(db).run_rebuild_remove(UUID(tenant_id))
            return {"action": action.kind, "reason": action.reason}
        except ProviderTransientError as e:
            if self.request.retries < self.max_retries:
                raise self.retry(exc=e, countdown=_retry_countdown(self.request.retries))
            logger.error("Domain rebuild (remove) for tenant %s failed: %s", tenant_id, e)
            return {"action": "error", "error": str(e)}
        except ProviderAPIError as e:
            logger.error("Domain rebuild (remove) for tenant %s failed: %s", tenant_id, e)
            return {"action": "error", "error": str(e)}
        finally:
            db.close()


@celery_app.task(bind=True, name=WorkflowUnit.REBUILD_READD.value, max_retries=settings.JOB_MAX_RETRIES)
def rebuild_readd_task(self, tenant_id: str):
    db = SessionLocal()
    with log_context(tenant_id=tenant_id, job_id=self.request.id):
        try:
            action = _workflows(db).run_rebuild_readd(UUID(tenant_id))
            return {"action": action.kind, "reason": action.reason}
        except ProviderTransientError as e:
            if self.request.retries < self.max_retries:
                raise self.retry(exc=e, countdown=_retry_countdown(self.request.retries))
            logger.error("Domain rebuild (re-add) for tenant %s failed: %s", tenant_id, e)
            return {"action": "error", "error": str(e)}
        except ProviderAPIError as e:
            logger.error("Domain rebuild (re-add) for tenant %s failed: %s", tenant_id, e)
            return {"action": "error", "error": str(e)}
        finally:
            db.close()


@celery_app.task(bind=True, name=WorkflowUnit.VERIFY.value, max_retries=settings.JOB_MAX_RETRIES)
def verify_domain_task(self, hostname: str):
    db = SessionLocal()
    with log_context(job_id=self.request.id):
        try:
            outcome = _workflows(db).run_verification(hostname)
            return {"hostname": hostname, "outcome": outcome}
        except ProviderTransientError as e:
            if self.request.retries < self.max_retries:
                raise self.retry(exc=e, countdown=_retry_countdown(self.request.retries))
            logger.error("Verification for %s failed after retries: %s", hostname, e)
            return {"hostname": hostname, "outcome": "error", "error": str(e)}
        except ProviderAPIError as e:
            logger.error("Verification for %s failed: %s", hostname, e)
            return {"hostname": hostname, "outcome": "error", "error": str(e)}
        finally:
            db.close()
