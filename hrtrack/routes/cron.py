"""
Endpoints for an external cron, authenticated by the shared CRON_SECRET.
"""
from fastapi import APIRouter, Depends

from ..auth.security import get_container, require_cron_secret
from ..container import AUTO_CLOCKOUT_JOB, CHECKOUT_MONITORING_JOB, Container
from ..schemas.jobs import TriggerOut

router = APIRouter(prefix="/cron", tags=["cron"])


@router.get("/checkout-monitoring", response_model=TriggerOut, dependencies=[Depends(require_cron_secret)])
def run_checkout_monitoring(container: Container = Depends(get_container)):
    return container.scheduler.trigger(CHECKOUT_MONITORING_JOB).to_dict()


@router.get("/auto-clockout", response_model=TriggerOut, dependencies=[Depends(require_cron_secret)])
def run_auto_clockout(container: Container = Depends(get_container)):
    return container.scheduler.trigger(AUTO_CLOCKOUT_JOB).to_dict()


@router.get("/health")
def cron_health(container: Container = Depends(get_container)):
    return {
        "status": "ok",
        "scheduler_running": container.scheduler.running,
        "cron_secret_configured": bool(container.settings.cron_secret),
        "jobs": {job["name"]: job["last_status"] for job in container.scheduler.list_jobs()},
    }
