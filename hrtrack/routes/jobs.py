"""
Scheduler API routes (admin).
"""
from typing import List

from fastapi import APIRouter, Depends, Query

from ..auth.security import Principal, get_container, require_action
from ..container import Container
from ..schemas.jobs import JobStatusOut, JobToggleIn, JobUpdateIn, TriggerOut
from ..services.permissions import Action

router = APIRouter(prefix="/jobs", tags=["jobs"])

manage_jobs = require_action(Action.MANAGE_JOBS)


@router.get("", response_model=List[JobStatusOut])
def list_jobs(
    _: Principal = Depends(manage_jobs),
    container: Container = Depends(get_container),
):
    return container.scheduler.list_jobs()


@router.get("/statistics")
def job_statistics(
    _: Principal = Depends(manage_jobs),
    container: Container = Depends(get_container),
):
    return container.scheduler.statistics()


@router.get("/{name}", response_model=JobStatusOut)
def get_job(
    name: str,
    _: Principal = Depends(manage_jobs),
    container: Container = Depends(get_container),
):
    return container.scheduler.status(name)


@router.post("/{name}/trigger", response_model=TriggerOut)
def trigger_job(
    name: str,
    wait: bool = Query(default=True),
    _: Principal = Depends(manage_jobs),
    container: Container = Depends(get_container),
):
    return container.scheduler.trigger(name, wait=wait).to_dict()


@router.patch("/{name}/toggle", response_model=JobStatusOut)
def toggle_job(
    name: str,
    payload: JobToggleIn,
    _: Principal = Depends(manage_jobs),
    container: Container = Depends(get_container),
):
    return container.scheduler.update_config(name, enabled=payload.enabled)


@router.patch("/{name}", response_model=JobStatusOut)
def update_job(
    name: str,
    payload: JobUpdateIn,
    _: Principal = Depends(manage_jobs),
    container: Container = Depends(get_container),
):
    return container.scheduler.update_config(name, enabled=payload.enabled, schedule=payload.schedule)
