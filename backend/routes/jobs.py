"""Queue operations for operators: stats, lookup, cancel, dead letters, replay."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from backend.deps import get_services
from replygate.schemas import Job, JobStatus, QueueStats
from replygate.services import Services

router = APIRouter()


@router.get("/jobs/stats", response_model=QueueStats, summary="Job counts per status")
def job_stats(svc: Services = Depends(get_services)):
    return svc.queue.get_stats()


@router.get("/jobs/dead-letters", response_model=list[Job], summary="Dead-lettered jobs")
def dead_letters(limit: int = Query(50, ge=1, le=500), svc: Services = Depends(get_services)):
    return svc.queue.list_dead_letters(limit=limit)


@router.get("/jobs/{job_id}", response_model=Job, summary="Job status")
def get_job(job_id: str, svc: Services = Depends(get_services)):
    job = svc.queue.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    return job


@router.delete("/jobs/{job_id}", status_code=204, summary="Cancel a pending job")
def cancel_job(job_id: str, svc: Services = Depends(get_services)):
    if svc.queue.cancel_job(job_id):
        return None
    job = svc.queue.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    raise HTTPException(status_code=409, detail=f"Job {job_id} is {job.status.value}; only pending jobs can be cancelled")


@router.post("/jobs/{job_id}/requeue", response_model=Job, summary="Replay a dead-lettered job")
def requeue_job(job_id: str, svc: Services = Depends(get_services)):
    job = svc.queue.requeue_dead_letter(job_id)
    if job is not None:
        return job
    existing = svc.queue.get_job(job_id)
    if existing is None:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    if existing.status != JobStatus.DEAD_LETTER:
        raise HTTPException(status_code=409, detail=f"Job {job_id} is {existing.status.value}, not dead_letter")
    raise HTTPException(status_code=409, detail=f"Job {job_id} could not be requeued")
