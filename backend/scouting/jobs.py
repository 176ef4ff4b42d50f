"""
Durable processing jobs.

JobQueue records one ProcessingJob per file run and refuses a second job
while one is active. JobWorker executes jobs on a thread pool so the upload
request returns immediately; callers poll the file status.
"""

import logging
import traceback
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import asdict
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from scouting.errors import DuplicateJobError, IngestionError
from scouting.models import PerformanceDataFile, ProcessingJob
from scouting.store import to_uuid

logger = logging.getLogger(__name__)

ACTIVE_JOB_STATUSES = ("QUEUED", "RUNNING")


def update_job_status(
    db: Session,
    job_id: UUID,
    status: str,
    result: Optional[dict] = None,
    failure: Optional[str] = None,
    trace: Optional[str] = None,
):
    job = db.get(ProcessingJob, job_id)
    if not job:
        return
    now = datetime.utcnow()
    if status == "RUNNING":
        job.started_at = now
    if status in ("SUCCEEDED", "FAILED"):
        job.finished_at = now
    job.status = status
    if result is not None:
        job.result = result
    if failure:
        job.failure_reason = failure
    if trace:
        job.failure_trace = trace[:8000]
    db.add(job)
    db.commit()


def job_to_dict(job: ProcessingJob) -> dict:
    return {
        "job_id": str(job.job_id),
        "file_id": str(job.data_file_id),
        "status": job.status,
        "created_at": job.created_at,
        "started_at": job.started_at,
        "finished_at": job.finished_at,
        "result": job.result,
        "failure_reason": job.failure_reason,
    }


class JobQueue:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def enqueue(self, file_id) -> UUID:
        """Create a QUEUED job for a pending file; DuplicateJobError otherwise."""
        fid = to_uuid(file_id)
        with self.session_factory() as db:
            record = db.get(PerformanceDataFile, fid)
            if record is None:
                raise IngestionError(f"File not found: {file_id}")
            if record.processing_status != "pending":
                raise DuplicateJobError(f"File {file_id} is already {record.processing_status}")
            active = db.scalar(
                select(ProcessingJob)
                .where(ProcessingJob.data_file_id == fid, ProcessingJob.status.in_(ACTIVE_JOB_STATUSES))
            )
            if active is not None:
                raise DuplicateJobError(f"File {file_id} already has job {active.job_id} ({active.status})")

            job = ProcessingJob(data_file_id=fid, status="QUEUED")
            db.add(job)
            db.commit()
            db.refresh(job)
            logger.info(f"Queued job {job.job_id} for file {file_id}")
            return job.job_id

    def get(self, job_id) -> Optional[ProcessingJob]:
        with self.session_factory() as db:
            return db.get(ProcessingJob, to_uuid(job_id))

    def queued_job_ids(self) -> List[UUID]:
        with self.session_factory() as db:
            return list(db.scalars(
                select(ProcessingJob.job_id)
                .where(ProcessingJob.status == "QUEUED")
                .order_by(ProcessingJob.created_at)
            ))


class JobWorker:
    def __init__(self, session_factory: sessionmaker, orchestrator, pool_size: int = 2):
        self.session_factory = session_factory
        self.orchestrator = orchestrator
        self.executor = ThreadPoolExecutor(max_workers=pool_size, thread_name_prefix="scouting-job")
        self._futures: List[Future] = []

    def submit(self, job_id) -> Future:
        future = self.executor.submit(self.run_job, to_uuid(job_id))
        self._futures = [f for f in self._futures if not f.done()] + [future]
        return future

    def run_job(self, job_id: UUID) -> None:
        db = self.session_factory()
        try:
            job = db.get(ProcessingJob, job_id)
            if job is None or job.status != "QUEUED":
                logger.warning(f"Job {job_id} is not runnable; skipping")
                return
            update_job_status(db, job_id, "RUNNING")

            result = self.orchestrator.process_file(job.data_file_id)
            if result.success:
                update_job_status(db, job_id, "SUCCEEDED", result=asdict(result))
            else:
                update_job_status(db, job_id, "FAILED", result=asdict(result), failure="; ".join(result.errors)[:2000])
        except Exception as e:
            logger.exception(f"Job {job_id} crashed: {e}")
            db.rollback()
            update_job_status(db, job_id, "FAILED", failure=str(e), trace=traceback.format_exc())
        finally:
            db.close()

    def recover_interrupted(self) -> int:
        """
        Fail jobs left RUNNING by a previous process, and their files.

        The file state machine has no way back to pending, so an interrupted
        run ends failed and must be re-uploaded.
        """
        recovered = 0
        with self.session_factory() as db:
            jobs = list(db.scalars(select(ProcessingJob).where(ProcessingJob.status == "RUNNING")))
            for job in jobs:
                job.status = "FAILED"
                job.finished_at = datetime.utcnow()
                job.failure_reason = "interrupted"
                record = db.get(PerformanceDataFile, job.data_file_id)
                if record is not None and record.processing_status == "processing":
                    record.processing_status = "failed"
                    record.processed_at = datetime.utcnow()
                    record.file_metadata = {
                        **(record.file_metadata or {}),
                        "errors": ["Processing interrupted before completion"],
                    }
                recovered += 1
            db.commit()
        if recovered:
            logger.warning(f"Marked {recovered} interrupted job(s) as failed")
        return recovered

    def resume_queued(self, queue: JobQueue) -> int:
        job_ids = queue.queued_job_ids()
        for job_id in job_ids:
            self.submit(job_id)
        return len(job_ids)

    def wait_idle(self, timeout: Optional[float] = None) -> None:
        wait(list(self._futures), timeout=timeout)

    def shutdown(self, wait_for_jobs: bool = True) -> None:
        self.executor.shutdown(wait=wait_for_jobs)
