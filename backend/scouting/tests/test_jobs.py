import pytest

from scouting.errors import AIUnavailableError, DuplicateJobError, IngestionError
from scouting.jobs import JobQueue, JobWorker, update_job_status
from scouting.pipeline import PipelineOrchestrator

CSV = b"date,hits\n2024-05-01,2\n2024-05-02,3\n"


@pytest.fixture
def queue(session_factory):
    return JobQueue(session_factory)


@pytest.fixture
def worker(session_factory, store, storage, fake_ai, settings):
    worker = JobWorker(session_factory, PipelineOrchestrator(store, storage, fake_ai, settings), pool_size=1)
    yield worker
    worker.shutdown()


def test_enqueue_refuses_duplicates(queue, make_file):
    record = make_file(CSV)

    job_id = queue.enqueue(record.id)

    assert queue.get(job_id).status == "QUEUED"
    with pytest.raises(DuplicateJobError):
        queue.enqueue(record.id)


def test_enqueue_refuses_files_past_pending(queue, make_file, store):
    record = make_file(CSV)
    store.transition_status(record.id, "processing")

    with pytest.raises(DuplicateJobError):
        queue.enqueue(record.id)


def test_enqueue_unknown_file(queue):
    with pytest.raises(IngestionError):
        queue.enqueue("11111111-1111-1111-1111-111111111111")


def test_worker_runs_job_to_success(queue, worker, make_file, store):
    record = make_file(CSV)
    job_id = queue.enqueue(record.id)

    worker.submit(job_id).result(timeout=30)

    job = queue.get(job_id)
    assert job.status == "SUCCEEDED"
    assert job.started_at is not None and job.finished_at is not None
    assert job.result["row_count"] == 2
    assert store.file_status(record.id)["status"] == "completed"


def test_failed_run_marks_job_failed(session_factory, store, storage, settings, ai_factory, queue, make_file):
    ai = ai_factory(interpret_error=AIUnavailableError("network down"))
    worker = JobWorker(session_factory, PipelineOrchestrator(store, storage, ai, settings), pool_size=1)
    record = make_file(CSV)
    job_id = queue.enqueue(record.id)

    worker.run_job(job_id)
    worker.shutdown()

    job = queue.get(job_id)
    assert job.status == "FAILED"
    assert job.failure_reason == "network down"
    assert job.result["status"] == "failed"


def test_finished_job_is_not_run_again(queue, worker, make_file, fake_ai):
    record = make_file(CSV)
    job_id = queue.enqueue(record.id)
    worker.run_job(job_id)

    worker.run_job(job_id)

    assert sum(1 for c in fake_ai.calls if c[0] == "interpret_columns") == 1


def test_recover_interrupted_fails_running_jobs_and_files(queue, worker, make_file, store, session_factory):
    record = make_file(CSV)
    job_id = queue.enqueue(record.id)
    store.transition_status(record.id, "processing")
    with session_factory() as db:
        update_job_status(db, job_id, "RUNNING")

    assert worker.recover_interrupted() == 1

    job = queue.get(job_id)
    assert job.status == "FAILED"
    assert job.failure_reason == "interrupted"
    status = store.file_status(record.id)
    assert status["status"] == "failed"
    assert status["errors"] == ["Processing interrupted before completion"]
    assert worker.recover_interrupted() == 0


def test_resume_queued_runs_waiting_jobs(queue, worker, make_file, store):
    first, second = make_file(CSV), make_file(CSV)
    queue.enqueue(first.id)
    queue.enqueue(second.id)

    assert worker.resume_queued(queue) == 2
    worker.wait_idle(timeout=30)

    assert store.file_status(first.id)["status"] == "completed"
    assert store.file_status(second.id)["status"] == "completed"
    assert queue.queued_job_ids() == []
