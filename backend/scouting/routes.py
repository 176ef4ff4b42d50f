"""
Team-mode API routes: upload, file status and detail, jobs, reports, insight dismissal.

Collaborators (store, storage, queue, worker, report service) are built once
in main.create_app and read from app.state.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID, uuid4

from fastapi import APIRouter, BackgroundTasks, File, Form, HTTPException, Request, UploadFile
from pydantic import BaseModel, Field

from scouting.errors import AIServiceError, DuplicateJobError, IngestionError, ReportGenerationError
from scouting.jobs import job_to_dict
from scouting.parsers import SUPPORTED_EXTENSIONS, detect_file_type

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/team-mode")


def parse_uuid(value: str, field_name: str = "id") -> UUID:
    """Parse a string into a UUID or raise a 400 HTTPException."""
    try:
        return UUID(str(value))
    except Exception:
        raise HTTPException(status_code=400, detail=f"Invalid {field_name}")


class ReportRequest(BaseModel):
    team_id: str
    created_by: str
    title: str
    report_type: str
    report_category: Literal["own_team", "opponent"]
    file_ids: List[str] = Field(default_factory=list)
    player_user_id: Optional[str] = None
    opponent_name: Optional[str] = None
    game_date: Optional[str] = None
    focus_areas: List[str] = Field(default_factory=list)


class ReportUpdate(BaseModel):
    title: Optional[str] = None
    summary: Optional[str] = None
    content_sections: Optional[Dict[str, Any]] = None
    key_metrics: Optional[Dict[str, Any]] = None
    status: Optional[str] = None
    shared_with_player: Optional[bool] = None
    game_date: Optional[date] = None


# ── Upload ──────────────────────────────────────────────────────────────

@router.post("/files")
async def upload_performance_file(
    request: Request,
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    data_category: str = Form(...),
    team_id: str = Form(...),
    uploader_user_id: str = Form(...),
    player_user_id: Optional[str] = Form(None),
    opponent_name: Optional[str] = Form(None),
    opponent_context: Optional[str] = Form(None),
    sport: Optional[str] = Form(None),
):
    """
    Accept a CSV / XLSX / XLS upload, store it, create a pending file record
    and queue it for processing. Returns immediately; poll the status route.
    """
    state = request.app.state

    if data_category not in ("own_team", "opponent"):
        raise HTTPException(status_code=400, detail="data_category must be 'own_team' or 'opponent'")
    if data_category == "opponent" and not opponent_name:
        raise HTTPException(status_code=400, detail="opponent_name is required for opponent data")

    file_type = detect_file_type(file.content_type, file.filename)
    if file_type is None:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type. Supported: {', '.join(sorted(SUPPORTED_EXTENSIONS))}",
        )

    contents = await file.read()
    if len(contents) == 0:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    max_bytes = state.settings.max_upload_bytes
    if len(contents) > max_bytes:
        raise HTTPException(status_code=413, detail=f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB")

    storage_path = state.storage.save(team_id, uuid4().hex, file.filename, contents)
    metadata = {"original_mime_type": file.content_type}
    if opponent_context:
        metadata["opponent_context"] = opponent_context
    if sport:
        metadata["sport"] = sport.strip().lower()

    try:
        record = state.store.create_file(
            team_id=team_id,
            uploaded_by=uploader_user_id,
            player_user_id=player_user_id if data_category == "own_team" else None,
            is_opponent_data=data_category == "opponent",
            opponent_name=opponent_name if data_category == "opponent" else None,
            file_name=file.filename,
            storage_path=storage_path,
            file_type=file_type,
            file_size=len(contents),
            file_metadata=metadata,
        )
        job_id = state.queue.enqueue(record.id)
    except Exception as e:
        state.storage.delete(storage_path)
        logger.error(f"Upload failed for {file.filename}: {e}")
        raise HTTPException(status_code=500, detail=f"Upload failed: {e}")

    background_tasks.add_task(state.worker.submit, job_id)
    return {
        "success": True,
        "file_id": str(record.id),
        "job_id": str(job_id),
        "status": record.processing_status,
        "message": "File uploaded. Processing started.",
    }


# ── Status and jobs ─────────────────────────────────────────────────────

@router.get("/files/{file_id}/status")
def get_file_status(file_id: str, request: Request):
    status = request.app.state.store.file_status(parse_uuid(file_id, "file_id"))
    if status is None:
        raise HTTPException(status_code=404, detail="File not found")
    return status


@router.get("/files/{file_id}")
def get_file(file_id: str, request: Request):
    detail = request.app.state.store.file_detail(parse_uuid(file_id, "file_id"))
    if detail is None:
        raise HTTPException(status_code=404, detail="File not found")
    return detail


@router.post("/files/{file_id}/process")
def reprocess_file(file_id: str, request: Request, background_tasks: BackgroundTasks):
    """Queue a pending file whose job was lost; refuses files already claimed."""
    state = request.app.state
    try:
        job_id = state.queue.enqueue(parse_uuid(file_id, "file_id"))
    except DuplicateJobError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except IngestionError as e:
        raise HTTPException(status_code=404, detail=str(e))
    background_tasks.add_task(state.worker.submit, job_id)
    return {"success": True, "file_id": file_id, "job_id": str(job_id)}


@router.get("/jobs/{job_id}")
def get_job(job_id: str, request: Request):
    job = request.app.state.queue.get(parse_uuid(job_id, "job_id"))
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job_to_dict(job)


# ── Reports and insights ────────────────────────────────────────────────

@router.post("/reports")
def generate_report(body: ReportRequest, request: Request):
    for fid in body.file_ids:
        parse_uuid(fid, "file_id")
    try:
        report = request.app.state.reports.create_report(
            team_id=body.team_id,
            created_by=body.created_by,
            title=body.title,
            report_type=body.report_type,
            report_category=body.report_category,
            file_ids=body.file_ids,
            player_user_id=body.player_user_id,
            opponent_name=body.opponent_name,
            game_date=body.game_date,
            focus_areas=body.focus_areas,
        )
    except ReportGenerationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AIServiceError as e:
        logger.error(f"Report draft failed ({e.code}): {e}")
        raise HTTPException(status_code=502, detail=f"Report generation failed ({e.code}): {e}")

    return {
        "success": True,
        "report_id": str(report.id),
        "report": {
            "title": report.title,
            "status": report.status,
            "summary": report.summary,
            "content_sections": report.content_sections,
            "key_metrics": report.key_metrics,
            "game_date": report.game_date.isoformat() if report.game_date else None,
            "enhancement_error": (report.ai_generated_content or {}).get("enhancement_error"),
        },
    }


@router.get("/reports/{report_id}")
def get_report(report_id: str, request: Request):
    report = request.app.state.store.get_report(parse_uuid(report_id, "report_id"))
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")
    return report


@router.patch("/reports/{report_id}")
def update_report(report_id: str, body: ReportUpdate, request: Request):
    """Partial update; only fields present in the body are written."""
    updates = body.model_dump(exclude_unset=True)
    required = [k for k in ("title", "status", "content_sections", "shared_with_player") if k in updates and updates[k] is None]
    if required:
        raise HTTPException(status_code=400, detail=f"Fields cannot be null: {', '.join(required)}")

    report = request.app.state.store.update_report(parse_uuid(report_id, "report_id"), updates)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")
    return report


@router.post("/insights/{insight_id}/dismiss")
def dismiss_insight(insight_id: str, request: Request):
    if not request.app.state.store.dismiss_insight(parse_uuid(insight_id, "insight_id")):
        raise HTTPException(status_code=404, detail="Insight not found")
    return {"success": True, "insight_id": insight_id}
