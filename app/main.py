import os
import asyncio
import logging
import math
import uuid
from typing import Literal, Optional

from fastapi import FastAPI, Depends, File, Form, UploadFile
from fastapi.responses import HTMLResponse, JSONResponse, Response
from pydantic import BaseModel
from sqlmodel import select, Session
from .db import init_db, get_session
from .models import EnrichmentConfig, Job, JobStatus, Progress, TaxonomyPreference
from .ingest import CatalogParseError, ReadError, parse_catalog
from .agent import AgentClient, client_from_env
from .pipeline import EnrichmentOrchestrator, summary_message
from .review import EditableField, ReviewSession, attribute_count
from .export import Exporter
from jinja2 import Environment, FileSystemLoader, select_autoescape

logging.basicConfig(level=logging.INFO)
log = logging.getLogger("app")

app = FastAPI(title="Catalog Enrichment Service")
TEMPLATES = Environment(
    loader=FileSystemLoader(os.path.join(os.path.dirname(__file__), "templates")),
    autoescape=select_autoescape(),
)

ENRICH_CONCURRENCY = int(os.getenv("ENRICH_CONCURRENCY", "1"))

# Progress + concurrency guard
PROGRESS = {"running": False, "total": 0, "completed": 0, "percent": 0, "current": "", "job_id": None, "summary": None}
ENRICH_LOCK = asyncio.Lock()

# One review session per job, keyed by job id
REVIEWS: dict = {}

AGENT = client_from_env()


def get_agent_client() -> AgentClient:
    return AGENT


@app.on_event("startup")
def _startup():
    init_db()
    log.info("DB initialized.")


def _job_summary(job: Job) -> dict:
    return {
        "id": job.id,
        "name": job.name,
        "product_count": job.product_count,
        "status": JobStatus(job.status).value,
        "date": job.date.isoformat(),
        "failed": job.failed_count(),
    }


def _publish(p: Progress) -> None:
    PROGRESS.update(total=p.total, completed=p.completed, percent=p.percent, current=p.current)


def _error(msg: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": msg}, status_code=status_code)


async def _enrich_impl(session: Session, records: list, name: str, config: EnrichmentConfig, client: AgentClient) -> Job:
    # built before the job is stored; a bad concurrency setting creates no job
    orchestrator = EnrichmentOrchestrator(client.enrich_product, concurrency=ENRICH_CONCURRENCY, on_progress=_publish)

    job = Job(id=uuid.uuid4().hex, name=name, product_count=len(records), status=JobStatus.PROCESSING)
    session.add(job)
    session.commit()
    PROGRESS["job_id"] = job.id
    log.info("Enriching %d products from %s", len(records), name)

    try:
        await orchestrator.run(job, records, config)
        session.add(job)
        session.commit()
    except Exception:
        # finalize so the job never stays 'processing'
        session.rollback()
        job.status = JobStatus.FAILED
        session.add(job)
        session.commit()
        raise
    session.refresh(job)

    REVIEWS[job.id] = ReviewSession.from_job(job)
    out = dict(_job_summary(job), message=summary_message(job))
    PROGRESS["summary"] = out
    PROGRESS["running"] = False
    return job


@app.post("/catalog/parse")
async def parse_upload(file: UploadFile = File(...)):
    try:
        content = await file.read()
    except OSError:
        return _error("File read error", 400)
    try:
        records = parse_catalog(content, file.filename or "")
    except CatalogParseError as e:
        return _error(str(e), 400)
    columns = list(records[0].keys()) if records and isinstance(records[0], dict) else []
    return {"filename": file.filename, "count": len(records), "columns": columns, "records": records}


@app.post("/jobs")
async def create_job(
    file: UploadFile = File(...),
    descriptions: bool = Form(True),
    categorization: bool = Form(True),
    attributes: bool = Form(True),
    seo: bool = Form(True),
    brand_tone: str = Form(""),
    taxonomy_preference: TaxonomyPreference = Form(TaxonomyPreference.AUTO),
    session: Session = Depends(get_session),
    client: AgentClient = Depends(get_agent_client),
):
    if ENRICH_LOCK.locked() or PROGRESS.get("running"):
        return JSONResponse({"status": "already_running", "total": PROGRESS["total"], "completed": PROGRESS["completed"]}, status_code=202)
    async with ENRICH_LOCK:
        # parse errors stop here; no job is created for a bad file
        try:
            try:
                content = await file.read()
            except OSError as e:
                raise ReadError("File read error") from e
            records = parse_catalog(content, file.filename or "")
        except CatalogParseError as e:
            return _error(str(e), 400)
        if not records:
            return _error("Catalog contains no products", 400)

        config = EnrichmentConfig(
            descriptions=descriptions,
            categorization=categorization,
            attributes=attributes,
            seo=seo,
            brand_tone=brand_tone,
            taxonomy_preference=taxonomy_preference,
        )
        PROGRESS.update({"running": True, "total": len(records), "completed": 0, "percent": 0, "current": "", "job_id": None, "summary": None})
        try:
            await _enrich_impl(session, records, file.filename or "Uploaded Catalog", config, client)
            return JSONResponse(PROGRESS["summary"])
        except Exception as e:
            PROGRESS["running"] = False
            log.exception("Enrichment failed")
            return _error(str(e), 500)


@app.get("/progress")
def progress():
    return {k: PROGRESS.get(k) for k in ("running", "total", "completed", "percent", "current", "job_id", "summary")}


@app.get("/jobs")
def list_jobs(q: str = "", status: str = "all", session: Session = Depends(get_session)):
    jobs = session.exec(select(Job).order_by(Job.date.desc())).all()
    needle = q.strip().lower()
    out = [
        j for j in jobs
        if (not needle or needle in j.name.lower())
        and (status == "all" or JobStatus(j.status).value == status)
    ]
    return [_job_summary(j) for j in out]


@app.get("/jobs/{job_id}")
def get_job(job_id: str, session: Session = Depends(get_session)):
    job = session.get(Job, job_id)
    if job is None:
        return _error("Job not found", 404)
    return dict(_job_summary(job), products=job.products)


def dashboard_metrics(jobs: list) -> dict:
    completed = sum(1 for j in jobs if JobStatus(j.status) == JobStatus.COMPLETED)
    return {
        "total_products": sum(j.product_count for j in jobs),
        "active_jobs": sum(1 for j in jobs if JobStatus(j.status) == JobStatus.PROCESSING),
        "completed_jobs": completed,
        "total_jobs": len(jobs),
        "completion_rate": math.floor(completed * 100 / len(jobs) + 0.5) if jobs else 0,
    }


@app.get("/dashboard")
def dashboard(session: Session = Depends(get_session)):
    return dashboard_metrics(session.exec(select(Job)).all())


@app.get("/", response_class=HTMLResponse)
def home(session: Session = Depends(get_session)):
    jobs = session.exec(select(Job).order_by(Job.date.desc())).all()
    template = TEMPLATES.get_template("dashboard.html")
    return template.render(metrics=dashboard_metrics(jobs), jobs=[_job_summary(j) for j in jobs[:10]])


# Review

class SelectRequest(BaseModel):
    product_id: Optional[str] = None


class ExpandRequest(BaseModel):
    product_id: Optional[str] = None


class EditRequest(BaseModel):
    product_id: str
    field: EditableField
    value: str


def _review_state(review: ReviewSession) -> dict:
    return {
        "job_id": review.job_id,
        "products": [dict(p.model_dump(mode="json"), attribute_count=attribute_count(p)) for p in review.products],
        "selection": sorted(review.selection),
        "all_selected": review.all_selected,
        "expanded": review.expanded,
        "dirty": review.dirty,
    }


def _no_review() -> JSONResponse:
    return _error("No review session for this job", 404)


@app.post("/jobs/{job_id}/review")
def open_review(job_id: str, session: Session = Depends(get_session)):
    job = session.get(Job, job_id)
    if job is None:
        return _error("Job not found", 404)
    REVIEWS[job_id] = ReviewSession.from_job(job)
    return _review_state(REVIEWS[job_id])


@app.get("/jobs/{job_id}/review")
def review_state(job_id: str):
    review = REVIEWS.get(job_id)
    return _review_state(review) if review else _no_review()


@app.post("/jobs/{job_id}/review/select")
def review_select(job_id: str, body: SelectRequest):
    review = REVIEWS.get(job_id)
    if review is None:
        return _no_review()
    if body.product_id is None:
        review.toggle_all()
    else:
        review.toggle_one(body.product_id)
    return _review_state(review)


@app.post("/jobs/{job_id}/review/expand")
def review_expand(job_id: str, body: ExpandRequest):
    review = REVIEWS.get(job_id)
    if review is None:
        return _no_review()
    review.expand(body.product_id)
    return _review_state(review)


@app.post("/jobs/{job_id}/review/edit")
def review_edit(job_id: str, body: EditRequest):
    review = REVIEWS.get(job_id)
    if review is None:
        return _no_review()
    updated = review.edit(body.product_id, body.field, body.value)
    product = review.get(body.product_id)
    return {"updated": updated, "product": product.model_dump(mode="json") if product else None}


@app.post("/jobs/{job_id}/review/approve")
def review_approve(job_id: str):
    review = REVIEWS.get(job_id)
    if review is None:
        return _no_review()
    approved = review.approve_selected()
    return dict(_review_state(review), approved=approved)


@app.post("/jobs/{job_id}/review/save")
def review_save(job_id: str, session: Session = Depends(get_session)):
    review = REVIEWS.get(job_id)
    job = session.get(Job, job_id)
    if review is None or job is None:
        return _no_review()
    review.save_to(job)
    session.add(job)
    session.commit()
    session.refresh(job)
    return _job_summary(job)


@app.get("/jobs/{job_id}/export")
async def export_products(
    job_id: str,
    format: Literal["csv", "json"] = "csv",
    client: AgentClient = Depends(get_agent_client),
):
    review = REVIEWS.get(job_id)
    if review is None:
        return _no_review()
    payload = await Exporter(client.notify_export).export(review.products, review.selection, format)
    if payload is None:
        return Response(status_code=204)
    return Response(
        content=payload.content,
        media_type=payload.media_type,
        headers={"Content-Disposition": f'attachment; filename="{payload.filename}"'},
    )
