"""
FastAPI control surface for the crawl pipeline
"""
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, HttpUrl, field_validator

from app import PipelineApp
from exceptions import SchedulingError, ValidationError

logger = logging.getLogger(__name__)


# Pydantic models for API requests
class URLAnalysisRequest(BaseModel):
    url: HttpUrl
    keyword: Optional[str] = None
    secondary_keywords: List[str] = Field(default_factory=list)


class HTMLAnalysisRequest(BaseModel):
    html: str
    url: str = ""
    keyword: Optional[str] = None
    secondary_keywords: List[str] = Field(default_factory=list)


class CrawlRequest(BaseModel):
    url: HttpUrl
    max_pages: Optional[int] = Field(default=None, ge=1, le=500)
    max_depth: Optional[int] = Field(default=None, ge=0, le=10)


class JobRequest(BaseModel):
    name: str = Field(min_length=1)
    type: str
    schedule: str
    config: Dict[str, Any] = Field(default_factory=dict)
    max_retries: Optional[int] = Field(default=None, ge=0)

    @field_validator('type')
    @classmethod
    def type_must_be_known(cls, v):
        if v not in ("seo", "news", "competitor"):
            raise ValueError("type must be one of seo, news, competitor")
        return v


class NewsSourceRequest(BaseModel):
    name: str
    url: str
    selectors: Dict[str, str]


# Response models
class APIResponse(BaseModel):
    success: bool
    message: str
    data: Optional[Dict[str, Any]] = None
    timestamp: datetime


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    components: Dict[str, Any]
    running_jobs: List[str]


pipeline_app: Optional[PipelineApp] = None


@asynccontextmanager
async def lifespan(api: FastAPI):
    """Build the pipeline on startup and shut it down on exit"""
    global pipeline_app
    pipeline_app = PipelineApp()
    logger.info("Pipeline API started successfully")
    yield
    pipeline_app.shutdown()
    pipeline_app = None
    logger.info("Pipeline API shut down successfully")


app = FastAPI(
    title="SEO Pipeline API",
    description="Crawl, scheduling, data quality and scoring control API",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_pipeline_app() -> PipelineApp:
    """Dependency to get the pipeline app instance"""
    if pipeline_app is None:
        raise HTTPException(status_code=500, detail="Pipeline app not initialized")
    return pipeline_app


def _response(message: str, data: Optional[Dict[str, Any]] = None, success: bool = True) -> APIResponse:
    return APIResponse(success=success, message=message, data=data, timestamp=datetime.now())


@app.get("/", response_model=Dict[str, str])
async def root():
    """Root endpoint"""
    return {
        "message": "SEO Pipeline API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health"
    }


@app.get("/health", response_model=HealthResponse)
def health_check(pipeline: PipelineApp = Depends(get_pipeline_app)):
    """Health check endpoint"""
    status = pipeline.get_system_status()
    return HealthResponse(
        status=status["health"]["overall_status"],
        timestamp=datetime.now(),
        components=status["health"]["components"],
        running_jobs=status["running_jobs"]
    )


@app.post("/analyze/url", response_model=APIResponse)
def analyze_url(request: URLAnalysisRequest, pipeline: PipelineApp = Depends(get_pipeline_app)):
    """Fetch and score a single URL"""
    logger.info(f"Analyzing URL: {request.url}")
    result = pipeline.analyze_url(str(request.url), request.keyword, request.secondary_keywords)
    return _response(
        "URL analysis failed" if result.is_default else "URL analysis completed",
        result.to_dict(),
        success=not result.is_default
    )


@app.post("/analyze/html", response_model=APIResponse)
def analyze_html(request: HTMLAnalysisRequest, pipeline: PipelineApp = Depends(get_pipeline_app)):
    """Score submitted HTML"""
    result = pipeline.analyze_html(request.html, request.url, request.keyword, request.secondary_keywords)
    return _response(
        "HTML could not be analyzed" if result.is_default else "HTML analysis completed",
        result.to_dict(),
        success=not result.is_default
    )


@app.post("/crawl", response_model=APIResponse)
def crawl_site(request: CrawlRequest, pipeline: PipelineApp = Depends(get_pipeline_app)):
    """Crawl a site and store its snapshots"""
    result = pipeline.crawl_site(str(request.url), request.max_pages, request.max_depth)
    return _response(
        f"Crawled {len(result.snapshots)} pages",
        {
            "seed_url": result.seed_url,
            "platform": result.platform,
            "pages": [snapshot.url for snapshot in result.snapshots],
            "duplicates": result.duplicates,
            "skipped": result.skipped,
            "failures": [asdict(failure) for failure in result.failures],
        },
        success=result.success
    )


@app.get("/jobs", response_model=APIResponse)
def list_jobs(
    active_only: bool = Query(False, description="Only active jobs"),
    pipeline: PipelineApp = Depends(get_pipeline_app)
):
    """List scheduled crawl jobs"""
    jobs = pipeline.list_jobs()
    if active_only:
        jobs = [job for job in jobs if job["is_active"]]
    return _response(f"Retrieved {len(jobs)} jobs", {"jobs": jobs, "total": len(jobs)})


@app.post("/jobs", response_model=APIResponse)
def create_job(request: JobRequest, pipeline: PipelineApp = Depends(get_pipeline_app)):
    """Schedule a recurring crawl job"""
    try:
        job = pipeline.add_job(request.name, request.type, request.schedule, request.config, request.max_retries)
    except SchedulingError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _response(f"Job {job.name} scheduled", job.to_dict())


@app.post("/jobs/{job_id}/trigger", response_model=APIResponse)
def trigger_job(job_id: str, pipeline: PipelineApp = Depends(get_pipeline_app)):
    """Run a job now unless it is already running or deactivated"""
    try:
        started = pipeline.trigger_job(job_id)
    except SchedulingError as e:
        raise HTTPException(status_code=404, detail=str(e))
    message = f"Job {job_id} started" if started else f"Job {job_id} not started (running or deactivated)"
    return _response(message, {"job_id": job_id, "started": started}, success=started)


@app.post("/jobs/{job_id}/reactivate", response_model=APIResponse)
def reactivate_job(job_id: str, pipeline: PipelineApp = Depends(get_pipeline_app)):
    """Reactivate a job that was deactivated after repeated failures"""
    try:
        job = pipeline.reactivate_job(job_id)
    except SchedulingError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _response(f"Job {job_id} reactivated", job.to_dict())


@app.post("/scheduler/start", response_model=APIResponse)
def start_scheduler(pipeline: PipelineApp = Depends(get_pipeline_app)):
    pipeline.start()
    return _response("Scheduler started")


@app.post("/scheduler/stop", response_model=APIResponse)
def stop_scheduler(pipeline: PipelineApp = Depends(get_pipeline_app)):
    pipeline.stop()
    return _response("Scheduler stopped")


@app.get("/metrics", response_model=APIResponse)
def get_metrics(pipeline: PipelineApp = Depends(get_pipeline_app)):
    """Scheduler, crawl and content metrics"""
    return _response("Metrics retrieved successfully", {"metrics": pipeline.get_metrics()})


@app.get("/quality/report", response_model=APIResponse)
def get_quality_report(pipeline: PipelineApp = Depends(get_pipeline_app)):
    """Freshly generated data quality report"""
    report = pipeline.get_quality_report()
    return _response(f"Quality score {report['quality_score']}", report)


@app.get("/quality/metrics", response_model=APIResponse)
def get_quality_metrics(pipeline: PipelineApp = Depends(get_pipeline_app)):
    return _response("Quality metrics retrieved successfully", pipeline.get_quality_metrics())


@app.post("/news-sources", response_model=APIResponse)
def add_news_source(request: NewsSourceRequest, pipeline: PipelineApp = Depends(get_pipeline_app)):
    """Register a news source for the news crawl job"""
    try:
        source = pipeline.add_news_source(request.name, request.url, request.selectors)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.errors)
    return _response(f"News source {source.name} added", asdict(source))


@app.post("/cleanup", response_model=APIResponse)
def cleanup_data(
    days_to_keep: int = Query(30, ge=1, description="Number of days of data to keep"),
    pipeline: PipelineApp = Depends(get_pipeline_app)
):
    """Clean up old data"""
    removed = pipeline.cleanup_old_data(days_to_keep)
    return _response(f"Data cleanup completed, kept last {days_to_keep} days", {"removed": removed})


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler"""
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "message": "Internal server error",
            "timestamp": datetime.now().isoformat()
        }
    )


if __name__ == "__main__":
    uvicorn.run(
        "api:app",
        host="0.0.0.0",
        port=8000,
        log_level="info"
    )
