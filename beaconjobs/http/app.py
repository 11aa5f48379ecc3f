"""FastAPI gateway for job triggers and the job health summary."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from beaconjobs.jobs.dispatcher import DualPathDispatcher
from beaconjobs.jobs.health import HealthAggregator
from beaconjobs.jobs.registry import Job
from beaconjobs.runs.store import RunStore


def create_jobs_app(
    *,
    dispatcher: DualPathDispatcher,
    jobs: Mapping[str, Job],
    aggregator: HealthAggregator | None = None,
    run_store: RunStore | None = None,
) -> FastAPI:
    """Create the FastAPI app bound to a dispatcher and its jobs.

    One trigger endpoint per job at ``/api/cron/{job_name}``, accepting both
    GET (schedulers that only issue GETs) and POST.
    """
    app = FastAPI(title="beaconjobs")

    @app.middleware("http")
    async def _request_id_middleware(request: Request, call_next: Any) -> JSONResponse:
        request_id = request.headers.get("x-request-id", str(uuid4()))
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["x-request-id"] = request_id
        return response

    @app.api_route("/api/cron/{job_name}", methods=["GET", "POST"])
    async def trigger_job(job_name: str, request: Request) -> JSONResponse:
        job = jobs.get(job_name)
        if job is None:
            denied = dispatcher.authorize(request.headers.get("authorization"), job_name)
            if denied is not None:
                return JSONResponse(status_code=denied.status_code, content=denied.body)
            return JSONResponse(status_code=404, content={"error": f"unknown job: {job_name}"})
        payload: dict[str, Any] = {}
        if request.method == "POST" and request.headers.get("content-type", "").startswith("application/json"):
            try:
                body = await request.json()
            except ValueError:
                return JSONResponse(status_code=400, content={"error": "invalid JSON body"})
            if isinstance(body, dict):
                payload = body
        result = await dispatcher.dispatch(
            job,
            request.headers.get("authorization"),
            payload,
        )
        return JSONResponse(status_code=result.status_code, content=result.body)

    @app.get("/api/health/jobs")
    async def job_health() -> JSONResponse:
        if aggregator is None or run_store is None:
            return JSONResponse(status_code=404, content={"error": "health reporting not configured"})
        summary = await aggregator.collect(run_store)
        return JSONResponse(status_code=200, content=summary.to_dict())

    return app
