"""
FastAPI host adapter for the physio-track telemetry core.

Exposes one analysis session over HTTP for hosts that cannot embed the
Python core directly. Rep and feedback callbacks are buffered and drained
into the next metrics response.

Endpoints:
    GET  /health
    POST /api/session/frame    one PoseFrame → metrics
    GET  /api/session/metrics
    POST /api/session/reset
    POST /api/model/train      labeled sequences → training summary

Run:
    cd <project_root>
    uvicorn physio_track.pipelines.main:app --host 0.0.0.0 --port 8000
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

# Suppress noisy TF logs before any TF import
os.environ.setdefault("TF_CPP_MIN_LOG_LEVEL", "3")

from physio_track.pipelines.backends import PoseAnalysisBackend, build_session
from physio_track.pipelines.config import TrackerConfig, load_tracker_config
from physio_track.pipelines.errors import ModelBusyError, TrainingDataError
from physio_track.pipelines.state import LabeledSequence, PoseFrame, SessionMetrics, TrainingSummary

logger = logging.getLogger("physio_track")
logging.basicConfig(level=logging.INFO, format="%(levelname)s | %(name)s | %(message)s")


# ============================================================================
# Pydantic response models
# ============================================================================

class FeedbackItem(BaseModel):
    message: str
    severity: str


class MetricsResponse(SessionMetrics):
    reps_completed: int = Field(
        default=0, description="Reps completed since the previous response"
    )
    feedback: list[FeedbackItem] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    error_code: str
    message: str


# ============================================================================
# Host state
# ============================================================================

class HostAdapter:
    """Owns the session and buffers its callbacks between HTTP requests."""

    def __init__(self, config: TrackerConfig):
        self.pending_reps = 0
        self.pending_feedback: list[FeedbackItem] = []
        self.session: PoseAnalysisBackend = build_session(
            config,
            on_rep_completed=self._on_rep_completed,
            on_form_feedback=self._on_form_feedback,
        )

    def _on_rep_completed(self) -> None:
        self.pending_reps += 1

    def _on_form_feedback(self, message: str, severity: str) -> None:
        self.pending_feedback.append(FeedbackItem(message=message, severity=severity))

    def drain(self) -> MetricsResponse:
        response = MetricsResponse(
            **self.session.get_metrics().model_dump(),
            reps_completed=self.pending_reps,
            feedback=self.pending_feedback,
        )
        self.pending_reps = 0
        self.pending_feedback = []
        return response


def create_app(config: Optional[TrackerConfig] = None) -> FastAPI:
    """Build the FastAPI app; the session is created in the lifespan."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting physio-track backend …")
        host = HostAdapter(config or load_tracker_config())
        host.session.initialize()
        host.session.start()
        if host.session.init_error is not None:
            logger.warning("Model fallback in effect: %s", host.session.init_error)
        app.state.host = host
        logger.info("Session ready (backend=%s).", host.session.name)
        yield
        host.session.close()
        logger.info("Shutting down.")

    app = FastAPI(title="physio-track API", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post("/api/session/frame", response_model=MetricsResponse)
    async def push_frame(frame: PoseFrame, request: Request):
        host: HostAdapter = request.app.state.host
        await host.session.on_pose_frame(frame)
        return host.drain()

    @app.get("/api/session/metrics", response_model=MetricsResponse)
    async def get_metrics(request: Request):
        return request.app.state.host.drain()

    @app.post("/api/session/reset", response_model=MetricsResponse)
    async def reset_session(request: Request):
        host: HostAdapter = request.app.state.host
        host.session.reset_session()
        return host.drain()

    @app.post(
        "/api/model/train",
        response_model=TrainingSummary,
        responses={
            400: {"model": ErrorResponse},
            409: {"model": ErrorResponse},
            500: {"model": ErrorResponse},
        },
    )
    async def train_model(sequences: list[LabeledSequence], request: Request):
        host: HostAdapter = request.app.state.host
        try:
            return await host.session.train(sequences)
        except TrainingDataError as exc:
            return JSONResponse(
                status_code=400,
                content={"error_code": "INVALID_TRAINING_DATA", "message": str(exc)},
            )
        except ModelBusyError as exc:
            return JSONResponse(
                status_code=409,
                content={"error_code": "MODEL_BUSY", "message": str(exc)},
            )
        except Exception as exc:
            logger.exception("Training failed")
            return JSONResponse(
                status_code=500,
                content={"error_code": "TRAINING_FAILED", "message": f"Training error: {exc}"},
            )

    return app


app = create_app()
