import logging
import secrets
from typing import Optional, Union

from fastapi import Depends, FastAPI, HTTPException, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .artifacts import (
    METADATA_FILENAME,
    filter_fields,
    load_metadata,
    resolve_artifact,
    summarize_qualities,
)
from .config import Settings
from .database import TaskStore
from .dispatch import EXECUTOR_THREADS, TaskDispatcher
from .errors import ArtifactNotFoundError, MetadataError
from .jobs import get_job_kind
from .log import configure_logging
from .models import Task, TaskStatus, TaskType
from .runner import TaskRunner
from .utils import new_task_id, utc_now

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"

Offset = Union[str, int, float]


class VideoRequest(BaseModel):
    url: Optional[str] = None
    video_format: Optional[str] = None
    audio_format: Optional[str] = None
    output_format: Optional[str] = None
    start_time: Optional[Offset] = None
    end_time: Optional[Offset] = None
    force_keyframes: Optional[bool] = False


class AudioRequest(BaseModel):
    url: Optional[str] = None
    audio_format: Optional[str] = None
    output_format: Optional[str] = None


class LiveVideoRequest(BaseModel):
    url: Optional[str] = None
    duration: Optional[Offset] = None
    video_format: Optional[str] = None
    audio_format: Optional[str] = None
    output_format: Optional[str] = None


class LiveAudioRequest(BaseModel):
    url: Optional[str] = None
    duration: Optional[Offset] = None
    audio_format: Optional[str] = None
    output_format: Optional[str] = None


class InfoRequest(BaseModel):
    url: Optional[str] = None


api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)


def require_api_key(request: Request, api_key: Optional[str] = Security(api_key_header)) -> None:
    expected = request.app.state.settings.api_key
    if not expected:
        logger.error("Rejecting request: API_KEY is not configured")
        raise HTTPException(status_code=500, detail="API_KEY not configured on server")
    if not api_key or not secrets.compare_digest(api_key, expected):
        logger.warning("Authentication failed path=%s", request.url.path)
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


def _normalize(value):
    """Store numbers as text so offsets and durations keep one column type."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


def build_task(task_type: TaskType, payload: BaseModel, key_name: str) -> Task:
    """New `waiting` record for a job request, with the job kind's defaults filled in."""
    kind = get_job_kind(task_type)
    fields = payload.model_dump(exclude={"url", "force_keyframes"})
    params = {
        name: _normalize(value) if value not in (None, "") else kind.defaults.get(name)
        for name, value in fields.items()
    }
    return Task(
        task_id=new_task_id(),
        key_name=key_name,
        task_type=task_type.value,
        status=TaskStatus.WAITING.value,
        url=payload.url,
        force_keyframes=bool(getattr(payload, "force_keyframes", False)),
        created_at=utc_now(),
        **params,
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()

    store = TaskStore(settings.database_url)
    runner = TaskRunner(store, settings)
    dispatcher = TaskDispatcher(runner, settings)

    app = FastAPI(title="ytdlp-tasks", version=__version__)
    app.state.settings = settings
    app.state.store = store
    app.state.dispatcher = dispatcher

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    def on_startup():
        """Prepare the downloads directory and the database."""
        settings.downloads_dir.mkdir(parents=True, exist_ok=True)
        store.init_schema()
        # Celery workers outlive this process and still own their queued tasks.
        if settings.task_executor == EXECUTOR_THREADS:
            store.recover_interrupted()
        logger.info(
            "ytdlp-tasks ready api_key_configured=%s downloads_dir=%s executor=%s max_workers=%d",
            bool(settings.api_key),
            settings.downloads_dir,
            settings.task_executor,
            settings.max_workers,
        )

    @app.on_event("shutdown")
    def on_shutdown():
        dispatcher.shutdown()
        store.dispose()

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    def submit(task_type: TaskType, payload: BaseModel) -> dict:
        if not payload.url:
            raise HTTPException(status_code=400, detail="URL is required")

        task = build_task(task_type, payload, settings.api_key_name)
        store.upsert(task)
        logger.info("Created task task_id=%s type=%s url=%s", task.task_id, task.task_type, task.url)
        dispatcher.submit(task.task_id)
        return {"status": TaskStatus.WAITING.value, "task_id": task.task_id}

    auth = [Depends(require_api_key)]

    @app.post("/get_video", dependencies=auth)
    def get_video(payload: VideoRequest):
        return submit(TaskType.GET_VIDEO, payload)

    @app.post("/get_audio", dependencies=auth)
    def get_audio(payload: AudioRequest):
        return submit(TaskType.GET_AUDIO, payload)

    @app.post("/get_live_video", dependencies=auth)
    def get_live_video(payload: LiveVideoRequest):
        return submit(TaskType.GET_LIVE_VIDEO, payload)

    @app.post("/get_live_audio", dependencies=auth)
    def get_live_audio(payload: LiveAudioRequest):
        return submit(TaskType.GET_LIVE_AUDIO, payload)

    @app.post("/get_info", dependencies=auth)
    def get_info(payload: InfoRequest):
        return submit(TaskType.GET_INFO, payload)

    @app.get("/status/{task_id}", dependencies=auth)
    def get_status(task_id: str):
        """
        Full task record. Clients poll this until status is completed or failed.
        """
        task = store.get(task_id)
        if not task:
            raise HTTPException(status_code=404, detail="Task not found")
        return task.to_dict()

    @app.get("/files/{task_id}/{filename}")
    def get_file(task_id: str, filename: str, request: Request):
        """
        Serve an artifact of a task.

        For info.json the query string selects what comes back: `qualities`
        summarizes the available formats, any other parameter names pick
        top-level fields, and `raw` skips JSON handling altogether.
        `raw=true` sends any file as a download instead of inline.
        """
        try:
            path = resolve_artifact(settings.downloads_dir, task_id, filename)
        except ArtifactNotFoundError:
            raise HTTPException(status_code=404, detail="File not found")

        params = dict(request.query_params)
        raw = params.pop("raw", None)
        wants_qualities = "qualities" in params
        params.pop("qualities", None)

        if filename == METADATA_FILENAME and not raw:
            try:
                info = load_metadata(path)
            except MetadataError as e:
                logger.error("Bad metadata document task_id=%s: %s", task_id, e)
                raise HTTPException(status_code=500, detail=str(e))

            if wants_qualities:
                return summarize_qualities(info)
            if params:
                return filter_fields(info, params.keys())
            return info

        if raw == "true":
            return FileResponse(path, filename=path.name)
        return FileResponse(path)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


def run() -> None:
    import uvicorn

    settings = Settings.from_env()
    configure_logging(settings.log_level)
    logger.info("Starting ytdlp-tasks host=%s port=%s", settings.host, settings.port)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
