from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
import os
import uvicorn

from app.cleanup import StagingJanitor
from app.config import Settings
from app.exceptions import PayloadTooLarge, SinkWriteFailure, ValidationError
from app.file_handlers import router, store
from app.logging_config import setup_logging

logger = setup_logging("app")

app = FastAPI(title="Chunked Upload Receiver")

# CORS setup if needed
app.add_middleware(
    CORSMiddleware,
    allow_origins=Settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)

os.makedirs(Settings.UPLOAD_DIR, exist_ok=True)

janitor = StagingJanitor(store, Settings.STAGING_TTL_SECONDS, Settings.CLEANUP_INTERVAL_SECONDS)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    logger.warning(f"Rejected chunk: {exc} path={request.url.path}")
    return PlainTextResponse(str(exc), status_code=400)


@app.exception_handler(PayloadTooLarge)
async def payload_too_large_handler(request: Request, exc: PayloadTooLarge):
    return PlainTextResponse(str(exc), status_code=413)


@app.exception_handler(SinkWriteFailure)
async def sink_write_failure_handler(request: Request, exc: SinkWriteFailure):
    # detail stays in the log, never in the response
    logger.error(f"Upload failed: {exc} path={request.url.path}")
    return PlainTextResponse("Internal Server Error", status_code=500)


# Only PUT /upload exists; wrong methods answer like unknown paths
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code in (404, 405):
        return PlainTextResponse("Not Found", status_code=404)
    return PlainTextResponse(str(exc.detail), status_code=exc.status_code)


@app.on_event("startup")
async def start_cleanup():
    await janitor.start()
    logger.info(f"Accepting chunks on PUT /upload, writing files to {os.path.abspath(Settings.UPLOAD_DIR)}")


@app.on_event("shutdown")
async def stop_cleanup():
    await janitor.stop()
    if len(store):
        logger.warning(f"Shutting down with {len(store)} incomplete uploads in memory")


if __name__ == "__main__":
    uvicorn.run(app, host=Settings.HOST, port=Settings.PORT)
