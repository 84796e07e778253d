import logging
from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI, Request
from fastapi.responses import FileResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles
from adventure.api.deps import get_controller
from adventure.api.v1.endpoints import session
from adventure.core.config import BASE_DIR, settings
from adventure.scheduler import LoadingTicker, scheduler
from adventure.services.session_controller import SessionController
from adventure.services.sse_service import broadcaster, sse_generator
from adventure.services.story_generator import StoryGenerator

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Handles application startup and shutdown events.
    """
    # Startup
    logging.basicConfig(level=settings.LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    scheduler.start()
    app.state.controller = SessionController(
        generator=StoryGenerator(),
        ticker=LoadingTicker(scheduler),
        on_change=broadcaster.publish,
    )
    logging.info(f"Storyteller ready (model: {settings.OPENAI_MODEL}, images: {settings.OPENAI_IMAGE_MODEL})")

    yield

    # Shutdown
    scheduler.shutdown(wait=False)

app = FastAPI(title="Gemini Adventure", lifespan=lifespan)

# Mount static files
app.mount("/static", StaticFiles(directory=BASE_DIR / "static"), name="static")

@app.get("/")
async def read_index():
    """
    Serves the game page.
    """
    return FileResponse(BASE_DIR / "templates" / "index.html")

@app.get("/events")
async def sse_events(request: Request, controller: SessionController = Depends(get_controller)):
    """
    Endpoint for Server-Sent Events (SSE) streaming session snapshots.
    """
    return StreamingResponse(sse_generator(controller.snapshot), media_type="text/event-stream")

# Include API routers
app.include_router(session.router, prefix="/api/v1", tags=["session"])
