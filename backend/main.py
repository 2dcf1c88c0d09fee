import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from settings import settings
from services.stream_registry import StreamRegistry

logging.basicConfig(level=settings.get_log_level())
logger = logging.getLogger(__name__)

# 1. Setup App
app = FastAPI(title="Night Monkey Relay")

# 2. Setup CORS (the stream id travels in a header so the UI can interrupt it)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["x-stream-id", "x-model"]
)

# 3. One stream registry for the whole process
app.state.stream_registry = StreamRegistry()

if not settings.get_api_key("openai"):
    logger.warning("OPENAI_API_KEY environment variable not set")

# 4. Include Routers
from routers import responses, models, settings as settings_router
app.include_router(responses.router)
app.include_router(models.router)
app.include_router(settings_router.router)

@app.get("/")
def read_root():
    return {"status": "Night Monkey relay is running", "active_streams": app.state.stream_registry.count()}
