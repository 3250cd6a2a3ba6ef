import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from chat_server.routers.chat import router as chat_router
from chat_server.routers.journey import router as journey_router
from .config import CONFIG
from .deps import get_session_store
from .gemini import GeminiChatFactory
from .sessions import SessionStore


# --- Logging Configuration ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler()
    ]
)
# --------------------------

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address, default_limits=[CONFIG.rate_limit])


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.sessions = SessionStore(ttl_sec=CONFIG.session_ttl_sec)
    if CONFIG.gemini_api_key:
        app.state.chat_factory = GeminiChatFactory(
            CONFIG.gemini_api_key, CONFIG.gemini_model, CONFIG.grounding_tool
        )
    else:
        app.state.chat_factory = None
        logger.warning("GEMINI_API_KEY is not set; chat endpoints will answer 500")
    try:
        yield
    finally:
        app.state.sessions.close()


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


app = FastAPI(title="Tokyo Travel Chat", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_middleware(SlowAPIMiddleware)
app.include_router(chat_router, prefix="/api/chat")
app.include_router(journey_router, prefix="/api/journey")


@app.get("/")
async def root(store: SessionStore = Depends(get_session_store)):
    return {"status": "ok", "sessions": len(store)}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=CONFIG.port)
