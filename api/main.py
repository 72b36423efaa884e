import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core import db, settings
from core.errors import add_exception_handlers
from core.log import configure_logging
from users.router import router as users_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging()
    # Resolve the api-key once; the pool resolves the connection string.
    settings.api_key()
    # Initialize the DB pool once per process.
    await db.init_pool()
    try:
        yield
    finally:
        await db.close_pool()


app = FastAPI(lifespan=lifespan)

origins = settings.cors_origins()
if origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

add_exception_handlers(app)
app.include_router(users_router, tags=["users"])


@app.get("/")
async def health():
    try:
        await db.check_connection()
    except Exception as exc:
        logger.warning("health_check_failed error=%s", exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            media_type="application/problem+json",
            content={
                "type": "about:blank",
                "title": "An error occurred while processing your request.",
                "status": status.HTTP_500_INTERNAL_SERVER_ERROR,
                "detail": f"Connection failed: {exc}",
            },
        )
    return "Supabase DB connected successfully!"
