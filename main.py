# FILE: main.py
"""
Blender Agent Backend - FastAPI Application

Runs the ReAct orchestrator behind a small REST surface:
- Natural-language scene generation through a live Blender addon (TCP)
- Asset import from Hyper3D / Sketchfab / PolyHaven with circuit breakers
- Blender API documentation retrieval (local embeddings + pgvector)
- Conversation history (SQLAlchemy)
- FIFO background generation jobs
"""
import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load .env FIRST before any other imports that might need env vars
load_dotenv()

from blender_agent import __version__, config
from blender_agent.api.router import register_error_handlers, router as api_router
from blender_agent.db import init_db
from blender_agent.errors import EmbeddingDimensionError
from blender_agent.llm.providers import available_models
from blender_agent.services import get_services

logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)
logger = logging.getLogger("blender_agent.main")

app = FastAPI(
    title="Blender Agent",
    version=__version__,
    description="ReAct agent that builds Blender scenes from natural-language prompts",
)

# ====== CORS ======

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)


# ====== STARTUP ======

@app.on_event("startup")
async def on_startup():
    os.makedirs("data", exist_ok=True)
    init_db()

    services = get_services()

    if config.KNOWLEDGE_DATABASE_URL:
        try:
            checked = services.knowledge.verify_dimensions()
            logger.info("[startup] embedding dimensions: [OK] %s", checked)
        except EmbeddingDimensionError:
            logger.critical("[startup] embedding dimension mismatch; refusing to start")
            raise
    else:
        logger.info("[startup] KNOWLEDGE_DATABASE_URL not set - documentation retrieval disabled")

    for entry in available_models():
        logger.info("[startup] %s: %s", entry["name"], "[OK] configured" if entry["configured"] else "[X] not configured")

    connected = await services.connection.start()
    logger.info(
        "[startup] Blender at %s:%s: %s",
        config.BLENDER_TCP_HOST, config.BLENDER_TCP_PORT,
        "[OK] connected" if connected else "[X] not reachable, retrying in background",
    )
    await services.jobs.start()


@app.on_event("shutdown")
async def on_shutdown():
    services = get_services()
    await services.jobs.stop()
    await services.connection.close()


# ====== ROUTERS ======

app.include_router(api_router, prefix="/api")


@app.get("/")
def root():
    return {"name": "Blender Agent", "version": __version__, "api": "/api"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=os.getenv("HOST", "127.0.0.1"), port=int(os.getenv("PORT", "8000")))
