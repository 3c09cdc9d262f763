from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api import actions, health
from .config import settings
from .core.execution.chain_client import get_chain_client
from .logging_config import setup_logging

setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # The RPC client holds a pooled httpx connection
    await get_chain_client().close()


app = FastAPI(
    title="Chainpilot API",
    description="Conversational on-chain action execution for a single wallet",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(health.router, tags=["Health"])
app.include_router(actions.router, tags=["Actions"])


@app.get("/")
async def root():
    """Service name, chain and the main entry points"""
    return {
        "name": "Chainpilot API",
        "version": __version__,
        "chain": settings.chain_name,
        "chainId": settings.chain_id,
        "endpoints": {
            "docs": "/docs",
            "health": "/healthz",
            "actions": "/actions",
            "portfolio": "/actions/portfolio",
        },
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "chainpilot.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
