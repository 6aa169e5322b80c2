from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from rankbuddy.api.wildcard import router as wildcard_router
from rankbuddy.core import metrics
from rankbuddy.core.redis_client import close_redis, get_redis
from rankbuddy.utils.logger import configure_logging, logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("RankBuddy API starting")
    yield
    try:
        await close_redis()
    except Exception as e:
        logger.warning(f"Failed to close Redis cleanly: {e}")


app = FastAPI(title="RankBuddy API", version="1.0.0", lifespan=lifespan)

app.add_middleware(GZipMiddleware, minimum_size=1000)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(wildcard_router, prefix="/api/wildcard", tags=["Wildcard"])


@app.get("/")
def root():
    return {"status": "RankBuddy API Running"}


@app.get("/health")
async def health_check():
    """Simple health check endpoint for load balancers/monitoring"""
    try:
        await get_redis().ping()
        return {"status": "healthy"}
    except Exception as e:
        raise HTTPException(status_code=503, detail=f"Service unhealthy: {str(e)}")


@app.get("/api/metrics")
async def metrics_counters():
    return {"counters": await metrics.counters_snapshot()}
