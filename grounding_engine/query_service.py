"""Query Service: grounded answers to user questions."""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from grounding_engine.api.health import check_all_dependencies, check_readiness
from grounding_engine.core.dependencies import services
from grounding_engine.core.exceptions import (
    DatabaseError,
    LLMError,
    LLMTimeoutError,
    ProviderNotConfiguredError,
)
from grounding_engine.models.response import QueryRequest, QueryResponse
from grounding_engine.monitoring.metrics import (
    grounded_answers_total,
    query_counter,
    query_duration_seconds,
    query_errors_total,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    await services.initialize()
    logger.info("Query Service started")
    yield
    await services.shutdown()
    logger.info("Query Service stopped")


app = FastAPI(title="Query Service", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000", "http://localhost:5174"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.post("/query", response_model=QueryResponse)
async def query(request: QueryRequest) -> QueryResponse:
    """
    Answer a question, grounded in the knowledge base when possible.

    Args:
        request: Query request.

    Returns:
        Answer with document-level citations.
    """
    start_time = time.time()
    query_counter.inc()

    try:
        config = await services.database.get_grounding_config()
        response = await services.query_processor.process_query(request, config)
    except LLMTimeoutError as e:
        query_errors_total.inc()
        logger.error(f"Query timed out: {str(e)}")
        raise HTTPException(status_code=504, detail="The answer took too long to generate")
    except LLMError as e:
        query_errors_total.inc()
        logger.error(f"Query failed: {str(e)}")
        raise HTTPException(status_code=502, detail="The answer could not be generated")
    except ProviderNotConfiguredError as e:
        query_errors_total.inc()
        raise HTTPException(status_code=503, detail=str(e))
    except DatabaseError as e:
        query_errors_total.inc()
        logger.error(f"Query failed: {str(e)}")
        raise HTTPException(status_code=500, detail="Knowledge base unavailable")

    elapsed = time.time() - start_time
    query_duration_seconds.observe(elapsed)
    if response.used_grounding:
        grounded_answers_total.inc()
    logger.info(
        f"Query processed in {elapsed * 1000:.2f}ms "
        f"(grounded={response.used_grounding}, citations={len(response.citations)})"
    )
    return response


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
async def health() -> dict:
    """
    Health check endpoint with dependency verification.

    Returns:
        Health status with service dependencies.
    """
    result = await check_all_dependencies(services.database, services.cache_service)
    return {"service": "query-service", **result}


@app.get("/ready")
async def readiness() -> dict:
    """
    Readiness check endpoint.

    Returns:
        Readiness status.
    """
    result = await check_readiness(services.database, services.cache_service)
    return {"service": "query-service", **result}
