"""
model-router FastAPI server example.

Exposes the router's five operations as a small REST API.

Prerequisites:
    pip install "model-router[examples]"
    export OPENAI_API_KEY=... GOOGLE_API_KEY=... ANTHROPIC_API_KEY=...

Run:
    uvicorn examples.fastapi_server:app --reload

Usage:
    curl -X POST http://localhost:8000/route \
        -H "Content-Type: application/json" \
        -d '{"query": "Implement an LRU cache in Python"}'
"""

import json
from contextlib import asynccontextmanager
from typing import Optional

from model_router import RateLimitExceeded, Router, RouterError

try:
    from fastapi import FastAPI, HTTPException
    from pydantic import BaseModel
except ImportError:
    raise ImportError(
        "FastAPI is required for this example. "
        "Install with: pip install fastapi uvicorn"
    )

# ── Router Setup ──

router = Router({
    "models": {
        "o3": {"provider": "openai", "model_name": "o3", "cost_per_1k_tokens": 0.06},
        "gemini-1.5-pro": {
            "provider": "google",
            "model_name": "gemini-1.5-pro",
            "cost_per_1k_tokens": 0.0035,
        },
        "claude-3-5-sonnet": {
            "provider": "anthropic",
            "model_name": "claude-3-5-sonnet-20241022",
            "cost_per_1k_tokens": 0.015,
        },
    },
    "settings": {
        "default_model": "o3",
        "fallback_model": "claude-3-5-sonnet",
        "rate_limits": {"requests_per_minute": 50, "burst_limit": 10},
    },
})


# ── FastAPI App ──

@asynccontextmanager
async def lifespan(app: FastAPI):
    await router.start()
    yield
    await router.stop()


app = FastAPI(title="Model Router", lifespan=lifespan)


class RouteRequest(BaseModel):
    query: str
    context: str = ""
    model: Optional[str] = None
    prioritize: Optional[str] = None
    client_id: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    reasoning_level: Optional[str] = None


@app.post("/route")
async def route(req: RouteRequest):
    try:
        result = await router.route_query({
            **req.model_dump(exclude={"prioritize"}),
            "preferences": {"prioritize": req.prioritize},
        })
    except RateLimitExceeded as e:
        raise HTTPException(status_code=429, detail=e.to_dict())
    except RouterError as e:
        raise HTTPException(status_code=502, detail=e.to_dict())
    return result.to_dict()


@app.get("/recommendations")
async def recommendations(query: str, limit: int = 3):
    result = await router.get_model_recommendations({"query": query, "limit": limit})
    return json.loads(result.response)


@app.get("/models")
async def models():
    return json.loads((await router.list_models()).response)


@app.get("/stats")
async def stats(period: str = "all", model: Optional[str] = None):
    try:
        result = await router.get_stats(period=period, model=model)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return json.loads(result.response)


@app.get("/health")
async def health():
    return json.loads((await router.health_check()).response)
