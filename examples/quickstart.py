"""
model-router quickstart: Minimal example.

Prerequisites:
    pip install model-router
    export OPENAI_API_KEY=... ANTHROPIC_API_KEY=...
"""

import asyncio
import logging

from model_router import RateLimitExceeded, Router, RouterError

CONFIG = {
    "models": {
        "o3-mini": {
            "provider": "openai",
            "model_name": "o3-mini",
            "cost_per_1k_tokens": 0.0044,
        },
        "claude-3-5-sonnet": {
            "provider": "anthropic",
            "model_name": "claude-3-5-sonnet-20241022",
            "cost_per_1k_tokens": 0.015,
        },
    },
    "settings": {
        "default_model": "o3-mini",
        "fallback_model": "claude-3-5-sonnet",
    },
}


async def main():
    logging.basicConfig(level=logging.INFO)

    async with Router(CONFIG) as router:
        query = "Why does quicksort degrade to O(n^2) on sorted input?"
        print(f"Would pick: {router.selector.select_best_model(query)}")

        try:
            result = await router.route_query({"query": query, "client_id": "quickstart"})
        except RateLimitExceeded as e:
            print(f"Slow down, retry in {e.retry_after}s")
            return
        except RouterError as e:
            print(f"Error: {e}")
            return

        print(f"Response: {result.response}")
        print(f"Model: {result.model}")
        print(f"Tokens: {result.usage.total_tokens}  Cost: ${result.cost:.4f}")
        print(f"Latency: {result.duration:.0f}ms")


if __name__ == "__main__":
    asyncio.run(main())
