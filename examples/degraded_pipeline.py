"""
Degraded Pipeline Example: Outages and Fallbacks
===================================================

This example shows what a user sees while the generation services are
failing:

    - a transient outage is retried and never surfaces
    - a persistent image outage ends in a demo placeholder asset
    - repeated failures open the service's circuit breaker
    - the health snapshot reports the pipeline as degraded

Usage:
    python examples/degraded_pipeline.py
"""

from __future__ import annotations

import asyncio

from adcraft.core.config import AdCraftConfig, ResilienceConfig
from adcraft.core.exceptions import ServiceUnavailableError
from adcraft.facade import AdCraft
from adcraft.integrations.generation.mock import MockGenerationProvider


async def main() -> None:
    """Generate assets while the mock provider fails, then print health."""
    config = AdCraftConfig(resilience=ResilienceConfig(retry_delay=0.1))
    provider = MockGenerationProvider()

    async with AdCraft(config, generation_provider=provider) as adcraft:
        session = await adcraft.maya.initialize()
        sid = session.session_id
        await adcraft.maya.analyze(sid, "Linen desk lamp")
        await adcraft.maya.handoff(sid)
        await adcraft.david.initialize(sid)

        # --- Transient failure: retried transparently ---
        provider.queue_error(ServiceUnavailableError("imagen overloaded", service="imagen"))
        reply = await adcraft.david.generate_asset(sid, "Lamp on an oak desk")
        print(f"After one outage : {reply.asset.status.value}, degraded={reply.degraded}")

        # --- Persistent failure: fallback chain ends in a placeholder ---
        provider.set_should_fail(True)
        for attempt in range(1, 4):
            reply = await adcraft.david.generate_asset(sid, f"Lamp close-up #{attempt}")
            print(
                f"Outage attempt {attempt} : {reply.asset.status.value}, "
                f"fallback={reply.fallback_type}, cost=${reply.cost:.2f}"
            )

        health = adcraft.health()
        print()
        print(f"Health           : {health.status}")
        print(f"Open circuits    : {health.resilience.open_circuits or 'none'}")
        print(f"Errors handled   : {health.errors.total_errors}")
        print(f"Errors resolved  : {health.errors.resolved_errors}")
        for category, count in health.errors.errors_by_category.items():
            print(f"  {category:16s} {count}")


if __name__ == "__main__":
    asyncio.run(main())
