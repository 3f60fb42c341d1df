"""
Full Pipeline Example: Maya → David → Zara
==========================================

This example drives one session through all three stages with the mock
generation provider:

    1. Maya analyzes the product and hands off
    2. David records visual decisions, generates a hero image and hands off
    3. Zara produces a 15 second commercial and the user accepts it

Usage:
    python examples/full_pipeline.py
"""

from __future__ import annotations

import asyncio

from adcraft.core.config import AdCraftConfig
from adcraft.core.enums import Locale
from adcraft.facade import AdCraft


async def main() -> None:
    """Run the three stages for one product and print the outcome."""
    config = AdCraftConfig()

    async with AdCraft(config) as adcraft:
        print("=" * 60)
        print("  AdCraft: Full Pipeline")
        print("=" * 60)
        print()

        # --- Stage 1: product intelligence ---
        session = await adcraft.maya.initialize(locale=Locale.EN)
        sid = session.session_id
        analysis = await adcraft.maya.analyze(
            sid,
            "Ceramic pour-over coffee set\nHandmade, matte glaze, two cups",
            visual_preferences={"style": "minimalist", "mood": "calm"},
        )
        print(f"Session         : {sid}")
        print(f"Product         : {analysis.analysis.product.get('name')}")
        print(f"Analysis cost   : ${analysis.cost:.2f}")
        await adcraft.maya.handoff(sid)

        # --- Stage 2: creative direction ---
        await adcraft.david.initialize(sid)
        await adcraft.david.select_visual_decision(sid, "style", "minimalist")
        await adcraft.david.select_visual_decision(sid, "color_palette", "sand, white, walnut")
        asset = await adcraft.david.generate_asset(sid, "Pour-over set on a marble counter")
        print(f"Hero asset      : {asset.asset.url} ({asset.asset.status.value})")
        await adcraft.david.handoff(sid)

        # --- Stage 3: video production ---
        await adcraft.zara.initialize(sid)
        await adcraft.zara.select_narrative(sid, "story-driven")
        await adcraft.zara.select_music(sid, "acoustic")
        production = await adcraft.zara.start_production(sid, duration=15)
        print(f"Commercial      : {production.production.video_url}")
        final = await adcraft.zara.accept_production(sid)
        print()

        # --- Summary ---
        print(f"Session Status  : {final.status.value}")
        print(f"Completed Stages: {', '.join(s.value for s in final.completed_stages)}")
        print("Costs:")
        for category, amount in final.costs.by_category.items():
            print(f"  {category:18s} ${amount:.2f}")
        print(f"  {'total':18s} ${final.costs.total:.2f}")
        print()

        health = adcraft.health()
        print(f"Health          : {health.status} ({health.errors.total_errors} errors)")


if __name__ == "__main__":
    asyncio.run(main())
