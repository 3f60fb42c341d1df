"""
adcraft.integrations - External Service Integration Layer
===========================================================

Adapters for the third-party AI services the agent stages depend on. Each
integration sits behind an interface so a real backend and the mock can be
swapped by configuration.

Sub-packages:
    generation/ - vision analysis, chat, image and video generation
"""

__all__: list[str] = []
