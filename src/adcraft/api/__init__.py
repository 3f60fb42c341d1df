"""
adcraft.api - HTTP Surface
============================

FastAPI application exposing the three agent stages behind the
``{success, data|error, timestamp, requestId}`` envelope.
"""

from adcraft.api.app import create_app

__all__ = ["create_app"]
