"""Route group exports."""

from . import health, pricing, routing, settlement, tracking

__all__ = ["health", "tracking", "routing", "pricing", "settlement"]
