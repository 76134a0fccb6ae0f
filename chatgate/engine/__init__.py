"""Chat-network engine implementations."""

from chatgate.engine.bridge import BridgeEngine, bridge_engine_factory

__all__ = ["BridgeEngine", "bridge_engine_factory"]
