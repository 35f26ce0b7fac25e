"""depthwatch - live Polymarket order book viewer."""

__version__ = "0.1.0"
