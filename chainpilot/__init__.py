"""chainpilot: turn chat-style instructions into confirmed on-chain actions."""

__version__ = "0.1.0"
