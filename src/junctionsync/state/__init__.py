"""State/policy layer.

This package is the single source of truth for how a candidate document
received from any path (local publish, polling, websocket, stream, or an
endpoint write) is admitted against the currently held copy.
"""
