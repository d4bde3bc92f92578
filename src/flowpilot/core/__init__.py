"""Core engine for flowpilot: cache, overlay, orchestration and resilience."""
