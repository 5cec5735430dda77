"""Application wiring: container, lifecycle, app factory."""
