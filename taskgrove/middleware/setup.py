"""
Middleware setup and configuration.
"""
from taskgrove.monitoring import MetricsMiddleware


def setup_middleware(app):
    """Set up all middleware for the FastAPI application."""
    # Must be added before routes
    app.add_middleware(MetricsMiddleware)
