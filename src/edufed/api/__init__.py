"""
EduFed Coordination API Module

FastAPI-based REST API used by the e-learning dashboards.
"""

from edufed.api.main import app, create_app

__all__ = ["app", "create_app"]
