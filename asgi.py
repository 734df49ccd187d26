"""
asgi.py -- Application assembly for the backup dashboard.

api/main.py owns the FastAPI app and every router. This module is the stable
import path for the ASGI server so deployment config does not depend on the
internal layout.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app

__all__ = ["app"]
