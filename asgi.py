"""
asgi.py -- ASGI entry point for Waypoint Identity.

Run with:  uvicorn asgi:app --reload
           python main.py serve

api/main.py assembles the application; this module is the stable import
path process managers point at.
"""

from api.main import app

__all__ = ["app"]
