"""
asgi.py -- Application assembly for the Exa platform.

This is the ONLY file that imports from both api/ and web/. It joins the two
independent layers into a single ASGI app without coupling them to each other.
api/main.py knows nothing about web/; web/routes.py reuses only the shared
CORS wrapper and rate limiter from api/.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app
from web.routes import router as web_router

# Mount the web pages here, not in api/main.py.
app.include_router(web_router, tags=["Web UI"])
