"""
Portal Calendar API Routes Package.

Use this module to import routers for registration with the FastAPI app.

Example:
    from api.routes import calendar_router

    app.include_router(calendar_router)
"""

from api.routes.calendar import router as calendar_router


__all__ = [
    "calendar_router",
]
