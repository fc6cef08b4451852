"""
API route modules.
"""

from routes.upload import router as upload_router

__all__ = [
    "upload_router",
]
