"""
API v1 package.

Contains versioned API routes for OTP downloads, payments and internal users.
"""

from src.api.v1.routes import router

__all__ = ["router"]
