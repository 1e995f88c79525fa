"""
API route modules.

Import all route modules here for easy access.
"""

from talkarchive.api.routes import cron, search, videos

__all__ = ["cron", "search", "videos"]
