"""FastAPI route modules.

Exports all route modules for inclusion in the main application.
"""

from src.api.routes import thread_actions

__all__ = ["thread_actions"]
