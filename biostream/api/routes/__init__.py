"""
API route modules.
"""

from biostream.api.routes import health

__all__ = ["health"]
