"""
HTTP control surface for runs.
"""

from .api import create_app

__all__ = ['create_app']
