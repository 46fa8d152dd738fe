"""
Multi-engine test execution.
"""

from .cross_browser import CrossBrowserRunner, consensus

__all__ = ['CrossBrowserRunner', 'consensus']
