"""
Breadth-first discovery. The engine lives in `crawlqa.discovery.engine`.
"""

from .queue_manager import EXHAUSTED, MAX_PAGES, STOPPED, QueueManager

__all__ = ['EXHAUSTED', 'MAX_PAGES', 'STOPPED', 'QueueManager']
