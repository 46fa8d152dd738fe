"""
UI state fingerprinting and change detection.
"""

from .detector import (
    StateChangeDetector,
    StateDelta,
    StateFingerprint,
    compare,
    fingerprint_html,
)

__all__ = ['StateChangeDetector', 'StateDelta', 'StateFingerprint', 'compare', 'fingerprint_html']
