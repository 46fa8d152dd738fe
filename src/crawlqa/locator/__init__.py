"""
Element location with automatic fallback strategies.
"""

from .self_healing import (
    ActionOutcome,
    Candidate,
    HealRecord,
    SelfHealingLocator,
    TargetHints,
    build_candidates,
    normalize_selector,
)

__all__ = [
    'ActionOutcome', 'Candidate', 'HealRecord', 'SelfHealingLocator', 'TargetHints',
    'build_candidates', 'normalize_selector',
]
