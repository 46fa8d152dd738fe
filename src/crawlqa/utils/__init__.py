"""
Utility modules for URL handling and run artifacts.
"""

from .artifacts import ArtifactStore, sanitize_filename
from .navigation import (
    NavigationUtils,
    clean_url,
    is_navigable_url,
    is_virtual_url,
    same_document,
    virtual_page_url,
)

__all__ = [
    'ArtifactStore', 'sanitize_filename',
    'NavigationUtils', 'clean_url', 'is_navigable_url', 'is_virtual_url',
    'same_document', 'virtual_page_url',
]
