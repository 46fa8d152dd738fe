"""
Navigation Utilities

URL normalisation, domain checks and virtual-page URLs for discovery.
"""

import logging
from typing import Optional
from urllib.parse import urlparse, urlunparse

logger = logging.getLogger(__name__)

VIRTUAL_FRAGMENT_PREFIX = "virtual-"


class NavigationUtils:
    """
    URL helpers bound to the run's start URL.
    """

    def __init__(self, base_url: str, same_domain_only: bool = True):
        self.base_domain = urlparse(base_url).netloc
        self.same_domain_only = same_domain_only

    def is_same_domain(self, url: str) -> bool:
        """Check if URL belongs to the same domain as base URL."""
        parsed_url = urlparse(url)
        return parsed_url.netloc == self.base_domain or parsed_url.netloc == ''

    def should_enqueue(self, url: str) -> bool:
        """Only http(s) URLs, and only on the start domain unless configured otherwise."""
        if not is_navigable_url(url):
            return False
        if self.same_domain_only and not self.is_same_domain(url):
            logger.debug(f"Skipping off-domain URL {url}")
            return False
        return True


def is_navigable_url(url: Optional[str]) -> bool:
    if not url:
        return False
    if url.startswith(('javascript:', 'mailto:', 'tel:', 'data:', '#')):
        return False
    return urlparse(url).scheme in ('http', 'https')


def clean_url(url: str) -> str:
    """Remove the fragment so two links to the same document compare equal."""
    parsed = urlparse(url)
    return urlunparse((
        parsed.scheme,
        parsed.netloc,
        parsed.path,
        parsed.params,
        parsed.query,
        ''
    ))


def same_document(first: str, second: str) -> bool:
    return clean_url(first).rstrip('/') == clean_url(second).rstrip('/')


def virtual_page_url(parent_url: str, state_identifier: str) -> str:
    """Parent URL plus a synthetic fragment naming the UI state."""
    suffix = state_identifier.rsplit('_', 1)[-1][:8]
    return f"{clean_url(parent_url)}#{VIRTUAL_FRAGMENT_PREFIX}{suffix}"


def is_virtual_url(url: str) -> bool:
    return urlparse(url).fragment.startswith(VIRTUAL_FRAGMENT_PREFIX)
