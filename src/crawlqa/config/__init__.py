"""
Configuration package.
"""

from .settings import (
    SUPPORTED_ENGINES,
    BrowserConfig,
    CrawlConfig,
    CrawlQAConfig,
    ExecutionConfig,
    OracleConfig,
    TimeoutConfig,
    load_config,
)

__all__ = [
    'SUPPORTED_ENGINES',
    'BrowserConfig',
    'CrawlConfig',
    'CrawlQAConfig',
    'ExecutionConfig',
    'OracleConfig',
    'TimeoutConfig',
    'load_config',
]
