"""
Crawl Configuration

Dataclass configuration for discovery, browser, oracle and cross-browser
execution, plus a YAML loader with environment overrides.
"""

import logging
import os
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from ..core.errors import ConfigError

logger = logging.getLogger(__name__)

SUPPORTED_ENGINES = ("chromium", "firefox", "webkit")


@dataclass
class TimeoutConfig:
    """Per-operation timeouts in milliseconds."""
    navigation_timeout: int = 30000
    action_timeout: int = 5000
    element_wait_timeout: int = 3000
    settle_timeout: int = 2000


@dataclass
class CrawlConfig:
    """Limits and pacing for breadth-first discovery."""
    max_depth: int = 3
    max_pages: int = 50
    navigation_attempts: int = 2
    retry_delay: float = 2.0  # seconds between navigation attempts
    action_delay: float = 0.5  # seconds after each scenario step
    same_domain_only: bool = True
    accept_cookies: bool = True
    max_scenarios_per_page: int = 10
    auth_username: Optional[str] = None
    auth_password: Optional[str] = None


@dataclass
class BrowserConfig:
    """Configuration for browser setup."""
    engine: str = "chromium"
    headless: bool = True
    viewport_width: int = 1280
    viewport_height: int = 720
    user_agent: str = 'Mozilla/5.0 (compatible; CrawlQA/1.0; Autonomous Testing Agent)'
    args: List[str] = None

    def __post_init__(self):
        if self.args is None:
            self.args = ['--no-sandbox', '--disable-dev-shm-usage']


@dataclass
class OracleConfig:
    """Decision oracle selection and model parameters."""
    provider: str = "openai"  # openai | systematic
    model: str = "gpt-4o"
    api_key: Optional[str] = None
    max_tokens: int = 2000
    temperature: float = 0.2
    max_elements: int = 60


@dataclass
class ExecutionConfig:
    """Cross-browser test execution."""
    engines: List[str] = None
    parallel: bool = False
    screenshot_each_step: bool = True
    enable_healing: bool = True

    def __post_init__(self):
        if self.engines is None:
            self.engines = list(SUPPORTED_ENGINES)


@dataclass
class CrawlQAConfig:
    """Main configuration."""
    crawl: CrawlConfig = None
    browser: BrowserConfig = None
    timeouts: TimeoutConfig = None
    oracle: OracleConfig = None
    execution: ExecutionConfig = None
    artifacts_dir: str = "crawl_sessions"
    database: Optional[str] = None

    def __post_init__(self):
        if self.crawl is None:
            self.crawl = CrawlConfig()
        if self.browser is None:
            self.browser = BrowserConfig()
        if self.timeouts is None:
            self.timeouts = TimeoutConfig()
        if self.oracle is None:
            self.oracle = OracleConfig()
        if self.execution is None:
            self.execution = ExecutionConfig()

    @classmethod
    def for_quick_scan(cls) -> 'CrawlQAConfig':
        """Shallow crawl on a single engine."""
        return cls(
            crawl=CrawlConfig(max_depth=1, max_pages=10, max_scenarios_per_page=5),
            execution=ExecutionConfig(engines=["chromium"]),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CrawlQAConfig':
        data = data or {}
        if not isinstance(data, dict):
            raise ConfigError("Configuration root must be a mapping")

        config = cls(
            crawl=_build_section(CrawlConfig, data.get("crawl")),
            browser=_build_section(BrowserConfig, data.get("browser")),
            timeouts=_build_section(TimeoutConfig, data.get("timeouts")),
            oracle=_build_section(OracleConfig, data.get("oracle")),
            execution=_build_section(ExecutionConfig, data.get("execution")),
            artifacts_dir=data.get("artifacts_dir", "crawl_sessions"),
            database=data.get("database"),
        )
        config.validate()
        return config

    def apply_env(self, environ: Optional[Dict[str, str]] = None) -> 'CrawlQAConfig':
        """Fill secrets from the environment when the file leaves them empty."""
        environ = os.environ if environ is None else environ
        if not self.oracle.api_key:
            self.oracle.api_key = environ.get("OPENAI_API_KEY")
        if not self.crawl.auth_username:
            self.crawl.auth_username = environ.get("CRAWLQA_AUTH_USERNAME")
        if not self.crawl.auth_password:
            self.crawl.auth_password = environ.get("CRAWLQA_AUTH_PASSWORD")
        return self

    def validate(self) -> None:
        if self.crawl.max_depth < 0:
            raise ConfigError("crawl.max_depth must be >= 0")
        if self.crawl.max_pages < 1:
            raise ConfigError("crawl.max_pages must be >= 1")
        if self.crawl.navigation_attempts < 1:
            raise ConfigError("crawl.navigation_attempts must be >= 1")
        unknown = [e for e in self.execution.engines if e not in SUPPORTED_ENGINES]
        if unknown or not self.execution.engines:
            raise ConfigError(f"Unsupported engines: {unknown or 'none configured'}")
        if self.browser.engine not in SUPPORTED_ENGINES:
            raise ConfigError(f"Unsupported browser engine: {self.browser.engine}")
        if self.oracle.provider not in ("openai", "systematic"):
            raise ConfigError(f"Unknown oracle provider: {self.oracle.provider}")


def _build_section(section_cls, values: Optional[Dict[str, Any]]):
    if values is None:
        return section_cls()
    if not isinstance(values, dict):
        raise ConfigError(f"Section for {section_cls.__name__} must be a mapping")

    known = {f.name for f in fields(section_cls)}
    for key in values:
        if key not in known:
            logger.warning(f"Ignoring unknown {section_cls.__name__} option: {key}")
    return section_cls(**{k: v for k, v in values.items() if k in known})


def load_config(path: Optional[str] = None) -> CrawlQAConfig:
    """
    Load configuration from a YAML file and the environment.

    A missing file yields defaults; an unparsable one raises ConfigError.
    """
    load_dotenv()

    data: Dict[str, Any] = {}
    if path:
        try:
            with open(path, 'r') as file:
                data = yaml.safe_load(file) or {}
            logger.info(f"Loaded configuration from {path}")
        except FileNotFoundError:
            logger.warning(f"No {path} found, using defaults")
        except yaml.YAMLError as e:
            raise ConfigError(f"Error parsing {path}: {e}") from e

    return CrawlQAConfig.from_dict(data).apply_env()
