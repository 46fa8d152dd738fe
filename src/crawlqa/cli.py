"""
CrawlQA command line: discover a site, generate test cases and run them
across browser engines.
"""

import argparse
import asyncio
import logging
import sys
import time

from rich.console import Console
from rich.table import Table

from .config.settings import SUPPORTED_ENGINES, CrawlQAConfig, load_config
from .core.errors import ConfigError, OracleError
from .core.models import Run, RunStatus, TestStatus
from .runner import RunController, create_oracle
from .storage.base import DiscoveryStore
from .storage.memory import InMemoryStore
from .storage.sqlite import SqliteStore

logger = logging.getLogger(__name__)
console = Console()

STATUS_STYLES = {
    TestStatus.PASSED: "green",
    TestStatus.FAILED: "red",
    TestStatus.FLAKY: "yellow",
    TestStatus.PENDING: "dim",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='crawlqa',
        description='Autonomous UI discovery and cross-browser regression testing',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Discover and run everything on all engines
  crawlqa https://example.com

  # Offline oracle, shallow crawl, chromium only, keep results
  crawlqa https://example.com --oracle systematic --max-depth 1 --engines chromium --db runs.db

  # Discovery and test generation only
  crawlqa https://example.com --no-execute
        """
    )
    parser.add_argument('url', help='Start URL to discover')
    parser.add_argument('--max-depth', type=int, help='Maximum navigation depth')
    parser.add_argument('--max-pages', type=int, help='Maximum real pages to visit')
    parser.add_argument('--engines', nargs='+', choices=SUPPORTED_ENGINES,
                        help='Engines used for test execution (default: all)')
    parser.add_argument('--config', type=str, help='YAML configuration file')
    parser.add_argument('--db', type=str, help='SQLite database file (default: in memory)')
    parser.add_argument('--headed', action='store_true', help='Show the browser window')
    parser.add_argument('--no-execute', action='store_true',
                        help='Stop after discovery and test case generation')
    parser.add_argument('--oracle', choices=['openai', 'systematic'],
                        help='Scenario oracle (default: from config, openai)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging')
    return parser


def apply_overrides(config: CrawlQAConfig, args: argparse.Namespace) -> CrawlQAConfig:
    if args.max_depth is not None:
        config.crawl.max_depth = args.max_depth
    if args.max_pages is not None:
        config.crawl.max_pages = args.max_pages
    if args.engines:
        config.execution.engines = list(args.engines)
    if args.headed:
        config.browser.headless = False
    if args.oracle:
        config.oracle.provider = args.oracle
    if args.db:
        config.database = args.db
    config.validate()
    return config


def open_store(config: CrawlQAConfig) -> DiscoveryStore:
    if config.database:
        return SqliteStore(config.database)
    return InMemoryStore()


def print_summary(run: Run, store: DiscoveryStore, elapsed: float) -> None:
    color = {RunStatus.COMPLETED: "green", RunStatus.READY_FOR_EXECUTION: "cyan",
             RunStatus.FAILED: "red"}.get(run.status, "yellow")

    summary = Table(title=f"Run {run.id}: {run.target_url}", show_header=False)
    summary.add_column("Metric", style="bold")
    summary.add_column("Value")
    summary.add_row("Status", f"[{color}]{run.status.value}[/{color}]")
    summary.add_row("Pages discovered", str(run.pages_discovered))
    summary.add_row("Test cases", str(run.test_cases))
    summary.add_row("Passed", str(run.passed))
    summary.add_row("Failed", str(run.failed))
    summary.add_row("Flaky", str(run.flaky))
    summary.add_row("Elapsed", f"{elapsed:.1f}s")
    if run.error_message:
        summary.add_row("Error", f"[red]{run.error_message}[/red]")
    console.print(summary)

    test_cases = store.list_test_cases(run.id)
    if not test_cases:
        return

    verdicts = Table(title="Test cases")
    verdicts.add_column("#", justify="right")
    verdicts.add_column("Name")
    verdicts.add_column("Type")
    verdicts.add_column("Verdict")
    verdicts.add_column("Healed", justify="center")
    verdicts.add_column("Duration", justify="right")
    for tc in test_cases:
        style = STATUS_STYLES.get(tc.status, "white")
        duration = f"{tc.duration_ms:.0f}ms" if tc.duration_ms is not None else "-"
        verdicts.add_row(
            str(tc.id), tc.name, tc.type,
            f"[{style}]{tc.status.value}[/{style}]",
            "🩹" if tc.self_healed else "",
            duration,
        )
    console.print(verdicts)


async def run_pipeline(config: CrawlQAConfig, url: str, execute: bool) -> int:
    store = open_store(config)
    controller = RunController(store, config, oracle=create_oracle(config))
    controller.create_run(url)

    start = time.time()
    try:
        run = await controller.run_to_completion(execute=execute)
        print_summary(run, store, time.time() - start)
    finally:
        if isinstance(store, SqliteStore):
            store.close()

    if run.status == RunStatus.FAILED or run.failed:
        return 1
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        config = apply_overrides(load_config(args.config), args)
    except ConfigError as e:
        console.print(f"[red]❌ Invalid configuration: {e}[/red]")
        return 2

    console.print(f"🔗 Target URL: {args.url}")
    console.print(f"🔍 Max depth: {config.crawl.max_depth}, max pages: {config.crawl.max_pages}")
    console.print(f"🧪 Engines: {', '.join(config.execution.engines)}")

    try:
        return asyncio.run(run_pipeline(config, args.url, execute=not args.no_execute))
    except OracleError as e:
        console.print(f"[red]❌ {e}[/red]")
        return 2
    except KeyboardInterrupt:
        console.print("\n🛑 Interrupted by user")
        return 1


if __name__ == "__main__":
    sys.exit(main())
