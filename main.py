#!/usr/bin/env python3
"""
Main entry point for the focused crawler.
"""

import asyncio
import argparse
import dataclasses
import json
import logging
import signal
import sys
from typing import List, Optional

from focused_crawler.crawler.scheduler import CrawlerScheduler, CrawlReport
from focused_crawler.crawler.search import SearchClient
from focused_crawler.utils.config import Config, ConfigError, load_config, validate_config
from focused_crawler.utils.logger import setup_logging, log_system_info


def _prompt(message: str, default: Optional[str] = None) -> str:
    suffix = f" [default: {default}]" if default is not None else ""
    value = input(f"{message}{suffix}: ").strip()
    return value if value else (default or "")


def _prompt_positive(message: str, default, convert=int):
    while True:
        value = _prompt(message, str(default))
        try:
            number = convert(value)
        except ValueError:
            print("Invalid input. Please enter a valid number.")
            continue
        if number > 0:
            return number
        print("Value must be greater than 0. Please try again.")


def _split_seeds(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [url.strip() for url in value.split(',') if url.strip()]


class CrawlerApp:
    """Main application class for the focused crawler."""

    def __init__(self):
        self.scheduler: Optional[CrawlerScheduler] = None
        self.logger = logging.getLogger(__name__)

    def setup_signal_handlers(self):
        """Route SIGINT/SIGTERM to the scheduler's stop signal."""
        loop = asyncio.get_running_loop()

        def request_stop(signum):
            self.logger.info(f"Received signal {signum}, initiating shutdown...")
            if self.scheduler:
                self.scheduler.stop()

        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, request_stop, signum)
            except NotImplementedError:
                # Windows event loops do not support signal handlers
                pass

    async def run(self, config: Config, keyword: str, seed_urls: List[str]) -> CrawlReport:
        """Run one crawl and return its report."""
        self.setup_signal_handlers()

        self.logger.info("=== FOCUSED CRAWLER STARTING ===")
        self.logger.info(f"Keyword: {keyword}")
        self.logger.info(f"Seed URLs: {seed_urls or '(search API)'}")
        self.logger.info(f"Max depth: {config.crawler.max_depth}")
        self.logger.info(f"Max workers: {config.crawler.max_workers}")
        self.logger.info(f"Politeness delay: {config.crawler.politeness_delay}s")

        search_client = SearchClient.from_config(config.search)

        try:
            async with CrawlerScheduler(config, keyword, search_client=search_client) as scheduler:
                self.scheduler = scheduler
                report = await scheduler.run(seed_urls=seed_urls)
                self.logger.info(f"Metrics summary: {scheduler.monitor.get_summary()}")
                return report
        finally:
            self.scheduler = None
            self.logger.info("=== FOCUSED CRAWLER FINISHED ===")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Focused Web Crawler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --keyword election --seeds https://www.bbc.com/news
  python main.py --config my_config.yaml --keyword climate
  python main.py --keyword election --timeout-minutes 5 --max-depth 2
  python main.py --interactive
        """
    )

    parser.add_argument('--config', default='config.yaml',
                        help='Path to configuration file (default: config.yaml)')
    parser.add_argument('--keyword', help='Keyword to search for')
    parser.add_argument('--seeds', help='Comma-separated seed URLs (default: from config, then search API)')
    parser.add_argument('--timeout-minutes', type=float, help='Maximum crawl time in minutes')
    parser.add_argument('--max-depth', type=int, help='Maximum crawl depth')
    parser.add_argument('--output', help='Output JSON file')
    parser.add_argument('--interactive', action='store_true',
                        help='Prompt for keyword, seeds, crawl time and depth')
    parser.add_argument('--version', action='version', version='Focused Crawler 1.0.0')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except (ConfigError, TypeError) as e:
        print(f"Error: invalid configuration: {e}")
        return 1

    keyword = args.keyword
    seeds = _split_seeds(args.seeds) or list(config.crawler.seed_urls)
    timeout_minutes = args.timeout_minutes or config.crawler.timeout_minutes
    max_depth = args.max_depth or config.crawler.max_depth

    if args.interactive:
        keyword = _prompt("Enter keyword to search for", keyword)
        # An empty answer means search-based seeding, whatever the config lists
        seeds = _split_seeds(_prompt("Enter seed URLs (comma-separated) or press Enter to use search"))
        timeout_minutes = _prompt_positive("Enter maximum crawl time in minutes", timeout_minutes, float)
        max_depth = _prompt_positive("Enter maximum crawl depth", max_depth)

    if not keyword:
        print("Error: a keyword is required (use --keyword or --interactive)")
        return 1

    crawler_config = dataclasses.replace(
        config.crawler, timeout_minutes=timeout_minutes, max_depth=max_depth, seed_urls=seeds
    )
    output_config = dataclasses.replace(config.output, file=args.output) if args.output else config.output
    config = dataclasses.replace(config, crawler=crawler_config, output=output_config)

    try:
        validate_config(config)
    except ConfigError as e:
        print(f"Error: {e}")
        return 1

    setup_logging(config.logging)
    log_system_info()

    app = CrawlerApp()
    try:
        report = asyncio.run(app.run(config, keyword, seeds))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130
    except Exception as e:
        logging.getLogger(__name__).error(f"Fatal error: {e}", exc_info=True)
        return 1

    print(json.dumps(report.to_dict(), indent=2))
    return 0


if __name__ == '__main__':
    sys.exit(main())
