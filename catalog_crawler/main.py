"""Command line entry point: crawl a site, summarize runs, re-analyze datasets."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from catalog_crawler.analyze.summary import aggregate_summaries, analyze
from catalog_crawler.config import settings
from catalog_crawler.crawl.crawler import SiteCrawler
from catalog_crawler.extract.selectors import SelectorConfigError, load_catalog
from catalog_crawler.logging_config import setup_logging
from catalog_crawler.site_config import SiteConfigCache, SiteConfigError
from catalog_crawler.sinks.dataset import DatasetStore

logger = logging.getLogger(__name__)


async def crawl_site(site: str, local_config: bool = False, force_refresh: bool = False) -> int:
    """Crawl one site; returns the process exit code."""
    cache = SiteConfigCache(local_only=local_config or settings.use_local_site_config)
    try:
        site_config = await cache.get(site, force_refresh=force_refresh)
        catalog = load_catalog(settings.selector_catalog_path)
    except (SiteConfigError, SelectorConfigError) as e:
        logger.error(f"Cannot crawl {site}: {e}")
        return 1

    if site_config.paused:
        logger.info(f"Site {site} is paused: {site_config.paused_reason or 'no reason given'}")
        return 0

    try:
        summary = await SiteCrawler(site_config, catalog).run()
    except SiteConfigError as e:
        logger.error(f"Cannot crawl {site}: {e}")
        return 1

    logger.info(
        f"{site}: {summary.total_valid}/{summary.total_collected} valid items, "
        f"{summary.total_error} errors"
    )
    return 0


def analyze_site(site: str) -> int:
    """Re-run the analyzer over an existing dataset and print the summary."""
    records = DatasetStore(site).read_all()
    if not records:
        logger.error(f"No dataset records for {site}")
        return 1
    summary = analyze(records)
    print(json.dumps(summary.to_json_dict(), ensure_ascii=False, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="catalog-crawler", description="Product catalog crawler")
    sub = parser.add_subparsers(dest="command", required=True)

    crawl = sub.add_parser("crawl", help="Crawl one site")
    crawl.add_argument("--site", required=True, help="Site identifier (main domain part)")
    crawl.add_argument("--local-config", action="store_true", help="Use the cached site configuration only")
    crawl.add_argument("--force-refresh", action="store_true", help="Refetch the site configuration")

    summarize = sub.add_parser("summarize", help="Merge per-site run summaries")
    summarize.add_argument(
        "directory",
        nargs="?",
        default=str(Path(settings.artifacts_dir) / "summaries"),
        help="Directory holding <site>.json summaries",
    )

    reanalyze = sub.add_parser("analyze", help="Re-analyze an existing dataset")
    reanalyze.add_argument("--site", required=True)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if getattr(args, "site", None):
        settings.site = args.site
    setup_logging()

    if args.command == "crawl":
        return asyncio.run(crawl_site(args.site, args.local_config, args.force_refresh))
    if args.command == "summarize":
        result = aggregate_summaries(args.directory)
        print(json.dumps(result, ensure_ascii=False, indent=2))
        return 0
    return analyze_site(args.site)


if __name__ == "__main__":
    sys.exit(main())
