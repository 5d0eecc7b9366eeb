from __future__ import annotations

import argparse
import logging

from worker.config import get_settings
from worker.extraction.base import ExtractionHints, PageExtractor
from worker.extraction.browser import BrowserPageExtractor
from worker.extraction.dom import DomPageExtractor
from worker.importer import ImportClient

logger = logging.getLogger(__name__)


def _build_worker():
    from worker.db import SessionLocal
    from worker.fulfillment.driver import PlaywrightSiteDriver
    from worker.fulfillment.runner import OrderAutomationWorker

    settings = get_settings()
    return OrderAutomationWorker(
        session_factory=SessionLocal,
        driver_factory=lambda: PlaywrightSiteDriver(settings),
        settings=settings,
    )


def run_forever() -> None:
    _build_worker().run_forever()


def run_tick() -> None:
    outcome = _build_worker().tick()
    print(f"tick={outcome}")


def import_page(
    url: str,
    token: str,
    mode: str,
    auto_approve: bool,
    image_url: str | None,
    selected_text: str | None,
) -> None:
    extractor: PageExtractor = BrowserPageExtractor() if mode == "browser" else DomPageExtractor(get_settings().source_domain)
    products = extractor.extract_url(url, ExtractionHints(image_url=image_url, selected_text=selected_text))
    if not products:
        print(f"url={url} products=0")
        return

    result = ImportClient(token).import_products(products, auto_approve=auto_approve)
    print(
        f"job={result['import_job_id']} status={result['status']} total={result['total_products']} "
        f"successful={result['successful']} skipped={result['skipped']} failed={result['failed']}"
    )


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Dropline import and order automation worker")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("run", help="Poll the fulfillment queue until interrupted")
    subparsers.add_parser("tick", help="Process at most one queued order and exit")

    import_parser = subparsers.add_parser("import-page", help="Extract products from a page and send them for import")
    import_parser.add_argument("--url", required=True)
    import_parser.add_argument("--token", required=True, help="Capability token with import:products")
    import_parser.add_argument("--mode", default="browser", choices=["browser", "static"])
    import_parser.add_argument("--auto-approve", action="store_true")
    import_parser.add_argument("--image-url", default=None, help="Image the user picked on the page")
    import_parser.add_argument("--selected-text", default=None, help="Highlighted text to use as description")

    args = parser.parse_args()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "run":
        try:
            run_forever()
        except KeyboardInterrupt:
            logger.info("Interrupted, shutting down")
    elif args.command == "tick":
        run_tick()
    else:
        import_page(
            url=args.url,
            token=args.token,
            mode=args.mode,
            auto_approve=args.auto_approve,
            image_url=args.image_url,
            selected_text=args.selected_text,
        )


if __name__ == "__main__":
    main()
