from __future__ import annotations

import logging

from worker.config import WorkerSettings, get_settings
from worker.extraction.base import PageSnapshot
from worker.extraction.dom import DomPageExtractor
from worker.fetchers.browser import BrowserOptions, fetch_page_html

logger = logging.getLogger(__name__)


class BrowserPageExtractor(DomPageExtractor):
    """Renders the page in Chromium so client-side product grids are present."""

    def __init__(self, settings: WorkerSettings | None = None) -> None:
        self.settings = settings or get_settings()
        super().__init__(source_domain=self.settings.source_domain, timeout_seconds=self.settings.navigation_timeout_seconds)
        self.options = BrowserOptions(
            headless=self.settings.headless,
            proxy_url=self.settings.browser_proxy_url,
            profile_dir=self.settings.browser_profile_dir,
            navigation_timeout_seconds=self.settings.navigation_timeout_seconds,
            settle_timeout_seconds=self.settings.settle_timeout_seconds,
        )

    def capture(self, url: str) -> PageSnapshot:
        logger.info("Rendering %s in browser", url)
        return PageSnapshot(url=url, html=fetch_page_html(url, self.options))
