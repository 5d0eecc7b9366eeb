from __future__ import annotations

from pathlib import Path

from worker.extraction.base import PageSnapshot
from worker.extraction.dom import DomPageExtractor


class FixturePageExtractor(DomPageExtractor):
    """Replays canned HTML from ``worker/fixtures`` instead of fetching pages."""

    def __init__(self, fixture_name: str, source_domain: str = "shein") -> None:
        super().__init__(source_domain=source_domain)
        root = Path(__file__).resolve().parents[1]
        self.fixture_path = root / "fixtures" / fixture_name

    def capture(self, url: str) -> PageSnapshot:
        return PageSnapshot(url=url, html=self.fixture_path.read_text(encoding="utf-8"))
