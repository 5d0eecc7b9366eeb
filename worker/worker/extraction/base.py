from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field


@dataclass
class PageSnapshot:
    url: str
    html: str


@dataclass
class ExtractionHints:
    image_url: str | None = None
    selected_text: str | None = None


@dataclass
class ExtractedProduct:
    id: str
    url: str
    name: str
    price: float
    currency: str = "USD"
    description: str = ""
    images: list[str] = field(default_factory=list)
    category: str = ""
    rating: float = 0.0
    original_price: float | None = None
    reviews_count: int | None = None
    source: str = "dom_extraction"

    def to_payload(self) -> dict[str, object]:
        """Body shape accepted by the batch import endpoint."""
        payload = asdict(self)
        payload.pop("source")
        if not payload["category"]:
            payload["category"] = None
        return payload


class PageExtractor(ABC):
    @abstractmethod
    def capture(self, url: str) -> PageSnapshot:
        raise NotImplementedError

    @abstractmethod
    def extract(self, snapshot: PageSnapshot, hints: ExtractionHints | None = None) -> list[ExtractedProduct]:
        raise NotImplementedError

    def extract_url(self, url: str, hints: ExtractionHints | None = None) -> list[ExtractedProduct]:
        return self.extract(self.capture(url), hints)
