from __future__ import annotations

import hashlib
import logging
import re
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup, Tag

from worker.extraction import selectors
from worker.extraction.base import ExtractedProduct, ExtractionHints, PageExtractor, PageSnapshot
from worker.extraction.state import find_state_objects, products_from_state

logger = logging.getLogger(__name__)

PRICE_RE = re.compile(r"\d[\d.,]*")
CURRENCY_SYMBOL_RE = re.compile(r"[$€£¥]")
CURRENCY_CODE_RE = re.compile(r"\b([A-Z]{3})\b")
CURRENCY_SYMBOLS = {"$": "USD", "€": "EUR", "£": "GBP", "¥": "JPY"}
SOURCE_ID_PATTERNS = [
    re.compile(r"-p-(\d+)"),
    re.compile(r"goods_id=(\d+)"),
    re.compile(r"/goods/(\d+)"),
]
MAX_IMAGES = 5
MAX_DESCRIPTION_LENGTH = 500


def parse_price(text: str) -> float | None:
    match = PRICE_RE.search(text or "")
    if not match:
        return None

    raw = match.group(0).rstrip(".,")
    if "," in raw and "." in raw:
        # Whichever separator comes last is the decimal one.
        if raw.rfind(",") > raw.rfind("."):
            raw = raw.replace(".", "").replace(",", ".")
        else:
            raw = raw.replace(",", "")
    elif "," in raw:
        whole, _, fraction = raw.rpartition(",")
        raw = f"{whole.replace(',', '')}.{fraction}" if len(fraction) <= 2 else raw.replace(",", "")

    try:
        return float(raw)
    except ValueError:
        return None


def detect_currency(text: str, default: str = "USD") -> str:
    symbol = CURRENCY_SYMBOL_RE.search(text or "")
    if symbol:
        return CURRENCY_SYMBOLS[symbol.group(0)]
    code = CURRENCY_CODE_RE.search(text or "")
    return code.group(1) if code else default


def source_product_id(url: str) -> str:
    for pattern in SOURCE_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return f"url-{hashlib.sha1(url.encode('utf-8')).hexdigest()[:16]}"


def _text(node: Tag | None) -> str:
    if node is None:
        return ""
    return " ".join(node.get_text(" ", strip=True).split())


def _first_text(element: Tag, candidates: list[str]) -> str:
    for selector in candidates:
        node = element.select_one(selector)
        text = _text(node)
        if text:
            return text
    return ""


class DomPageExtractor(PageExtractor):
    """Pulls product candidates out of a page snapshot.

    Global state embedded in inline scripts is tried first; CSS selectors run
    only when it yields nothing. A detail page yields at most one product; a
    listing page yields one per product card. For every field the first
    selector set that matches wins, matches from different sets are never
    merged.
    """

    def __init__(self, source_domain: str = "shein", timeout_seconds: float = 15.0) -> None:
        self.source_domain = source_domain
        self.timeout_seconds = timeout_seconds

    def capture(self, url: str) -> PageSnapshot:
        response = httpx.get(url, timeout=self.timeout_seconds, follow_redirects=True)
        response.raise_for_status()
        return PageSnapshot(url=str(response.url), html=response.text)

    def extract(self, snapshot: PageSnapshot, hints: ExtractionHints | None = None) -> list[ExtractedProduct]:
        hints = hints or ExtractionHints()
        soup = BeautifulSoup(snapshot.html, "html.parser")
        detail = self._detail_container(soup)

        state_products = self._from_state(soup, snapshot.url, hints if detail is not None else ExtractionHints())
        if state_products:
            return state_products[:1] if detail is not None else self._dedupe(state_products)

        if detail is not None:
            product = self._extract_one(detail, snapshot.url, hints, document=soup)
            return [product] if product else []

        products: list[ExtractedProduct] = []
        for selector in selectors.LISTING_CONTAINERS:
            cards = soup.select(selector)
            if not cards:
                continue
            for card in cards:
                product = self._extract_one(card, snapshot.url, ExtractionHints(), document=None)
                if product:
                    products.append(product)
            break
        return self._dedupe(products)

    def _detail_container(self, soup: BeautifulSoup) -> Tag | None:
        for selector in selectors.DETAIL_CONTAINERS:
            container = soup.select_one(selector)
            if container is not None:
                return container
        return None

    def _from_state(self, soup: BeautifulSoup, page_url: str, hints: ExtractionHints) -> list[ExtractedProduct]:
        products: list[ExtractedProduct] = []
        for state in find_state_objects(soup):
            for record in products_from_state(state):
                url = urljoin(page_url, record["url"]) if record.get("url") else page_url
                images = [urljoin(page_url, image) for image in record["images"] if "placeholder" not in image]
                description = (hints.selected_text or "").strip() or record.get("description", "")
                products.append(
                    ExtractedProduct(
                        id=record.get("id") or source_product_id(url),
                        url=url,
                        name=record["name"],
                        price=record["price"],
                        currency=record.get("currency") or "USD",
                        description=description[:MAX_DESCRIPTION_LENGTH],
                        images=self._merge_images(images, hints.image_url),
                        category=record.get("category", ""),
                        rating=record.get("rating", 0.0),
                        original_price=record.get("original_price"),
                        reviews_count=record.get("reviews_count"),
                        source="state_extraction",
                    )
                )
        if products:
            logger.debug("Found %s product(s) in embedded page state on %s", len(products), page_url)
        return products

    def _extract_one(
        self,
        element: Tag,
        page_url: str,
        hints: ExtractionHints,
        document: BeautifulSoup | None,
    ) -> ExtractedProduct | None:
        name = _first_text(element, selectors.NAME)
        price_text = _first_text(element, selectors.PRICE)
        price = parse_price(price_text)
        if not name or price is None or price <= 0:
            logger.debug("Discarding candidate on %s (name=%r, price_text=%r)", page_url, name, price_text)
            return None

        url = self._product_url(element, page_url)
        description = (hints.selected_text or "").strip() or _first_text(element, selectors.DESCRIPTION)
        # Breadcrumbs usually sit outside the detail container.
        category = self._category(element) or (self._category(document) if document is not None else "")

        return ExtractedProduct(
            id=source_product_id(url),
            url=url,
            name=name,
            price=price,
            currency=detect_currency(price_text),
            description=description[:MAX_DESCRIPTION_LENGTH],
            images=self._images(element, page_url, hints.image_url),
            category=category,
            rating=self._rating(element),
        )

    def _product_url(self, element: Tag, page_url: str) -> str:
        for selector in selectors.LINK:
            link = element.select_one(selector)
            if link is not None and link.get("href"):
                return urljoin(page_url, str(link["href"]))
        return page_url

    def _images(self, element: Tag, page_url: str, hinted: str | None) -> list[str]:
        images: list[str] = []
        for selector in selectors.IMAGE:
            for img in element.select(selector):
                src = img.get("src") or img.get("data-src")
                if src and "placeholder" not in str(src):
                    images.append(urljoin(page_url, str(src)))
            if images:
                break
        return self._merge_images(images, hinted)

    def _merge_images(self, images: list[str], hinted: str | None) -> list[str]:
        images = list(images)
        if hinted and self.source_domain in hinted:
            images.insert(0, hinted)

        seen: set[str] = set()
        unique: list[str] = []
        for image in images:
            if image not in seen:
                seen.add(image)
                unique.append(image)
        return unique[:MAX_IMAGES]

    def _category(self, element: Tag) -> str:
        for selector in selectors.CATEGORY:
            node = element.select_one(selector)
            if node is not None:
                return _text(node) or str(node.get("data-category") or "")
        return ""

    def _rating(self, element: Tag) -> float:
        for selector in selectors.RATING:
            node = element.select_one(selector)
            if node is None:
                continue
            match = re.search(r"\d+(?:\.\d+)?", _text(node) or str(node.get("data-rating") or ""))
            if match:
                return float(match.group(0))
        return 0.0

    def _dedupe(self, products: list[ExtractedProduct]) -> list[ExtractedProduct]:
        seen: set[tuple[str, float]] = set()
        unique: list[ExtractedProduct] = []
        for product in products:
            key = (product.name, product.price)
            if key in seen:
                continue
            seen.add(key)
            unique.append(product)
        return unique
