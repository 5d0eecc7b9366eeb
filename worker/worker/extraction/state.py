from __future__ import annotations

import json
import logging
import re
from typing import Any

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

STATE_NAMES = ["__PRELOADED_STATE__", "__INITIAL_STATE__", "__APP_STATE__", "INITIAL_DATA", "PAGE_DATA"]
STATE_ASSIGNMENT_RE = re.compile(r"(?:window\.)?(" + "|".join(STATE_NAMES) + r")\s*=\s*")
MAX_NESTING = 5

SINGLE_KEYS = ["product", "goods", "item"]
LIST_KEYS = ["products", "goodsList", "items"]

# Candidate paths per field, first non-empty value wins.
FIELD_PATHS: dict[str, list[str]] = {
    "id": ["goods_id", "id", "goodsId", "product_id", "productId"],
    "name": ["goods_name", "name", "title", "goodsName", "product_name"],
    "url": ["url", "product_url", "goods_url", "detail_url"],
    "price": ["salePrice.amount", "price", "current_price", "sale_price"],
    "original_price": ["originalPrice.amount", "original_price", "market_price"],
    "currency": ["salePrice.currency", "currency", "price_currency"],
    "description": ["detail", "description", "goods_desc", "summary"],
    "images": ["goods_imgs", "images", "product_imgs", "picture"],
    "category": ["cat_name", "category", "category_name"],
    "rating": ["evaluation.avg_score", "rating", "score"],
    "reviews_count": ["evaluation.evaluation_num", "reviews_count", "review_num"],
}


def find_state_objects(soup: BeautifulSoup) -> list[dict[str, Any]]:
    """Global state objects embedded in inline scripts, in page order.

    Handles both ``window.__INITIAL_STATE__ = {...};`` assignments and
    ``<script type="application/json" id="__INITIAL_STATE__">`` blocks.
    """
    decoder = json.JSONDecoder()
    states: list[dict[str, Any]] = []
    for script in soup.find_all("script"):
        if script.get("src"):
            continue
        text = script.string or script.get_text() or ""
        if not text.strip():
            continue

        if script.get("id") in STATE_NAMES:
            try:
                value = json.loads(text)
            except ValueError:
                logger.debug("Unparseable JSON state block %s", script.get("id"))
                continue
            if isinstance(value, dict):
                states.append(value)
            continue

        for match in STATE_ASSIGNMENT_RE.finditer(text):
            try:
                value, _ = decoder.raw_decode(text, match.end())
            except ValueError:
                logger.debug("Unparseable state assignment for %s", match.group(1))
                continue
            if isinstance(value, dict):
                states.append(value)
    return states


def products_from_state(state: dict[str, Any], depth: int = 0) -> list[dict[str, Any]]:
    records: list[dict[str, Any]] = []
    if depth > MAX_NESTING:
        return records

    single = _first_present(state, SINGLE_KEYS)
    if isinstance(single, dict):
        record = parse_product_data(single)
        if record:
            records.append(record)

    listing = _first_present(state, LIST_KEYS)
    if isinstance(listing, list):
        for entry in listing:
            record = parse_product_data(entry)
            if record:
                records.append(record)

    nested = state.get("data")
    if isinstance(nested, dict):
        records.extend(products_from_state(nested, depth + 1))
    return records


def parse_product_data(data: Any) -> dict[str, Any] | None:
    """Maps a storefront product object onto extractor fields.

    Returns None unless the object carries both a name and a positive price.
    """
    if not isinstance(data, dict):
        return None

    record: dict[str, Any] = {}
    for key, paths in FIELD_PATHS.items():
        for path in paths:
            value = _nested(data, path)
            if value is None or value == "":
                continue
            record[key] = value
            break

    record["price"] = _as_float(record.get("price"))
    if not record.get("name") or not record["price"] or record["price"] <= 0:
        return None

    record["name"] = str(record["name"]).strip()
    if "id" in record:
        record["id"] = str(record["id"])
    if "original_price" in record:
        record["original_price"] = _as_float(record["original_price"])
    if "rating" in record:
        record["rating"] = _as_float(record["rating"]) or 0.0
    if "reviews_count" in record:
        record["reviews_count"] = _as_int(record["reviews_count"])
    record["images"] = _image_urls(record.get("images"))
    for key in ("currency", "description", "category", "url"):
        if key in record:
            record[key] = str(record[key])
    return record


def _first_present(state: dict[str, Any], keys: list[str]) -> Any:
    for key in keys:
        if state.get(key):
            return state[key]
    return None


def _nested(data: dict[str, Any], path: str) -> Any:
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def _as_float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_int(value: Any) -> int | None:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _image_urls(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        return []

    urls: list[str] = []
    for image in value:
        if isinstance(image, dict):
            image = image.get("origin_image") or image.get("url") or image.get("src")
        if isinstance(image, str) and image:
            urls.append(image)
    return urls
