from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BrowserOptions:
    headless: bool = True
    proxy_url: str | None = None
    user_agent: str | None = None
    profile_dir: str | None = None
    navigation_timeout_seconds: float = 30.0
    settle_timeout_seconds: float = 8.0


def _playwright_proxy(proxy_url: str) -> dict[str, str]:
    parsed = urlparse(proxy_url)
    if not parsed.scheme or not parsed.hostname:
        raise ValueError(f"Invalid proxy URL: {proxy_url}")

    server = f"{parsed.scheme}://{parsed.hostname}"
    if parsed.port:
        server = f"{server}:{parsed.port}"

    proxy: dict[str, str] = {"server": server}
    if parsed.username:
        proxy["username"] = parsed.username
    if parsed.password:
        proxy["password"] = parsed.password
    return proxy


def _timeout_ms(seconds: float) -> int:
    return int(max(1.0, seconds) * 1000)


@contextmanager
def browser_page(options: BrowserOptions) -> Iterator[Any]:
    """Yield a Playwright page and close the browser on exit.

    With ``profile_dir`` set, a persistent context is used so the source
    account session (cookies, saved cart) survives between runs.
    """
    try:
        from playwright.sync_api import sync_playwright
    except Exception as exc:  # pragma: no cover - import path tested via integration
        raise RuntimeError("Playwright is unavailable in this runtime") from exc

    context_kwargs: dict[str, object] = {}
    if options.user_agent:
        context_kwargs["user_agent"] = options.user_agent
    if options.proxy_url:
        context_kwargs["proxy"] = _playwright_proxy(options.proxy_url)

    with sync_playwright() as playwright:
        if options.profile_dir:
            context = playwright.chromium.launch_persistent_context(
                options.profile_dir, headless=options.headless, **context_kwargs
            )
            browser = None
        else:
            launch_kwargs: dict[str, object] = {"headless": options.headless}
            if "proxy" in context_kwargs:
                launch_kwargs["proxy"] = context_kwargs.pop("proxy")
            browser = playwright.chromium.launch(**launch_kwargs)
            context = browser.new_context(**context_kwargs)
        try:
            page = context.new_page()
            page.set_default_timeout(_timeout_ms(options.navigation_timeout_seconds))
            yield page
        finally:
            context.close()
            if browser is not None:
                browser.close()


def navigate(page: Any, url: str, timeout_seconds: float) -> None:
    from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

    timeout_ms = _timeout_ms(timeout_seconds)
    last_timeout: Exception | None = None
    for wait_until in ("domcontentloaded", "load", "commit"):
        try:
            page.goto(url, wait_until=wait_until, timeout=timeout_ms)
            return
        except PlaywrightTimeoutError as exc:
            last_timeout = exc
            continue
    if last_timeout:
        raise last_timeout
    raise RuntimeError(f"Unable to navigate browser to {url}")


def wait_for_settle(page: Any, timeout_seconds: float) -> None:
    from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

    try:
        page.wait_for_load_state("networkidle", timeout=_timeout_ms(timeout_seconds))
    except PlaywrightTimeoutError:
        # Some pages keep long-polling; the load event is enough to act on.
        logger.debug("Network did not go idle within %ss on %s", timeout_seconds, page.url)


def fetch_page_html(url: str, options: BrowserOptions | None = None) -> str:
    options = options or BrowserOptions()
    with browser_page(options) as page:
        navigate(page, url, options.navigation_timeout_seconds)
        wait_for_settle(page, options.settle_timeout_seconds)
        return page.content()
