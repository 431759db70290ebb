"""
Render backends.

A backend opens a scoped session; a session turns a URL into a queryable
document. Two implementations share the same document surface:

- ``PlaywrightBackend`` drives a headless Chromium and queries the live page.
- ``ProxyBackend`` asks a remote unlocking proxy for raw markup and parses it
  statically with BeautifulSoup.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator, Optional

import requests
from bs4 import BeautifulSoup
from bs4.element import Comment, NavigableString, Tag
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from .config import BACKEND_BROWSER, BACKEND_PROXY, HarvestSettings
from .errors import RenderError

logger = logging.getLogger("campaign-harvester")

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36"
)
VIEWPORT = {"width": 1920, "height": 1080}

_OWN_TEXT_JS = """(el) => Array.from(el.childNodes)
    .filter((n) => n.nodeType === Node.TEXT_NODE)
    .map((n) => n.textContent)
    .join('')"""
_SCROLL_JS = "() => window.scrollBy(0, Math.max(window.innerHeight, 600))"


def _ms(seconds: float) -> int:
    return int(seconds * 1000)


class Element(ABC):
    @abstractmethod
    def text(self) -> str:
        """Full text content, including descendants."""

    @abstractmethod
    def own_text(self) -> str:
        """Text of this element's direct text nodes only."""

    @abstractmethod
    def attr(self, name: str) -> Optional[str]:
        ...

    @abstractmethod
    def select_one(self, selector: str) -> Optional["Element"]:
        ...


class Document(ABC):
    url: str

    @abstractmethod
    def select(self, selector: str) -> list[Element]:
        ...

    @abstractmethod
    def select_one(self, selector: str) -> Optional[Element]:
        ...

    @abstractmethod
    def wait_for(self, selector: str, timeout_s: float) -> bool:
        """Block up to ``timeout_s`` for ``selector``; True if it appeared."""

    @abstractmethod
    def scroll(self) -> None:
        """Nudge the page so lazily rendered content gets a chance to load."""

    @abstractmethod
    def snippet(self, limit: int = 500) -> str:
        ...


class RenderSession(ABC):
    @abstractmethod
    def render(self, url: str) -> Document:
        ...


class RenderBackend(ABC):
    name: str = "abstract"

    @abstractmethod
    def session(self) -> Iterator[RenderSession]:
        """Context manager yielding a session; closed on every exit path."""


# ---------------------------------------------------------------------------
# Static markup (proxy)
# ---------------------------------------------------------------------------


class SoupElement(Element):
    def __init__(self, tag: Tag):
        self._tag = tag

    def text(self) -> str:
        return self._tag.get_text()

    def own_text(self) -> str:
        return "".join(
            str(node)
            for node in self._tag.children
            if isinstance(node, NavigableString) and not isinstance(node, Comment)
        )

    def attr(self, name: str) -> Optional[str]:
        value = self._tag.get(name)
        if isinstance(value, list):
            return " ".join(value)
        return value

    def select_one(self, selector: str) -> Optional[Element]:
        found = self._tag.select_one(selector)
        return SoupElement(found) if found is not None else None


class SoupDocument(Document):
    def __init__(self, html: str, url: str = ""):
        self.url = url
        self._html = html
        self._soup = BeautifulSoup(html, "html.parser")

    def select(self, selector: str) -> list[Element]:
        return [SoupElement(t) for t in self._soup.select(selector)]

    def select_one(self, selector: str) -> Optional[Element]:
        found = self._soup.select_one(selector)
        return SoupElement(found) if found is not None else None

    def wait_for(self, selector: str, timeout_s: float) -> bool:
        # Static markup never changes, so presence is decided immediately.
        return self._soup.select_one(selector) is not None

    def scroll(self) -> None:
        return None

    def snippet(self, limit: int = 500) -> str:
        return self._html[:limit]


class ProxySession(RenderSession):
    def __init__(self, http: requests.Session, settings: HarvestSettings):
        self._http = http
        self._settings = settings

    def render(self, url: str) -> Document:
        s = self._settings
        if not s.proxy_token:
            raise RenderError("RENDER_PROXY_TOKEN not set; proxy backend unavailable")

        body = {"zone": s.proxy_zone, "url": url, "format": "raw"}
        if s.proxy_render:
            body["render"] = True

        try:
            r = self._http.post(
                s.proxy_url,
                json=body,
                headers={"Authorization": f"Bearer {s.proxy_token}"},
                timeout=s.http_timeout_s,
            )
            r.raise_for_status()
        except requests.RequestException as exc:
            raise RenderError(f"Proxy fetch failed for {url}: {exc}") from exc

        logger.info("Proxy markup received for %s (%s bytes)", url, len(r.content))
        return SoupDocument(r.text, url)


class ProxyBackend(RenderBackend):
    name = BACKEND_PROXY

    def __init__(self, settings: HarvestSettings):
        self.settings = settings

    @contextmanager
    def session(self) -> Iterator[RenderSession]:
        http = requests.Session()
        try:
            yield ProxySession(http, self.settings)
        finally:
            http.close()


# ---------------------------------------------------------------------------
# Live browser (Playwright)
# ---------------------------------------------------------------------------


@contextmanager
def _page_errors(action: str) -> Iterator[None]:
    """Re-raise Playwright failures (crashed page, destroyed context) as RenderError."""
    try:
        yield
    except PlaywrightError as exc:
        raise RenderError(f"{action} failed: {exc}") from exc


class PageElement(Element):
    def __init__(self, handle):
        self._handle = handle

    def text(self) -> str:
        with _page_errors("Reading element text"):
            return self._handle.text_content() or ""

    def own_text(self) -> str:
        with _page_errors("Reading element text"):
            return self._handle.evaluate(_OWN_TEXT_JS) or ""

    def attr(self, name: str) -> Optional[str]:
        with _page_errors(f"Reading attribute {name!r}"):
            return self._handle.get_attribute(name)

    def select_one(self, selector: str) -> Optional[Element]:
        with _page_errors(f"Query {selector!r}"):
            found = self._handle.query_selector(selector)
        return PageElement(found) if found is not None else None


class PageDocument(Document):
    def __init__(self, page):
        self._page = page
        self.url = page.url

    def select(self, selector: str) -> list[Element]:
        with _page_errors(f"Query {selector!r}"):
            handles = self._page.query_selector_all(selector)
        return [PageElement(h) for h in handles]

    def select_one(self, selector: str) -> Optional[Element]:
        with _page_errors(f"Query {selector!r}"):
            found = self._page.query_selector(selector)
        return PageElement(found) if found is not None else None

    def wait_for(self, selector: str, timeout_s: float) -> bool:
        with _page_errors(f"Waiting for {selector!r}"):
            try:
                self._page.wait_for_selector(selector, state="attached", timeout=_ms(timeout_s))
                return True
            except PlaywrightTimeoutError:
                return False

    def scroll(self) -> None:
        with _page_errors("Scrolling"):
            self._page.evaluate(_SCROLL_JS)

    def snippet(self, limit: int = 500) -> str:
        try:
            return self._page.content()[:limit]
        except PlaywrightError as exc:
            return f"<content unavailable: {exc}>"


class PlaywrightSession(RenderSession):
    """One page, reused for every render inside the session."""

    def __init__(self, page, settings: HarvestSettings, settle_timeout_s: float = 10.0):
        self._page = page
        self._settings = settings
        self._settle_timeout_s = settle_timeout_s

    def render(self, url: str) -> Document:
        with _page_errors(f"Navigation to {url}"):
            self._page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=_ms(self._settings.navigation_timeout_s),
            )

            try:
                self._page.wait_for_load_state("networkidle", timeout=_ms(self._settle_timeout_s))
            except PlaywrightTimeoutError:
                # Long-polling sites never go idle; the DOM is usable anyway.
                logger.debug("networkidle not reached for %s; continuing", url)

        return PageDocument(self._page)


class PlaywrightBackend(RenderBackend):
    name = BACKEND_BROWSER

    def __init__(self, settings: HarvestSettings):
        self.settings = settings

    @contextmanager
    def session(self) -> Iterator[RenderSession]:
        with sync_playwright() as p:
            with _page_errors("Browser launch"):
                browser = p.chromium.launch(
                    headless=self.settings.headless,
                    args=["--no-sandbox", "--disable-setuid-sandbox"],
                )

            try:
                with _page_errors("Opening browser page"):
                    context = browser.new_context(viewport=VIEWPORT, user_agent=USER_AGENT)
                    page = context.new_page()
                logger.info("Launched browser session")
                yield PlaywrightSession(page, self.settings)
            finally:
                browser.close()


def build_backend(name: str, settings: HarvestSettings) -> RenderBackend:
    if name == BACKEND_BROWSER:
        return PlaywrightBackend(settings)
    if name == BACKEND_PROXY:
        return ProxyBackend(settings)
    raise ValueError(f"Unknown render backend: {name!r}")
