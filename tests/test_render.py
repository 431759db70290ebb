from unittest.mock import MagicMock

import pytest
import requests

from harvester.config import HarvestSettings
from harvester.errors import RenderError
from harvester.render import (
    PlaywrightBackend,
    ProxyBackend,
    ProxySession,
    SoupDocument,
    build_backend,
)


def _settings(**kw):
    base = dict(proxy_token="tok", proxy_url="https://proxy.test/request", http_timeout_s=9)
    base.update(kw)
    return HarvestSettings(**base)


def test_soup_element_own_text_skips_children_and_comments():
    doc = SoupDocument('<a class="t" href="/p">Alpha<!-- c --><span>by Bob</span> Game</a>')
    el = doc.select_one("a.t")
    assert el.own_text() == "Alpha Game"
    assert el.text() == "Alphaby Bob Game"
    assert el.attr("href") == "/p"
    assert el.attr("class") == "t"
    assert el.select_one("span").text() == "by Bob"
    assert el.select_one("em") is None


def test_soup_document_wait_and_scroll_are_immediate():
    doc = SoupDocument("<main><p class='bio'>Hi</p></main>")
    assert doc.wait_for("p.bio", timeout_s=30) is True
    assert doc.wait_for("div.nope", timeout_s=30) is False
    doc.scroll()
    assert doc.snippet(6) == "<main>"


def test_proxy_render_posts_zone_url_format_and_bearer():
    http = MagicMock()
    http.post.return_value.text = "<div class='x'>ok</div>"
    http.post.return_value.content = b"<div class='x'>ok</div>"

    doc = ProxySession(http, _settings()).render("https://x/discover")

    assert doc.select_one("div.x").text() == "ok"
    http.post.assert_called_once_with(
        "https://proxy.test/request",
        json={"zone": "web_unlocker1", "url": "https://x/discover", "format": "raw", "render": True},
        headers={"Authorization": "Bearer tok"},
        timeout=9,
    )


def test_proxy_render_without_render_flag():
    http = MagicMock()
    http.post.return_value.text = ""
    http.post.return_value.content = b""

    ProxySession(http, _settings(proxy_render=False)).render("https://x/d")

    assert "render" not in http.post.call_args.kwargs["json"]


def test_proxy_render_network_failure_is_render_error():
    http = MagicMock()
    http.post.side_effect = requests.ConnectionError("refused")

    with pytest.raises(RenderError):
        ProxySession(http, _settings()).render("https://x/d")


def test_proxy_render_without_token_is_render_error():
    with pytest.raises(RenderError):
        ProxySession(MagicMock(), _settings(proxy_token="")).render("https://x/d")


def test_proxy_backend_session_closes_http(monkeypatch):
    http = MagicMock()
    monkeypatch.setattr("harvester.render.requests.Session", lambda: http)

    with pytest.raises(RuntimeError):
        with ProxyBackend(_settings()).session():
            raise RuntimeError("stage failed")

    http.close.assert_called_once()


def test_build_backend():
    s = _settings()
    assert isinstance(build_backend("browser", s), PlaywrightBackend)
    assert isinstance(build_backend("proxy", s), ProxyBackend)
    with pytest.raises(ValueError):
        build_backend("carrier-pigeon", s)


def test_playwright_session_navigation_failure_is_render_error():
    from playwright.sync_api import Error as PlaywrightError

    from harvester.render import PlaywrightSession

    page = MagicMock()
    page.goto.side_effect = PlaywrightError("net::ERR_NAME_NOT_RESOLVED")

    with pytest.raises(RenderError):
        PlaywrightSession(page, _settings()).render("https://x/d")


def test_playwright_session_tolerates_network_never_idle():
    from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

    from harvester.render import PageDocument, PlaywrightSession

    page = MagicMock()
    page.wait_for_load_state.side_effect = PlaywrightTimeoutError("idle timeout")

    doc = PlaywrightSession(page, _settings(navigation_timeout_s=45)).render("https://x/d")

    assert isinstance(doc, PageDocument)
    page.goto.assert_called_once_with("https://x/d", wait_until="domcontentloaded", timeout=45000)


def test_page_document_wait_for_timeout_returns_false():
    from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

    from harvester.render import PageDocument

    page = MagicMock()
    page.wait_for_selector.side_effect = PlaywrightTimeoutError("timeout")

    assert PageDocument(page).wait_for(".card", timeout_s=2) is False
    page.wait_for_selector.assert_called_once_with(".card", state="attached", timeout=2000)


def test_page_document_wraps_playwright_errors():
    from playwright.sync_api import Error as PlaywrightError

    from harvester.render import PageDocument

    page = MagicMock()
    page.wait_for_selector.side_effect = PlaywrightError("Execution context was destroyed")
    page.query_selector_all.side_effect = PlaywrightError("Target page, context or browser has been closed")
    page.query_selector.side_effect = PlaywrightError("Target crashed")
    page.evaluate.side_effect = PlaywrightError("Execution context was destroyed")
    doc = PageDocument(page)

    with pytest.raises(RenderError):
        doc.wait_for(".card", timeout_s=2)
    with pytest.raises(RenderError):
        doc.select(".card")
    with pytest.raises(RenderError):
        doc.select_one(".card")
    with pytest.raises(RenderError):
        doc.scroll()


def test_destroyed_page_context_falls_back_to_proxy():
    from contextlib import contextmanager

    from playwright.sync_api import Error as PlaywrightError

    from fakes import FakeBackend, listing_card, listing_page
    from harvester.config import SelectorSet
    from harvester.list_fetcher import fetch_with_fallback
    from harvester.render import PageDocument, RenderBackend, RenderSession

    page = MagicMock()
    page.wait_for_selector.side_effect = PlaywrightError("Execution context was destroyed")

    class LivePageSession(RenderSession):
        def render(self, url):
            return PageDocument(page)

    class LivePageBackend(RenderBackend):
        name = "browser"

        @contextmanager
        def session(self):
            yield LivePageSession()

    source = "https://x/discover"
    fallback = FakeBackend(
        "proxy", pages={source: listing_page(source, [listing_card("Alpha", "Bob", "/p")])}
    )

    records = fetch_with_fallback(LivePageBackend(), fallback, source, SelectorSet())

    assert [r.project_name for r in records] == ["Alpha"]
    assert fallback.opened == 1


def _fake_sync_playwright(monkeypatch):
    p = MagicMock()
    cm = MagicMock()
    cm.__enter__.return_value = p
    cm.__exit__.return_value = False
    monkeypatch.setattr("harvester.render.sync_playwright", lambda: cm)
    return p, cm


def test_playwright_backend_closes_browser_when_stage_raises(monkeypatch):
    p, cm = _fake_sync_playwright(monkeypatch)
    browser = p.chromium.launch.return_value

    with pytest.raises(RuntimeError):
        with PlaywrightBackend(_settings()).session():
            raise RuntimeError("stage failed")

    browser.close.assert_called_once()
    cm.__exit__.assert_called_once()


def test_playwright_backend_closes_browser_on_success(monkeypatch):
    p, _ = _fake_sync_playwright(monkeypatch)
    browser = p.chromium.launch.return_value

    with PlaywrightBackend(_settings(headless=False)).session() as session:
        session.render("https://x/d")

    browser.close.assert_called_once()
    assert p.chromium.launch.call_args.kwargs["headless"] is False


def test_playwright_backend_launch_failure_is_render_error(monkeypatch):
    from playwright.sync_api import Error as PlaywrightError

    p, cm = _fake_sync_playwright(monkeypatch)
    p.chromium.launch.side_effect = PlaywrightError("Executable doesn't exist")

    with pytest.raises(RenderError):
        with PlaywrightBackend(_settings()).session():
            pass

    cm.__exit__.assert_called_once()
