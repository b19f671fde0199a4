"""
Headless-browser image extraction (Playwright).

Used as a fallback when a page cannot be fetched statically.  The page is
rendered in Chromium, scrolled top to bottom in equal steps so lazy-load
observers fire, and the live DOM is queried with the same rules as
:mod:`image_crawler.extraction.images`.

Playwright is imported lazily so the static crawler works without a
browser installed.
"""

from typing import Callable

from image_crawler.config import (
    ACCEPT_LANGUAGE,
    DEFAULT_FETCH_TIMEOUT_MS,
    DEFAULT_SCROLL_STEPS,
    DEFAULT_SCROLL_WAIT_MS,
    DEFAULT_USER_AGENT,
    HEADLESS_CHANNELS,
    HEADLESS_VIEWPORT,
    HTML_ACCEPT,
    IMG_SOURCE_ATTRS,
    LAZY_CONTAINER_ATTRS,
    SRCSET_ATTRS,
)
from image_crawler.errors import HeadlessUnavailable
from image_crawler.extraction.images import DiscoveredUrls
from image_crawler.session import merge_headers
from image_crawler.utils.log import log
from image_crawler.utils.url import to_absolute

_LAUNCH_ARGS = ["--disable-blink-features=AutomationControlled"]

# Caller headers forwarded to the browser besides the defaults
_FORWARDED_HEADERS = ("cookie", "authorization")

_STEALTH_JS = """
Object.defineProperty(navigator, 'webdriver', {get: () => undefined});
Object.defineProperty(navigator, 'languages', {get: () => ['zh-CN', 'zh', 'en']});
Object.defineProperty(navigator, 'plugins', {get: () => [1, 2, 3]});
window.chrome = window.chrome || {runtime: {}};
"""

_SCROLL_JS = """
(ratio) => {
  const h = Math.max(document.body ? document.body.scrollHeight : 0,
                     document.documentElement.scrollHeight);
  window.scrollTo({top: Math.round(ratio * h), behavior: 'instant'});
}
"""

# Mirrors image_crawler.extraction.images against the live DOM
_EXTRACT_JS = """
(opts) => {
  const found = new Set();
  const abs = (u) => {
    if (!u) return null;
    try { return new URL(u.trim(), location.href).href; } catch (e) { return null; }
  };
  const add = (u) => { if (u && !u.startsWith('data:')) found.add(u); };
  const score = (desc) => {
    const w = desc.match(/(\\d+)w/i);
    if (w) return parseInt(w[1], 10) || 0;
    const x = desc.match(/(\\d+(?:\\.\\d+)?)x/i);
    if (x) return Math.round(parseFloat(x[1]) * 100) || 0;
    return 0;
  };
  const pickFromSrcset = (srcset) => {
    let best = null, bestScore = -1;
    for (const part of String(srcset || '').split(',')) {
      const p = part.trim();
      if (!p) continue;
      const pieces = p.split(/\\s+/);
      const u = abs(pieces[0]);
      const s = score(pieces.slice(1).join(' '));
      if (u && !u.startsWith('data:') && s >= bestScore) { best = u; bestScore = s; }
    }
    return best;
  };
  const firstSource = (el, attrs) => {
    for (const a of attrs) {
      const u = abs(el.getAttribute(a));
      if (u && !u.startsWith('data:')) return u;
    }
    return null;
  };
  const srcsetOf = (el) => {
    for (const a of opts.srcsetAttrs) {
      const v = el.getAttribute(a);
      if (v) return v;
    }
    return null;
  };
  const scanImages = (root) => {
    root.querySelectorAll('img').forEach((img) => {
      add(pickFromSrcset(srcsetOf(img)) || firstSource(img, opts.imgAttrs));
    });
  };
  const scanPictures = (root) => {
    root.querySelectorAll('picture').forEach((pic) => {
      let best = null;
      pic.querySelectorAll('source').forEach((s) => {
        const u = pickFromSrcset(s.getAttribute('srcset'));
        if (u) best = u;
      });
      add(best);
      const img = pic.querySelector('img');
      if (img) add(abs(img.getAttribute('src')));
    });
  };
  scanImages(document);
  scanPictures(document);
  document.querySelectorAll('noscript').forEach((ns) => {
    const html = ns.textContent || ns.innerHTML || '';
    if (!html.trim()) return;
    const div = document.createElement('div');
    div.innerHTML = html;
    scanImages(div);
    scanPictures(div);
  });
  document.querySelectorAll('*').forEach((el) => {
    const bg = getComputedStyle(el).backgroundImage;
    if (bg && bg !== 'none') {
      const m = bg.match(/url\\((['"]?)([^)'"]+)\\1\\)/i);
      if (m && m[2]) add(abs(m[2]));
    }
  });
  const lazySel = opts.lazyAttrs.map((a) => '[' + a + ']').join(',');
  document.querySelectorAll(lazySel).forEach((el) => {
    if (el.tagName.toLowerCase() !== 'img') add(firstSource(el, opts.lazyAttrs));
  });
  return Array.from(found);
}
"""


class HeadlessExtractor:
    """Render a page in a headless browser and collect its image URLs.

    Any failure (Playwright missing, no launchable browser channel,
    navigation error) is logged and yields an empty result.
    """

    def __init__(
        self,
        timeout_ms: int = DEFAULT_FETCH_TIMEOUT_MS,
        headers: dict | None = None,
        scroll_steps: int = DEFAULT_SCROLL_STEPS,
        scroll_wait_ms: int = DEFAULT_SCROLL_WAIT_MS,
        on_scroll: Callable[[int, int], None] | None = None,
        channels: tuple[str | None, ...] = HEADLESS_CHANNELS,
    ) -> None:
        self.timeout_ms = timeout_ms
        self.headers = merge_headers({}, headers)
        self.scroll_steps = max(1, scroll_steps)
        self.scroll_wait_ms = scroll_wait_ms
        self.on_scroll = on_scroll
        self.channels = channels

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def extract(self, page_url: str) -> list[str]:
        try:
            return self._extract(page_url)
        except HeadlessUnavailable as exc:
            log.warning("[HEADLESS] %s", exc)
        except Exception as exc:
            log.warning("[HEADLESS] Rendering %s failed: %s", page_url, exc)
        return []

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _extract(self, page_url: str) -> list[str]:
        try:
            from playwright.sync_api import sync_playwright
        except ImportError as exc:
            raise HeadlessUnavailable(
                "Playwright is not installed; install it with "
                "'pip install playwright && playwright install chromium'"
            ) from exc

        with sync_playwright() as p:
            browser = self._launch(p)
            try:
                return self._render(browser, page_url)
            finally:
                try:
                    browser.close()
                except Exception as exc:
                    log.debug("[HEADLESS] Browser close failed: %s", exc)

    def _launch(self, playwright):
        """Launch Chromium, falling back through the configured channels."""
        last_exc: Exception | None = None
        for channel in self.channels:
            try:
                kwargs = {"headless": True, "args": _LAUNCH_ARGS}
                if channel:
                    kwargs["channel"] = channel
                browser = playwright.chromium.launch(**kwargs)
                log.debug("[HEADLESS] Launched channel %s", channel or "chromium")
                return browser
            except Exception as exc:
                log.debug("[HEADLESS] Channel %s unavailable: %s", channel or "chromium", exc)
                last_exc = exc
        raise HeadlessUnavailable(f"no browser channel could be launched: {last_exc}")

    def _extra_headers(self, page_url: str) -> dict[str, str]:
        merged = merge_headers(
            {"referer": page_url, "accept": HTML_ACCEPT, "accept-language": ACCEPT_LANGUAGE},
            self.headers,
        )
        extra = {k: merged[k] for k in ("referer", "accept", "accept-language")}
        for key in _FORWARDED_HEADERS:
            if key in merged:
                extra[key] = merged[key]
        return extra

    def _render(self, browser, page_url: str) -> list[str]:
        context = browser.new_context(
            user_agent=self.headers.get("user-agent", DEFAULT_USER_AGENT),
            locale="zh-CN",
            viewport=HEADLESS_VIEWPORT,
            extra_http_headers=self._extra_headers(page_url),
        )
        page = context.new_page()
        page.add_init_script(_STEALTH_JS)

        log.info("[HEADLESS] Rendering %s", page_url)
        page.goto(page_url, wait_until="networkidle", timeout=self.timeout_ms)

        for step in range(1, self.scroll_steps + 1):
            page.evaluate(_SCROLL_JS, step / self.scroll_steps)
            if self.on_scroll is not None:
                self.on_scroll(step, self.scroll_steps)
            page.wait_for_timeout(self.scroll_wait_ms)

        raw = page.evaluate(_EXTRACT_JS, {
            "imgAttrs": list(IMG_SOURCE_ATTRS),
            "lazyAttrs": list(LAZY_CONTAINER_ATTRS),
            "srcsetAttrs": list(SRCSET_ATTRS),
        })
        found = DiscoveredUrls(to_absolute(u, page_url) for u in raw or [])
        log.info("[HEADLESS] %d image(s) on %s", len(found), page_url)
        return list(found)
