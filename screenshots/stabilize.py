"""In-page scripts that settle a news front page before it is captured."""

from __future__ import annotations

from typing import Any, Protocol

from playwright.async_api import Error as PlaywrightError

from .reporting import Reporter, resolve_reporter

HIDE_CONSENT_OVERLAYS_SCRIPT = """
(observeMs) => {
  const selectors = [
    '[id*="cookie" i]',
    '[class*="cookie" i]',
    '[class*="message-container" i]',
    '[id*="consent" i]',
    '[class*="consent" i]',
    '[id*="gdpr" i]',
    '[class*="gdpr" i]',
    'button[aria-label*="cookie" i]',
    'button[aria-label*="consent" i]',
    'div[data-testid="cookie-popup"]',
    '[data-testid*="consent" i]',
    '[role="dialog"][aria-label*="cookie" i]',
    '[role="dialog"][aria-labelledby*="cookie" i]',
  ];
  const keywords = [
    'cookie', 'consent', 'gdpr', 'privacy', 'preferences', 'tracking',
    'agree', 'manage choices', 'manage consent', 'data usage',
  ];
  const hidden = new WeakSet();
  let count = 0;

  const hide = (el) => {
    if (hidden.has(el)) return;
    el.setAttribute('data-cookie-hidden', 'true');
    el.style.setProperty('display', 'none', 'important');
    el.style.setProperty('visibility', 'hidden', 'important');
    el.style.setProperty('opacity', '0', 'important');
    el.style.setProperty('pointer-events', 'none', 'important');
    hidden.add(el);
    count += 1;
  };

  const matchesSelector = (el) => selectors.some((selector) => {
    try {
      return el.matches(selector);
    } catch (err) {
      return false;
    }
  });

  const looksLikeBanner = (el) => {
    const text = (el.textContent || '').trim().toLowerCase();
    if (!text || text.length > 800) return false;
    return keywords.some((word) => text.includes(word));
  };

  const scan = (el) => {
    if (!(el instanceof HTMLElement) || hidden.has(el)) return;
    if (matchesSelector(el)) {
      hide(el);
      return;
    }
    const styles = window.getComputedStyle(el);
    const floating = styles.position === 'fixed' || styles.position === 'sticky';
    if ((floating || Number(styles.zIndex) > 999) && looksLikeBanner(el)) {
      hide(el);
    }
  };

  selectors.forEach((selector) => {
    document.querySelectorAll(selector).forEach(scan);
  });
  document.querySelectorAll('div, section, aside, dialog, footer, header').forEach(scan);

  if (document.body) {
    document.body.style.setProperty('overflow', 'auto', 'important');
    document.body.style.setProperty('position', 'relative', 'important');
    const observer = new MutationObserver((mutations) => {
      mutations.forEach((mutation) => {
        mutation.addedNodes.forEach((node) => {
          if (!(node instanceof HTMLElement)) return;
          scan(node);
          node.querySelectorAll('*').forEach(scan);
        });
      });
    });
    observer.observe(document.body, { childList: true, subtree: true });
    window.setTimeout(() => observer.disconnect(), observeMs);
  }
  return count;
}
"""

AUTO_SCROLL_SCRIPT = """
async () => {
  const scrollHeight = () =>
    document.documentElement.scrollHeight || (document.body && document.body.scrollHeight) || 0;
  const distance = Math.max(window.innerHeight / 2, 200);
  if (scrollHeight() <= window.innerHeight * 1.2) {
    window.scrollTo({ top: 0, behavior: 'auto' });
    return;
  }
  await new Promise((resolve) => {
    let travelled = 0;
    const step = () => {
      window.scrollBy(0, distance);
      travelled += distance;
      if (travelled >= scrollHeight() - window.innerHeight) {
        window.scrollTo({ top: 0, behavior: 'auto' });
        resolve(null);
        return;
      }
      window.requestAnimationFrame(step);
    };
    window.requestAnimationFrame(step);
  });
}
"""

WAIT_FOR_IMAGES_SCRIPT = """
async (timeout) => {
  const images = Array.from(document.images || []);
  if (!images.length) return 0;
  const settle = (img) =>
    img.complete && img.naturalWidth > 0
      ? Promise.resolve()
      : new Promise((resolve) => {
          const done = () => {
            img.removeEventListener('load', done);
            img.removeEventListener('error', done);
            resolve(null);
          };
          img.addEventListener('load', done, { once: true });
          img.addEventListener('error', done, { once: true });
          window.setTimeout(done, timeout);
        });
  await Promise.race([
    Promise.all(images.map(settle)),
    new Promise((resolve) => window.setTimeout(resolve, timeout)),
  ]);
  return images.length;
}
"""

SCROLL_TO_TOP_SCRIPT = "() => window.scrollTo({ top: 0, behavior: 'auto' })"

# How long the banner observer keeps watching for late-inserted overlays.
CONSENT_OBSERVER_MS = 5000


class CosmeticFilter(Protocol):
    async def apply_cosmetic_filters(self, page: Any) -> None:
        ...


class PageStabilizer:
    """Best-effort page clean-up; every step logs and swallows browser errors."""

    def __init__(
        self,
        *,
        image_wait_timeout_ms: int,
        blocker: CosmeticFilter | None = None,
        reporter: Reporter | None = None,
    ) -> None:
        self._image_wait_timeout_ms = image_wait_timeout_ms
        self._blocker = blocker
        self._reporter = resolve_reporter(reporter)

    async def hide_consent_overlays(self, page: Any) -> None:
        try:
            hidden = await page.evaluate(HIDE_CONSENT_OVERLAYS_SCRIPT, CONSENT_OBSERVER_MS)
        except PlaywrightError as exc:
            self._reporter.warning("Failed to hide cookie banners: %s", exc)
            return
        if hidden:
            self._reporter.debug("Hid %s consent overlay element(s)", hidden)

    async def auto_scroll(self, page: Any) -> None:
        try:
            await page.evaluate(AUTO_SCROLL_SCRIPT)
        except PlaywrightError as exc:
            self._reporter.debug("Auto-scroll failed: %s", exc)

    async def wait_for_images(self, page: Any) -> None:
        if self._image_wait_timeout_ms <= 0:
            return
        try:
            await page.evaluate(WAIT_FOR_IMAGES_SCRIPT, self._image_wait_timeout_ms)
        except PlaywrightError as exc:
            self._reporter.warning("Failed waiting for images: %s", exc)

    async def scroll_to_top(self, page: Any) -> None:
        try:
            await page.evaluate(SCROLL_TO_TOP_SCRIPT)
        except PlaywrightError as exc:
            self._reporter.debug("Scroll to top failed: %s", exc)

    async def stabilize(self, page: Any) -> None:
        if self._blocker is not None:
            await self._blocker.apply_cosmetic_filters(page)
        await self.hide_consent_overlays(page)
        await self.auto_scroll(page)
        await self.wait_for_images(page)
        await self.scroll_to_top(page)
