import io
import unittest
from dataclasses import replace
from pathlib import Path
from tempfile import TemporaryDirectory

from PIL import Image
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from screenshots.capture import FINAL_CAPTURE_DELAY_MS, NETWORK_IDLE_TIMEOUT_MS, CaptureEngine
from screenshots.config import ScreenshotConfig
from screenshots.storage import LocalScreenshotStore


def png_bytes(width: int = 8, height: int = 8) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), (20, 40, 60)).save(buffer, format="PNG")
    return buffer.getvalue()


class FakePage:
    def __init__(self, *, goto_errors=(), ready_errors=(), idle_error=None, screenshot_error=None, url=None):
        self.goto_errors = list(goto_errors)
        self.ready_errors = list(ready_errors)
        self.idle_error = idle_error
        self.screenshot_error = screenshot_error
        self.screenshot_payload = png_bytes()
        self.url = url or "about:blank"
        self.calls = []

    async def goto(self, url, **kwargs):
        self.calls.append(("goto", url, kwargs))
        self.url = url
        if self.goto_errors:
            error = self.goto_errors.pop(0)
            if error is not None:
                raise error

    async def wait_for_load_state(self, state="load", **kwargs):
        self.calls.append(("wait_for_load_state", state, kwargs.get("timeout")))
        if self.idle_error is not None:
            raise self.idle_error

    async def wait_for_function(self, expression, **kwargs):
        self.calls.append(("wait_for_function", kwargs.get("timeout")))
        if self.ready_errors:
            error = self.ready_errors.pop(0)
            if error is not None:
                raise error

    async def wait_for_timeout(self, timeout):
        self.calls.append(("wait_for_timeout", timeout))

    async def evaluate(self, expression, arg=None):
        self.calls.append(("evaluate",))
        return 0

    async def screenshot(self, **kwargs):
        self.calls.append(("screenshot", kwargs))
        if self.screenshot_error is not None:
            raise self.screenshot_error
        return self.screenshot_payload

    async def close(self):
        self.calls.append(("close",))

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)


class RecordingStabilizer:
    def __init__(self):
        self.pages = []

    async def stabilize(self, page):
        self.pages.append(page)


CONFIG = ScreenshotConfig(settle_delay_ms=25, navigation_timeout_ms=1000, ready_state_timeout_ms=500)
URL = "https://a.example/"


class CaptureEngineTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmpdir = TemporaryDirectory()
        self.store = LocalScreenshotStore(Path(self._tmpdir.name))
        self.stabilizer = RecordingStabilizer()
        self.engine = CaptureEngine(CONFIG, self.store, self.stabilizer)

    def tearDown(self) -> None:
        self._tmpdir.cleanup()

    def _artifact(self) -> Path:
        return self.store.path_for("a-example-123456")

    async def test_success_writes_webp(self) -> None:
        page = FakePage()

        self.assertTrue(await self.engine.capture(page, URL, "a-example-123456"))

        artifact = self._artifact()
        self.assertTrue(artifact.exists())
        header = artifact.read_bytes()[:12]
        self.assertEqual(header[:4], b"RIFF")
        self.assertEqual(header[8:12], b"WEBP")
        self.assertEqual(page.count("goto"), 1)
        self.assertIn(("wait_for_timeout", 25), page.calls)
        self.assertIn(("wait_for_function", 500), page.calls)
        self.assertEqual(self.stabilizer.pages, [page])
        _, _, goto_kwargs = page.calls[0]
        self.assertEqual(goto_kwargs, {"wait_until": "domcontentloaded", "timeout": 1000})
        screenshot_kwargs = next(call[1] for call in page.calls if call[0] == "screenshot")
        self.assertEqual(screenshot_kwargs, {"full_page": True, "type": "png"})

    async def test_network_idle_timeout_is_tolerated(self) -> None:
        page = FakePage(idle_error=PlaywrightTimeoutError("still polling"))
        self.assertTrue(await self.engine.capture(page, URL, "a-example-123456"))
        self.assertEqual(page.count("goto"), 1)

    async def test_network_idle_wait_is_bounded(self) -> None:
        config = replace(CONFIG, navigation_timeout_ms=60_000)
        engine = CaptureEngine(config, self.store, self.stabilizer)
        page = FakePage(idle_error=PlaywrightTimeoutError("still polling"))

        self.assertTrue(await engine.capture(page, URL, "a-example-123456"))

        self.assertIn(("wait_for_load_state", "networkidle", NETWORK_IDLE_TIMEOUT_MS), page.calls)
        self.assertLess(NETWORK_IDLE_TIMEOUT_MS, config.navigation_timeout_ms)

    async def test_network_idle_wait_never_exceeds_navigation_timeout(self) -> None:
        page = FakePage()

        self.assertTrue(await self.engine.capture(page, URL, "a-example-123456"))

        self.assertIn(("wait_for_load_state", "networkidle", 1000), page.calls)

    async def test_retries_after_timeout(self) -> None:
        page = FakePage(goto_errors=[PlaywrightTimeoutError("Navigation timeout")])

        with self.assertLogs("screenshots", level="WARNING"):
            self.assertTrue(await self.engine.capture(page, URL, "a-example-123456"))

        self.assertEqual(page.count("goto"), 2)
        self.assertEqual(page.count("screenshot"), 1)
        self.assertTrue(self._artifact().exists())

    async def test_captures_current_state_after_final_timeout(self) -> None:
        page = FakePage(
            ready_errors=[PlaywrightTimeoutError("slow"), PlaywrightTimeoutError("still slow")],
        )

        self.assertTrue(await self.engine.capture(page, URL, "a-example-123456"))

        self.assertEqual(page.count("goto"), 2)
        self.assertIn(("wait_for_timeout", FINAL_CAPTURE_DELAY_MS), page.calls)
        self.assertEqual(self.stabilizer.pages, [])
        self.assertTrue(self._artifact().exists())

    async def test_gives_up_when_final_capture_fails(self) -> None:
        page = FakePage(
            goto_errors=[PlaywrightTimeoutError("t1"), PlaywrightTimeoutError("t2")],
            screenshot_error=PlaywrightError("Target closed"),
        )

        self.assertFalse(await self.engine.capture(page, URL, "a-example-123456"))

        self.assertEqual(page.count("screenshot"), 1)
        self.assertFalse(self._artifact().exists())
        self.assertEqual(list(Path(self._tmpdir.name).iterdir()), [])

    async def test_does_not_capture_browser_error_page(self) -> None:
        page = FakePage(goto_errors=[PlaywrightTimeoutError("t1"), PlaywrightTimeoutError("t2")])

        async def goto_to_error_page(url, **kwargs):
            page.calls.append(("goto", url, kwargs))
            page.url = "chrome-error://chromewebdata/"
            raise page.goto_errors.pop(0)

        page.goto = goto_to_error_page

        self.assertFalse(await self.engine.capture(page, URL, "a-example-123456"))
        self.assertEqual(page.count("screenshot"), 0)
        self.assertFalse(self._artifact().exists())

    async def test_non_timeout_failure_on_final_attempt_is_a_failure(self) -> None:
        page = FakePage(
            goto_errors=[
                PlaywrightError("net::ERR_NAME_NOT_RESOLVED"),
                PlaywrightError("net::ERR_NAME_NOT_RESOLVED"),
            ]
        )

        with self.assertLogs("screenshots", level="ERROR"):
            self.assertFalse(await self.engine.capture(page, URL, "a-example-123456"))

        self.assertEqual(page.count("goto"), 2)
        self.assertEqual(page.count("screenshot"), 0)
        self.assertFalse(self._artifact().exists())

    async def test_empty_screenshot_is_not_persisted(self) -> None:
        page = FakePage()
        page.screenshot_payload = b""

        self.assertFalse(await self.engine.capture(page, URL, "a-example-123456"))
        self.assertFalse(self._artifact().exists())

    async def test_single_attempt_configuration(self) -> None:
        engine = CaptureEngine(replace(CONFIG, capture_attempts=1), self.store, self.stabilizer)
        page = FakePage(goto_errors=[PlaywrightTimeoutError("t1")])

        self.assertTrue(await engine.capture(page, URL, "a-example-123456"))
        self.assertEqual(page.count("goto"), 1)


if __name__ == "__main__":
    unittest.main()
