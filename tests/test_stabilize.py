import unittest

from playwright.async_api import Error as PlaywrightError

from screenshots.stabilize import (
    AUTO_SCROLL_SCRIPT,
    CONSENT_OBSERVER_MS,
    HIDE_CONSENT_OVERLAYS_SCRIPT,
    SCROLL_TO_TOP_SCRIPT,
    WAIT_FOR_IMAGES_SCRIPT,
    PageStabilizer,
)


class ScriptedPage:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.evaluated = []
        self.url = "https://a.example/"

    async def evaluate(self, expression, arg=None):
        self.evaluated.append((expression, arg))
        if expression in self.failing:
            raise PlaywrightError("Execution context was destroyed")
        return 3 if expression == HIDE_CONSENT_OVERLAYS_SCRIPT else None


class RecordingBlocker:
    def __init__(self, page):
        self.page = page
        self.seen_before = None

    async def apply_cosmetic_filters(self, page):
        self.seen_before = list(self.page.evaluated)


class PageStabilizerTestCase(unittest.IsolatedAsyncioTestCase):
    async def test_runs_steps_in_order(self) -> None:
        page = ScriptedPage()
        blocker = RecordingBlocker(page)
        stabilizer = PageStabilizer(image_wait_timeout_ms=8000, blocker=blocker)

        await stabilizer.stabilize(page)

        self.assertEqual(blocker.seen_before, [])
        self.assertEqual(
            page.evaluated,
            [
                (HIDE_CONSENT_OVERLAYS_SCRIPT, CONSENT_OBSERVER_MS),
                (AUTO_SCROLL_SCRIPT, None),
                (WAIT_FOR_IMAGES_SCRIPT, 8000),
                (SCROLL_TO_TOP_SCRIPT, None),
            ],
        )

    async def test_image_wait_can_be_disabled(self) -> None:
        page = ScriptedPage()
        await PageStabilizer(image_wait_timeout_ms=0).stabilize(page)
        self.assertNotIn(WAIT_FOR_IMAGES_SCRIPT, [expression for expression, _ in page.evaluated])

    async def test_browser_errors_do_not_abort_stabilisation(self) -> None:
        page = ScriptedPage(failing={HIDE_CONSENT_OVERLAYS_SCRIPT, WAIT_FOR_IMAGES_SCRIPT})
        stabilizer = PageStabilizer(image_wait_timeout_ms=100)

        with self.assertLogs("screenshots", level="WARNING") as captured:
            await stabilizer.stabilize(page)

        self.assertEqual(len(captured.records), 2)
        self.assertEqual(page.evaluated[-1], (SCROLL_TO_TOP_SCRIPT, None))


if __name__ == "__main__":
    unittest.main()
