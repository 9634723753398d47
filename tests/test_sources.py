import json
import math
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from screenshots.slugs import derive_slug
from screenshots.sources import InvalidSourceError, Source, coerce_sources, resolve_source_input


def _entry(**overrides) -> dict:
    payload = {"name": "Reuters", "url": "https://www.reuters.com/", "categories": ["World"], "score": 4.7}
    payload.update(overrides)
    return payload


class SourceFromMappingTestCase(unittest.TestCase):
    def test_parses_valid_entry(self) -> None:
        source = Source.from_mapping(_entry())
        self.assertEqual(source.name, "Reuters")
        self.assertEqual(source.categories, ("World",))
        self.assertEqual(source.score, 4.7)
        self.assertEqual(source.slug, derive_slug("https://www.reuters.com/", "Reuters"))
        self.assertEqual(source.screenshot_filename, f"{source.slug}.webp")

    def test_wraps_string_category_and_defaults_missing_values(self) -> None:
        source = Source.from_mapping({"name": "AP", "url": "https://apnews.com/", "categories": "World"})
        self.assertEqual(source.categories, ("World",))
        self.assertEqual(source.score, 0.0)

    def test_rejects_unusable_urls(self) -> None:
        invalid = [
            {"name": "Reuters"},
            _entry(url=""),
            _entry(url=None),
            _entry(url="/relative/path"),
            _entry(url="ftp://files.example.org/"),
            _entry(url="https://"),
            _entry(url="https://bad host.example/"),
        ]
        for payload in invalid:
            with self.subTest(payload=payload):
                with self.assertRaises(InvalidSourceError):
                    Source.from_mapping(payload)

    def test_url_is_the_only_required_field(self) -> None:
        source = Source.from_mapping({"url": "https://a.example/"})
        self.assertEqual(source, Source(name="", url="https://a.example/", categories=(), score=0.0))
        self.assertEqual(source.slug, derive_slug("https://a.example/"))

    def test_unusable_optional_fields_fall_back_with_warning(self) -> None:
        payloads = [
            (_entry(categories=[1, "World", None]), {"categories": ("World",)}),
            (_entry(categories={"World": True}), {"categories": ()}),
            (_entry(score="high"), {"score": 0.0}),
            (_entry(score=True), {"score": 0.0}),
            (_entry(score=math.nan), {"score": 0.0}),
        ]
        for payload, expected in payloads:
            with self.subTest(payload=payload):
                with self.assertLogs("screenshots", level="WARNING"):
                    source = Source.from_mapping(payload)
                for attribute, value in expected.items():
                    self.assertEqual(getattr(source, attribute), value)

    def test_blank_or_missing_name_becomes_empty(self) -> None:
        self.assertEqual(Source.from_mapping(_entry(name="")).name, "")
        self.assertEqual(Source.from_mapping(_entry(name=42)).name, "")

    def test_numeric_string_score_is_coerced(self) -> None:
        self.assertEqual(Source.from_mapping(_entry(score=" 3.5 ")).score, 3.5)


class CoerceSourcesTestCase(unittest.TestCase):
    def test_keeps_entries_with_only_a_valid_url(self) -> None:
        entries = [
            {"url": "https://a.example/"},
            {"name": "", "url": "https://b.example/"},
            {"name": "C", "url": "https://c.example/", "score": "3"},
            {"name": "D", "url": "https://d.example/", "score": "lots"},
        ]
        with self.assertLogs("screenshots", level="WARNING") as captured:
            sources = coerce_sources(entries)

        self.assertEqual([source.url for source in sources], [entry["url"] for entry in entries])
        self.assertEqual(sources[2].score, 3.0)
        self.assertEqual(sources[3].score, 0.0)
        self.assertEqual(len(captured.records), 1)

    def test_skips_invalid_entries_with_warning(self) -> None:
        with self.assertLogs("screenshots", level="WARNING") as captured:
            sources = coerce_sources([_entry(), _entry(url="not a url"), "garbage", _entry(name="AP")])

        self.assertEqual([source.name for source in sources], ["Reuters", "AP"])
        self.assertEqual(len(captured.records), 2)

    def test_accepts_source_instances(self) -> None:
        original = Source(name="AP", url="https://apnews.com/", categories=("World",), score=1.0)
        self.assertEqual(coerce_sources([original]), [original])


class ResolveSourceInputTestCase(unittest.TestCase):
    def test_accepts_list_and_wrapper(self) -> None:
        self.assertEqual(len(resolve_source_input([_entry()])), 1)
        self.assertEqual(len(resolve_source_input({"sources": [_entry(), _entry(name="AP")]})), 2)

    def test_loads_json_file_in_either_shape(self) -> None:
        with TemporaryDirectory() as tmpdir:
            wrapped = Path(tmpdir) / "wrapped.json"
            wrapped.write_text(json.dumps({"sources": [_entry()]}), encoding="utf-8")
            bare = Path(tmpdir) / "bare.json"
            bare.write_text(json.dumps([_entry(), _entry(name="AP")]), encoding="utf-8")

            self.assertEqual(len(resolve_source_input(wrapped)), 1)
            self.assertEqual(len(resolve_source_input(str(bare))), 2)

    def test_missing_file_is_a_warning(self) -> None:
        with TemporaryDirectory() as tmpdir:
            with self.assertLogs("screenshots", level="WARNING"):
                self.assertEqual(resolve_source_input(Path(tmpdir) / "missing.json"), [])

    def test_invalid_json_is_an_error(self) -> None:
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "broken.json"
            path.write_text("{not json", encoding="utf-8")
            with self.assertLogs("screenshots", level="ERROR"):
                self.assertEqual(resolve_source_input(path), [])

    def test_unsupported_shapes_yield_nothing(self) -> None:
        self.assertEqual(resolve_source_input(None), [])
        self.assertEqual(resolve_source_input({"items": []}), [])
        self.assertEqual(resolve_source_input([]), [])


if __name__ == "__main__":
    unittest.main()
