"""Tests for the ExtractionEngine orchestration layer."""

import unittest
from unittest import mock

from structscan.engine import ExtractionEngine, is_data_container
from structscan.errors import ExtractionError, TreeAccessError
from structscan.listing import ListFinder
from structscan.models import CandidateKind
from structscan.soup_tree import SoupTree
from structscan.tabular import TableFinder
from structscan.tree import DocumentTree

from pages import LINK_LIST, PRICE_TABLE, PRODUCT_GRID


SORT_BY_PRICE = {"mode": "table", "processors": [{"name": "sort", "args": ["Price", "desc"]}]}


class FakeClock:
    def __init__(self, now: float = 1000.0, step: float = 0.0) -> None:
        self.now = now
        self.step = step

    def __call__(self) -> float:
        self.now += self.step
        return self.now


class EngineTestCase(unittest.TestCase):
    markup = PRICE_TABLE
    base_url = "https://example.com/shop/"

    def setUp(self):
        self.clock = FakeClock()
        self.engine = ExtractionEngine(pool_size=1, clock=self.clock)
        self.tree = SoupTree(self.markup, base_url=self.base_url)
        self.engine.attach("page", self.tree)

    def tearDown(self):
        self.engine.close()


class TestTargets(EngineTestCase):
    """Verify target registration and document availability."""

    def test_unknown_target(self):
        with self.assertRaises(TreeAccessError):
            self.engine.extract("missing")

    def test_closed_document(self):
        self.tree.close()
        with self.assertRaises(TreeAccessError):
            self.engine.extract("page", {"mode": "table"})
        snap = self.engine.metrics.snapshot(window_secs=60)
        self.assertEqual(snap.error_count, 1)

    def test_document_lost_during_detection_propagates(self):
        with mock.patch.object(TableFinder, "native_tables", side_effect=TreeAccessError("document gone")):
            with self.assertRaises(TreeAccessError):
                self.engine.extract("page", {"mode": "table"})
        self.assertEqual(len(self.engine.cache), 0)

    def test_trees_are_open_unless_they_say_otherwise(self):
        class EmptyTree(DocumentTree):
            @property
            def root(self):
                raise TreeAccessError("no root")

            def query_all(self, expression):
                return []

        tree = EmptyTree()
        self.assertFalse(tree.closed)
        self.engine.attach("empty", tree)
        self.assertIs(self.engine.tree("empty"), tree)
        self.assertEqual(self.engine.extract("empty", {"mode": "list"}), [])

    def test_detach(self):
        self.engine.detach("page")
        self.assertEqual(self.engine.targets(), [])
        self.assertFalse(self.engine.status("page")["ready"])


class TestModes(EngineTestCase):
    """Verify each extraction mode end to end."""

    def test_table_mode(self):
        records = self.engine.extract("page", {"mode": "table"})
        self.assertEqual(records, [
            {"Name": "Widget", "Price": "$9.99"},
            {"Name": "Gadget", "Price": "$19.99"},
        ])

    def test_auto_mode_picks_the_table(self):
        self.assertEqual(self.engine.extract("page"), self.engine.extract("page", {"mode": "table"}))

    def test_auto_mode_skips_failing_finder(self):
        with mock.patch.object(ListFinder, "extract_best", side_effect=RuntimeError("list failure")):
            records = self.engine.extract("page", {"mode": "auto"})
        self.assertEqual(len(records), 2)

    def test_auto_mode_propagates_tree_access_errors(self):
        with mock.patch.object(ListFinder, "extract_best", side_effect=TreeAccessError("gone")):
            with self.assertRaises(TreeAccessError):
                self.engine.extract("page", {"mode": "auto"})

    def test_finder_failure_becomes_extraction_error(self):
        with mock.patch.object(TableFinder, "extract_best", side_effect=RuntimeError("table failure")):
            with self.assertRaises(ExtractionError):
                self.engine.extract("page", {"mode": "table"})
        self.assertEqual(len(self.engine.cache), 0)

    def test_custom_mode_without_matches(self):
        self.assertEqual(self.engine.extract("page", {"mode": "custom", "selectors": ["#does-not-exist"]}), [])

    def test_custom_mode_skips_invalid_selectors(self):
        records = self.engine.extract("page", {"mode": "custom", "selectors": ["div[", "th"]})
        self.assertEqual(records, [
            {"selector": "th", "index": 1, "tag": "th", "text": "Name"},
            {"selector": "th", "index": 2, "tag": "th", "text": "Price"},
        ])


class TestListModes(EngineTestCase):
    markup = LINK_LIST

    def test_list_mode(self):
        records = self.engine.extract("page", {"mode": "list"})
        self.assertEqual(len(records), 5)
        self.assertEqual(records[0]["links"][0]["href"], "https://example.com/a")

    def test_custom_mode_resolves_links(self):
        records = self.engine.extract("page", {"mode": "custom", "selectors": "ul.items a"})
        self.assertEqual(len(records), 5)
        self.assertEqual(records[1], {
            "selector": "ul.items a",
            "index": 2,
            "tag": "a",
            "text": "Bravo",
            "href": "https://example.com/b",
        })


class TestCaching(EngineTestCase):
    """Verify cache hits, expiry and mutation-driven invalidation."""

    markup = LINK_LIST

    def test_cache_hit_skips_traversal(self):
        first = self.engine.extract("page", {"mode": "list"})
        count = self.tree.traversal_count
        second = self.engine.extract("page", {"mode": "list"})
        self.assertEqual(first, second)
        self.assertEqual(self.tree.traversal_count, count)
        self.assertEqual(self.engine.metrics.snapshot(window_secs=60).cache_hits, 1)

    def test_different_config_misses(self):
        self.engine.extract("page", {"mode": "list"})
        count = self.tree.traversal_count
        self.engine.extract("page", {"mode": "list", "maxItems": 2})
        self.assertGreater(self.tree.traversal_count, count)

    def test_cached_result_cannot_be_corrupted(self):
        first = self.engine.extract("page", {"mode": "list"})
        first[0]["text"] = "changed"
        self.assertEqual(self.engine.extract("page", {"mode": "list"})[0]["text"], "Alpha")

    def test_entries_expire(self):
        self.engine.extract("page", {"mode": "list"})
        self.clock.now += 31
        count = self.tree.traversal_count
        self.engine.extract("page", {"mode": "list"})
        self.assertGreater(self.tree.traversal_count, count)

    def test_mutation_of_data_container_clears_cache(self):
        self.engine.extract("page", {"mode": "list"})
        self.assertEqual(len(self.engine.cache), 1)
        ul = self.tree.query("ul.items")
        self.tree.insert(ul, '<li><a href="/f">Foxtrot</a></li>')
        self.assertEqual(len(self.engine.cache), 0)
        self.assertEqual(len(self.engine.extract("page", {"mode": "list"})), 6)

    def test_mutation_of_small_node_keeps_cache(self):
        self.engine.extract("page", {"mode": "list"})
        anchor = self.tree.query("a")
        self.assertFalse(is_data_container(anchor))
        self.tree.insert(anchor, "<b>!</b>")
        self.assertEqual(len(self.engine.cache), 1)

    def test_invalidate_single_target(self):
        other = SoupTree(PRICE_TABLE)
        self.engine.attach("other", other)
        self.engine.extract("page", {"mode": "list"})
        self.engine.extract("other", {"mode": "table"})
        self.assertEqual(self.engine.invalidate("page"), 1)
        self.assertEqual(len(self.engine.cache), 1)


class TestPostProcessing(EngineTestCase):
    """Verify that worker and inline post-processing agree."""

    def test_worker_and_inline_results_match(self):
        via_worker = self.engine.extract("page", SORT_BY_PRICE)
        self.engine.invalidate("page")
        handle = self.engine.pool.try_acquire()
        try:
            inline = self.engine.extract("page", SORT_BY_PRICE)
        finally:
            handle.release()
        self.assertEqual(via_worker, inline)
        self.assertEqual([r["Name"] for r in inline], ["Gadget", "Widget"])
        snap = self.engine.metrics.snapshot(window_secs=60)
        self.assertEqual(snap.worker_jobs, 1)
        self.assertEqual(snap.inline_jobs, 1)

    def test_worker_failure_falls_back_inline(self):
        def explode(job):
            raise RuntimeError("worker crashed")

        with mock.patch.object(self.engine.pool, "_runner", explode):
            records = self.engine.extract("page", SORT_BY_PRICE)
        self.assertEqual([r["Name"] for r in records], ["Gadget", "Widget"])
        self.assertEqual(self.engine.metrics.snapshot(window_secs=60).worker_fallbacks, 1)
        self.assertEqual(self.engine.pool.busy_count, 0)

    def test_no_processors_no_route(self):
        self.engine.extract("page", {"mode": "table"})
        snap = self.engine.metrics.snapshot(window_secs=60)
        self.assertEqual((snap.worker_jobs, snap.inline_jobs, snap.worker_fallbacks), (0, 0, 0))


class TestSlowExtraction(unittest.TestCase):
    def test_slow_extraction_logs_warning(self):
        engine = ExtractionEngine(pool_size=1, slow_extraction_ms=100, clock=FakeClock(step=0.5))
        try:
            engine.attach("page", SoupTree(PRICE_TABLE))
            with self.assertLogs("structscan.engine", level="WARNING") as logs:
                engine.extract("page", {"mode": "table"})
            self.assertTrue(any("slow_extraction" in line for line in logs.output))
        finally:
            engine.close()


class TestInspection(EngineTestCase):
    """Verify detection, selector generation, selector testing and status."""

    def test_scrape_metadata(self):
        result = self.engine.scrape("page", {"mode": "table"})
        self.assertEqual(len(result["data"]), 2)
        self.assertEqual(result["metadata"]["url"], "https://example.com/shop/")
        self.assertEqual(result["metadata"]["elementCount"], 2)
        self.assertIn("timestamp", result["metadata"])

    def test_detect_structures(self):
        detections = self.engine.detect_structures("page")
        self.assertEqual(set(detections), {"table", "list", "products"})
        self.assertEqual(list(detections["table"].locators), ["table_1"])

    def test_generate_selectors(self):
        options = self.engine.generate_selectors("page", "table")
        self.assertEqual(options[0].expression, "#prices")
        self.assertEqual(self.engine.generate_selectors("page", "#nothing", CandidateKind.LIST), [])

    def test_test_selector(self):
        result = self.engine.test_selector("page", "td")
        self.assertTrue(result["success"])
        self.assertEqual(result["count"], 4)
        self.assertEqual(result["matches"][0]["tagName"], "TD")
        self.assertEqual(result["matches"][0]["text"], "Widget")

    def test_test_selector_with_invalid_expression(self):
        result = self.engine.test_selector("page", "div[")
        self.assertFalse(result["success"])
        self.assertIn("error", result)

    def test_status(self):
        status = self.engine.status("page")
        self.assertEqual(status, {
            "ready": True,
            "url": "https://example.com/shop/",
            "title": "Price list",
            "hasData": True,
        })

    def test_status_without_data(self):
        self.engine.attach("grid", SoupTree(PRODUCT_GRID))
        self.assertFalse(self.engine.status("grid")["hasData"])


if __name__ == "__main__":
    unittest.main()
