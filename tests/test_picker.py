"""Tests for the element picker."""

import unittest

from structscan.picker import ElementPicker
from structscan.soup_tree import SoupTree

from pages import LINK_LIST, PRICE_TABLE


class TestSelectorChoice(unittest.TestCase):
    """Verify the single selector reported for a picked node."""

    def test_id_wins(self):
        tree = SoupTree(PRICE_TABLE)
        self.assertEqual(ElementPicker(tree).generate_selector(tree.query("table")), "#prices")

    def test_rare_class(self):
        tree = SoupTree(LINK_LIST)
        self.assertEqual(ElementPicker(tree).generate_selector(tree.query("ul")), ".items")

    def test_path_fallback_stops_at_id(self):
        tree = SoupTree(PRICE_TABLE)
        cell = tree.query("td")
        self.assertEqual(ElementPicker(tree).generate_selector(cell), "table#prices > tbody > tr > td")

    def test_common_class_uses_path(self):
        markup = "<html><body><div>" + "".join('<p class="x">n</p>' for _ in range(10)) + "</div></body></html>"
        tree = SoupTree(markup)
        self.assertEqual(ElementPicker(tree).generate_selector(tree.query("p")), "div > p.x")


class TestPickerSession(unittest.TestCase):
    """Verify start/stop, hover, pick and cancel messages."""

    def setUp(self):
        self.tree = SoupTree(LINK_LIST)
        self.messages = []
        self.picker = ElementPicker(self.tree, listener=self.messages.append)

    def test_hover_ignored_while_stopped(self):
        self.assertIsNone(self.picker.hover(self.tree.query("ul")))
        self.assertIsNone(self.picker.highlighted)

    def test_hover_describes_node(self):
        self.picker.start()
        info = self.picker.hover(self.tree.query("ul"))
        self.assertEqual(info, {"tag": "ul", "id": "", "classes": ".items", "selector": ".items"})
        self.assertIs(self.picker.highlighted, self.tree.query("ul"))

    def test_pick_emits_and_stops(self):
        self.picker.start()
        self.picker.hover(self.tree.query("ul"))
        message = self.picker.pick()
        self.assertEqual(self.messages, [message])
        self.assertEqual(message["action"], "elementPicked")
        self.assertEqual(message["selector"], ".items")
        self.assertEqual(message["element"]["tagName"], "UL")
        self.assertEqual(message["element"]["className"], "items")
        self.assertFalse(self.picker.active)
        self.assertIsNone(self.picker.highlighted)

    def test_pick_while_stopped_does_nothing(self):
        self.assertIsNone(self.picker.pick(self.tree.query("ul")))
        self.assertEqual(self.messages, [])

    def test_cancel(self):
        self.picker.start()
        self.picker.cancel()
        self.assertEqual(self.messages, [{"action": "pickerCancelled"}])
        self.assertFalse(self.picker.active)

    def test_highlight(self):
        self.assertTrue(self.picker.highlight("li", 2))
        self.assertIn("Charlie", self.picker.highlighted.text)
        self.assertFalse(self.picker.highlight("li", 9))
        self.assertFalse(self.picker.highlight("li["))


if __name__ == "__main__":
    unittest.main()
