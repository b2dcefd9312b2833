"""Tests for selector generation and ranking."""

import unittest

from structscan.models import CandidateKind
from structscan.selectors import MAX_OPTIONS, PROFILES, SelectorSynthesizer
from structscan.soup_tree import SoupTree

from pages import LINK_LIST, PRICE_TABLE, PRODUCT_GRID


class TestSelectorGeneration(unittest.TestCase):
    """Verify which expressions are generated for a node."""

    def test_id_selector_ranked_first(self):
        tree = SoupTree(PRICE_TABLE)
        options = SelectorSynthesizer(tree).synthesize(tree.query("table"))
        self.assertEqual(options[0].expression, "#prices")
        self.assertEqual(options[0].match_count, 1)
        self.assertTrue(options[0].is_exact_match)
        self.assertEqual(options[0].length, len("#prices"))

    def test_path_uses_element_position(self):
        """``:nth-child`` must count element siblings so the path re-selects the node."""
        tree = SoupTree("<html><body><ul><li>a</li><li>b</li></ul></body></html>")
        second = tree.query_all("li")[1]
        synth = SelectorSynthesizer(tree, CandidateKind.LIST)
        path = synth.path_selector(second)
        self.assertEqual(path, "ul > li:nth-child(2)")
        self.assertEqual(synth.evaluate(path, second), (1, True))

    def test_context_selector_prefers_ancestor_id(self):
        tree = SoupTree('<html><body><div id="main"><section><ul><li>x</li></ul></section></div></body></html>')
        synth = SelectorSynthesizer(tree)
        self.assertEqual(synth.context_selector(tree.query("ul")), "#main > ul")

    def test_position_selector(self):
        tree = SoupTree("<html><body><table><tr><td>1</td></tr></table><table><tr><td>2</td></tr></table></body></html>")
        synth = SelectorSynthesizer(tree)
        self.assertEqual(synth.position_selector(tree.query_all("table")[1]), "table:nth-of-type(2)")
        single = SoupTree(PRICE_TABLE)
        self.assertIsNone(SelectorSynthesizer(single).position_selector(single.query("table")))

    def test_class_band_filters_common_classes(self):
        """A class shared by too many nodes is not offered on its own."""
        markup = "<html><body>" + "".join('<p class="common">x</p>' for _ in range(12)) + "</body></html>"
        tree = SoupTree(markup)
        synth = SelectorSynthesizer(tree, CandidateKind.PRODUCT)
        self.assertNotIn(".common", synth.generate(tree.query("p")))
        self.assertIn(".common", SelectorSynthesizer(tree, CandidateKind.LIST).generate(tree.query("p")))

    def test_product_pairs_and_list_role(self):
        tree = SoupTree('<html><body><ul class="a b c" role="list" data-kind="x"><li>1</li></ul></body></html>')
        ul = tree.query("ul")
        product = SelectorSynthesizer(tree, CandidateKind.PRODUCT).generate(ul)
        self.assertIn(".a.b", product)
        self.assertIn(".b.c", product)
        self.assertNotIn(".a.b.c", product)
        listing = SelectorSynthesizer(tree, CandidateKind.LIST).generate(ul)
        self.assertIn(".a.b.c", listing)
        self.assertIn('ul[role="list"]', listing)
        self.assertIn('ul[data-kind="x"]', listing)

    def test_generated_expressions_are_unique(self):
        tree = SoupTree(PRODUCT_GRID)
        options = SelectorSynthesizer(tree, CandidateKind.PRODUCT).generate(tree.query(".card"))
        self.assertEqual(len(options), len(set(options)))


class TestSelectorRanking(unittest.TestCase):
    """Verify ranking, capping and evaluation."""

    def test_ranked_best_first_and_capped(self):
        tree = SoupTree(LINK_LIST)
        options = SelectorSynthesizer(tree, CandidateKind.LIST).synthesize(tree.query_all("li")[2])
        self.assertLessEqual(len(options), MAX_OPTIONS)
        scores = [o.stability_score for o in options]
        self.assertEqual(scores, sorted(scores, reverse=True))
        self.assertTrue(all(s > 0 for s in scores))

    def test_invalid_expressions_dropped(self):
        tree = SoupTree(PRICE_TABLE)
        synth = SelectorSynthesizer(tree)
        options = synth.rank(["div[", "#prices"], tree.query("table"))
        self.assertEqual([o.expression for o in options], ["#prices"])

    def test_evaluate_is_idempotent(self):
        tree = SoupTree(PRODUCT_GRID)
        synth = SelectorSynthesizer(tree, CandidateKind.PRODUCT)
        target = tree.query_all(".card")[3]
        for option in synth.synthesize(target):
            first = synth.evaluate(option.expression, target)
            second = synth.evaluate(option.expression, target)
            self.assertEqual(first, second)
            self.assertEqual(first, (option.match_count, option.is_exact_match))

    def test_scoring_tables(self):
        tabular = SelectorSynthesizer(SoupTree(PRICE_TABLE), CandidateKind.TABULAR)
        # exact 2 + length (100 - 7) / 100 + matches (5 - 1) / 5 + id 1
        self.assertAlmostEqual(tabular.score("#prices", 1, True), 2 + 0.93 + 0.8 + 1)
        product = SelectorSynthesizer(SoupTree(PRICE_TABLE), CandidateKind.PRODUCT)
        # not exact; length (150 - 11) / 150; 2 matches; one class
        self.assertAlmostEqual(product.score(".card-title", 2, False), (150 - 11) / 150 + 1.5 + 1.2)
        self.assertAlmostEqual(product.score('#g > a[x="1"]', 1, True), 3 + (150 - 13) / 150 + 2 + 2 + 0.8 + 0.5)

    def test_length_bonus_never_negative(self):
        synth = SelectorSynthesizer(SoupTree(PRICE_TABLE), CandidateKind.TABULAR)
        long_expression = "div > " * 40 + "span"
        self.assertEqual(synth.score(long_expression, 20, False), 0.0)

    def test_profiles_cover_every_kind(self):
        self.assertEqual(set(PROFILES), set(CandidateKind))


if __name__ == "__main__":
    unittest.main()
