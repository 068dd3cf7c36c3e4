"""Tests for selector specificity and best-selector picking."""

from selectolax.parser import HTMLParser

from catalog_crawler.extract.scoring import calculate_specificity, pick_best, score_selectors
from catalog_crawler.extract.selectors import LightDomScope


HTML = """
<html><body>
  <div id="grid">
    <div class="item"><span class="name">A</span></div>
    <div class="item"><span class="name">B</span></div>
    <div class="item"><span class="name">C</span></div>
  </div>
  <div class="promo"><span class="name">Ad</span></div>
</body></html>
"""


def _scope():
    return LightDomScope(HTMLParser(HTML), "https://shop.example.com/list")


def test_specificity_weights():
    assert calculate_specificity("#main") == 100
    assert calculate_specificity(".a") == 10
    assert calculate_specificity("div") == 1
    assert calculate_specificity("div:not(.x)") > calculate_specificity("div.x")
    # Length bonus: one point per ten characters
    assert calculate_specificity(".abcdefghijklmnopqrs") == 12


def test_more_id_tokens_score_higher():
    assert calculate_specificity("#grid .item") > calculate_specificity("div .item")


def test_pick_best_is_deterministic():
    selectors = [".item", "#grid .item", "div > .item", ".missing"]
    first = pick_best(_scope(), selectors)
    for _ in range(5):
        again = pick_best(_scope(), selectors)
        assert again.raw == first.raw
    assert first.raw == "#grid .item"
    assert first.match_count == 3


def test_zero_match_selector_never_wins():
    # Highly specific but absent
    selectors = ["#nothing #here .at-all", "span"]
    best = pick_best(_scope(), selectors)
    assert best.raw == "span"


def test_ties_keep_configuration_order():
    scope = LightDomScope(HTMLParser("<p class=\"aa\">x</p><p class=\"bb\">y</p>"))
    assert pick_best(scope, [".bb", ".aa"]).raw == ".bb"
    assert pick_best(scope, [".aa", ".bb"]).raw == ".aa"


def test_more_matches_win_at_equal_specificity():
    best = pick_best(_scope(), [".item", ".name"])
    assert best.raw == ".name"
    assert best.match_count == 4


def test_no_match_returns_none():
    assert pick_best(_scope(), []) is None
    assert pick_best(_scope(), [".missing", "#absent"]) is None


def test_invalid_selector_counts_as_zero():
    scored = score_selectors(_scope(), ["div[[", ".item"])
    assert scored[0].match_count == 0
    assert scored[0].combined_score == 0
    assert pick_best(_scope(), ["div[[", ".item"]).raw == ".item"


def test_combined_score_formula():
    scored = score_selectors(_scope(), [".item"])[0]
    assert scored.combined_score == scored.specificity_score * 1000 + 3
