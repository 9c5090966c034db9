from __future__ import annotations

from spendsync.categories import allowed_slugs, category_id_for_slug
from spendsync.models import Category

VOCAB = [
    Category(id="c-food", slug="food", name="Food & Dining"),
    Category(id="c-bill", slug="Bill-Payment", name="Bill Payment"),
    Category(id="c-cat", slug="cat", name="Cat"),
    Category(id="c-food-dup", slug="FOOD", name="Food (custom)"),
]


def test_slug_lookup_is_case_insensitive() -> None:
    assert category_id_for_slug("bill-payment", VOCAB) == "c-bill"
    assert category_id_for_slug(" CAT ", VOCAB) == "c-cat"


def test_first_match_wins_on_duplicate_slugs() -> None:
    assert category_id_for_slug("food", VOCAB) == "c-food"


def test_unknown_or_blank_slug_is_none() -> None:
    assert category_id_for_slug("travel", VOCAB) is None
    assert category_id_for_slug("", VOCAB) is None
    assert category_id_for_slug(None, VOCAB) is None
    assert category_id_for_slug("food", []) is None


def test_allowed_slugs_dedupes_in_order() -> None:
    assert allowed_slugs(VOCAB) == ["food", "Bill-Payment", "cat"]
