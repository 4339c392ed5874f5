import pytest

from ecomevents.matcher import matches, split, validate_pattern, validate_topic


def test_literal_patterns_need_the_exact_topic():
    assert matches("ecommerce/orders/created", "ecommerce/orders/created")
    assert not matches("ecommerce/orders/created", "ecommerce/orders/updated")
    assert not matches("ecommerce/orders/created", "ecommerce/Orders/created")


def test_single_wildcard_consumes_exactly_one_segment():
    assert matches("a/b/c", "a/*/c")
    assert not matches("a/b", "a/*/c")
    assert not matches("a/b/c/d", "a/*/c")
    assert matches("ecommerce/orders/created", "ecommerce/orders/*")
    assert not matches("ecommerce/orders", "ecommerce/orders/*")
    assert not matches("ecommerce/orders/created/eu", "ecommerce/orders/*")


def test_multi_wildcard_matches_zero_or_more_trailing_segments():
    assert matches("ecommerce", "ecommerce/>")
    assert matches("ecommerce/orders", "ecommerce/>")
    assert matches("ecommerce/orders/created", "ecommerce/>")
    assert not matches("shop/orders", "ecommerce/>")
    assert matches("anything/at/all", ">")


def test_multi_wildcard_after_single_wildcard():
    assert matches("a/b/c/d", "a/*/>")
    assert matches("a/b", "a/*/>")
    assert not matches("a", "a/*/>")


@pytest.mark.parametrize("base", ["ecommerce", "ecommerce/orders", "x/y/z"])
def test_base_plus_multi_wildcard_matches_base_and_everything_below(base):
    pattern = base + "/>"
    assert matches(base, pattern)
    assert matches(base + "/one", pattern)
    assert matches(base + "/one/two/three", pattern)


def test_segment_counts_must_agree_without_multi_wildcard():
    assert not matches("a/b/c", "a/b")
    assert not matches("a/b", "a/b/c")
    assert matches("a/b", "*/*")
    assert not matches("a/b/c", "*/*")


def test_empty_pattern_matches_only_empty_topic():
    assert matches("", "")
    assert not matches("a", "")
    assert not matches("", "a")
    assert not matches("", "*")


def test_split():
    assert split("") == []
    assert split("a/b") == ["a", "b"]


def test_validate_pattern_accepts_wildcards_in_the_right_places():
    assert validate_pattern("ecommerce/orders/*") is None
    assert validate_pattern("ecommerce/>") is None
    assert validate_pattern("*/orders/>") is None
    assert validate_pattern("") is None


@pytest.mark.parametrize("pattern", [
    "a/>/b",
    ">/>",
    "a//b",
    "a/b/",
    "a/b*",
    "a/>x",
])
def test_validate_pattern_rejects(pattern):
    assert validate_pattern(pattern) is not None


def test_validate_topic():
    assert validate_topic("ecommerce/orders/created") is None
    assert validate_topic("") is not None
    assert validate_topic("ecommerce/*") is not None
    assert validate_topic("ecommerce/>") is not None
    assert validate_topic("ecommerce//orders") is not None
