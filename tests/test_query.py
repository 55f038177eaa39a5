"""Tests for the selector/filter extraction language."""

from __future__ import annotations

import pytest

from hookcrawl.errors import MalformedQueryError, UnknownFilterError
from hookcrawl.parser import parse_document
from hookcrawl.query import (
    ArrayOf,
    FilterCall,
    ObjectOf,
    Piped,
    QueryPlan,
    Selector,
    compile_rule,
    evaluate,
    force_all,
    parse_query,
)

HTML = """
<html>
  <body>
    <p> one </p><p>two</p><p>three</p>
    <a class="nav main" href="/first">First</a>
    <a href="/second">Second</a>
    <div class="quote" data-id="1"><span class="text">Hello</span><b>Ann</b></div>
    <div class="quote" data-id="2"><span class="text">World</span><b>Bob</b></div>
    <div id="mixed">own <i>child</i> text</div>
  </body>
</html>
"""


@pytest.fixture
def doc():
    return parse_document(HTML)


def test_parse_query_full_form():
    plan = parse_query("[.item]@href | trim | slice:0,10")
    assert plan == QueryPlan(
        selector=".item",
        attribute="href",
        get_all=True,
        filters=(FilterCall("trim"), FilterCall("slice", (0, 10))),
    )


def test_parse_query_argument_types():
    plan = parse_query("p | f:3,-2,1.5,true,null,'a,b',\"x y\",word")
    assert plan.filters[0].args == (3, -2, 1.5, True, None, "a,b", "x y", "word")


def test_parse_query_is_idempotent():
    assert parse_query("a@href | trim") == parse_query("a@href | trim")


def test_parse_query_keeps_nested_brackets_in_selector():
    plan = parse_query("[a[href]]@href")
    assert plan.selector == "a[href]"
    assert plan.get_all


def test_parse_query_rejects_malformed_input():
    with pytest.raises(MalformedQueryError):
        parse_query("[p")
    with pytest.raises(MalformedQueryError):
        parse_query("p | | trim")
    with pytest.raises(MalformedQueryError):
        parse_query(42)


def test_count_of_all_paragraphs(doc):
    assert evaluate("[p] | count", doc) == 3


def test_missing_single_match_is_none(doc):
    assert evaluate("h1", doc) is None


def test_missing_get_all_is_empty_list(doc):
    assert evaluate("[h1]", doc) == []


def test_attribute_of_first_match(doc):
    assert evaluate("a@href", doc) == "/first"


def test_multi_valued_attribute_joined(doc):
    assert evaluate("a@class", doc) == "nav main"


def test_filters_chain_left_to_right(doc):
    assert evaluate("p | trim | upper", doc) == "ONE"
    assert evaluate("[p] | trim | join:-", doc) == "one-two-three"
    assert evaluate("[p] | count | gt:2", doc) is True


def test_special_attributes(doc):
    assert evaluate("#mixed@string", doc) == "own  text"
    assert evaluate(".quote@html", doc) == '<span class="text">Hello</span><b>Ann</b>'
    assert evaluate("b@outerHtml", doc) == "<b>Ann</b>"


def test_object_rule_keeps_key_set(doc):
    result = evaluate({"first": "p | trim", "links": "[a]@href", "missing": "h1"}, doc)
    assert result == {"first": "one", "links": ["/first", "/second"], "missing": None}


def test_array_rule_evaluates_per_scope(doc):
    rule = ["[.quote]", {"id": "@data-id", "text": ".text", "author": "b"}]
    assert evaluate(rule, doc) == [
        {"id": "1", "text": "Hello", "author": "Ann"},
        {"id": "2", "text": "World", "author": "Bob"},
    ]


def test_array_rule_with_transform_applies_per_element(doc):
    rule = ["[.quote]", "b", str.lower]
    assert evaluate(rule, doc) == ["ann", "bob"]


def test_single_scope_uses_first_match(doc):
    assert evaluate([".quote", ".text"], doc) == "Hello"
    assert evaluate(["section", ".text"], doc) is None


def test_piped_rule(doc):
    assert evaluate(["[p]", len], doc) == 3
    assert evaluate(["[a]@href", lambda hrefs: [h.upper() for h in hrefs], lambda hs: hs[-1]], doc) == "/SECOND"


def test_compile_rule_produces_tagged_variants():
    assert isinstance(compile_rule("p"), Selector)
    assert isinstance(compile_rule({"a": "p"}), ObjectOf)
    assert isinstance(compile_rule(["[p]", "b"]), ArrayOf)
    assert isinstance(compile_rule(["p", str.strip]), Piped)
    with pytest.raises(MalformedQueryError):
        compile_rule([])
    with pytest.raises(MalformedQueryError):
        compile_rule(3.5)


def test_force_all_turns_single_into_list(doc):
    rule = force_all(compile_rule("a@href"))
    assert evaluate(rule, doc) == ["/first", "/second"]


def test_unknown_filter_fails_lazily(doc):
    rule = compile_rule("p | nope")
    with pytest.raises(UnknownFilterError):
        evaluate(rule, doc)


def test_broken_filter_invocation_is_malformed(doc):
    with pytest.raises(MalformedQueryError):
        evaluate("p | replace", doc)


def test_custom_filters_override_builtins(doc):
    assert evaluate("[p] | count", doc, {"count": lambda v: "many"}) == "many"


def test_evaluation_is_repeatable(doc):
    rule = compile_rule({"quotes": ["[.quote]", ".text"], "n": "[p] | count"})
    assert evaluate(rule, doc) == evaluate(rule, doc)


def test_evaluate_accepts_raw_markup():
    assert evaluate("title", "<title>Hi</title>") == "Hi"
