"""LLM JSON — verifies tolerant JSON extraction from model output."""

from tutorassist.core.llm_json import extract_json


def test_plain_json_parses_directly():
    assert extract_json('{"questions": []}') == {"questions": []}


def test_fenced_json_is_extracted():
    text = 'Here you go:\n```json\n{"a": 1, "b": [2, 3]}\n```\nEnjoy!'
    assert extract_json(text) == {"a": 1, "b": [2, 3]}


def test_array_inside_prose_is_extracted():
    assert extract_json("The answers are [1, 2] as requested") == [1, 2]


def test_unparseable_text_returns_none():
    assert extract_json("no json in here") is None
    assert extract_json("{broken: json") is None


def test_empty_input_returns_none():
    assert extract_json("") is None
    assert extract_json(None) is None
