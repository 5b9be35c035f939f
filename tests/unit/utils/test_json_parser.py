from financials.utils.json_parser import parse_json_object


def test_parses_plain_object():
    assert parse_json_object('{"a": 1}') == {"a": 1}


def test_strips_markdown_fence():
    assert parse_json_object('```json\n{"a": 1}\n```') == {"a": 1}


def test_recovers_object_after_prose():
    text = 'Here is the data: {"line_items": []} hope that helps'
    assert parse_json_object(text) == {"line_items": []}


def test_rejects_non_objects():
    assert parse_json_object("[1, 2]") is None
    assert parse_json_object("no json here") is None
    assert parse_json_object("") is None
