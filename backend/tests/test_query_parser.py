from __future__ import annotations

from ai.query_parser import ParsedList, ParseFailure, parse_query_list


def test_parse_query_list_reads_plain_array():
    result = parse_query_list('["a", "b", "c", "d"]')
    assert result == ParsedList(("a", "b", "c", "d"))


def test_parse_query_list_accepts_fenced_json_with_prose():
    raw = 'Here you go:\n```json\n["genre:\\"OPM\\" mellow", "artist:Urbandub OR artist:Eraserheads", "Pinoy rock driving guitars"]\n```'
    result = parse_query_list(raw)
    assert isinstance(result, ParsedList)
    assert result.items[1] == "artist:Urbandub OR artist:Eraserheads"


def test_parse_query_list_truncates_to_six_and_drops_duplicates():
    raw = '["q1", "q2", "Q1", "q3", "q4", "q5", "q6", "q7", "  "]'
    result = parse_query_list(raw)
    assert result == ParsedList(("q1", "q2", "q3", "q4", "q5", "q6"))


def test_parse_query_list_rejects_non_arrays_and_short_lists():
    assert isinstance(parse_query_list('{"queries": ["a", "b", "c"]}'), ParseFailure)
    assert isinstance(parse_query_list("not json at all"), ParseFailure)
    assert isinstance(parse_query_list(""), ParseFailure)
    assert isinstance(parse_query_list("[]"), ParseFailure)
    short = parse_query_list('["only one", 4, null]')
    assert isinstance(short, ParseFailure)
    assert "1 usable" in short.reason
