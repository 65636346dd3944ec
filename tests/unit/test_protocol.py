"""
Unit tests for the request and response codecs.
"""

import json

import pytest

from covidquery.data import Record
from covidquery.errors import ResponseEncodingError
from covidquery.protocol import (
    QueryCriteria,
    decode_request,
    encode_request,
    encode_response,
    decode_response,
    record_to_dict,
    FIELD_NAMES,
    MESSAGE_TERMINATOR,
)


class TestDecodeRequest:
    """Tests for decode_request()."""

    def test_region_and_date(self):
        criteria = decode_request(b'{"Query": {"Region": "X", "Date": "01-05-2020"}}')

        assert criteria == QueryCriteria(region="X", date="01-05-2020")

    def test_either_field_may_be_omitted(self):
        assert decode_request(b'{"Query": {"Region": "X"}}') == QueryCriteria(region="X")
        assert decode_request(b'{"Query": {"Date": "01-05-2020"}}') == QueryCriteria(date="01-05-2020")

    def test_empty_object(self):
        criteria = decode_request(b"{}")

        assert criteria == QueryCriteria()

    @pytest.mark.parametrize("payload", [
        b"garbage",
        b"",
        b"\xff\xfe\x00",
        b'{"Query": {"Region": "X"',        # cut short
        b'{"Query": {"Region": "X"}}{}',    # two documents
        b"[1, 2, 3]",
        b"null",
        b'"Query"',
        b'{"Query": {"Region": "Punjab", "Date": NaN}}',
        b'{"Query": {"Region": "Punjab", "Date": Infinity}}',
        b'{"Query": {"Region": "Punjab"}, "Limit": -Infinity}',
    ])
    def test_garbage_degrades_to_empty_criteria(self, payload: bytes):
        """Nothing is raised for malformed input."""
        assert decode_request(payload) == QueryCriteria()

    def test_wrong_types_are_ignored(self):
        assert decode_request(b'{"Query": 5}') == QueryCriteria()
        assert decode_request(b'{"Query": {"Region": 7, "Date": "01-05-2020"}}') == QueryCriteria(
            date="01-05-2020"
        )
        assert decode_request(b'{"Query": {"Region": null}}') == QueryCriteria()

    def test_keys_match_case_insensitively(self):
        criteria = decode_request(b'{"query": {"REGION": "X", "date": "01-05-2020"}}')

        assert criteria == QueryCriteria(region="X", date="01-05-2020")

    def test_exact_key_after_folded_key_wins(self):
        criteria = decode_request(b'{"Query": {"region": "folded", "Region": "exact"}}')

        assert criteria.region == "exact"

    def test_last_folded_key_wins(self):
        criteria = decode_request(b'{"Query": {"region": "first", "REGION": "last"}}')

        assert criteria.region == "last"

    def test_later_folded_key_overrides_exact_key(self):
        """Keys apply in document order; exact spelling gets no priority."""
        criteria = decode_request(b'{"Query": {"Region": "exact", "region": "folded"}}')

        assert criteria.region == "folded"

    def test_repeated_query_objects_merge(self):
        criteria = decode_request(b'{"Query": {"Region": "X"}, "Query": {"Date": "01-05-2020"}}')

        assert criteria == QueryCriteria(region="X", date="01-05-2020")

    def test_repeated_query_field_takes_last_value(self):
        criteria = decode_request(b'{"Query": {"Region": "X"}, "query": {"Region": "Y"}}')

        assert criteria.region == "Y"

    def test_null_or_wrong_type_keeps_earlier_value(self):
        criteria = decode_request(
            b'{"Query": {"Region": "X", "region": null, "REGION": 7}, "Query": null}'
        )

        assert criteria.region == "X"

    def test_unknown_keys_are_ignored(self):
        criteria = decode_request(b'{"Query": {"Region": "X", "Limit": 5}, "Extra": true}')

        assert criteria == QueryCriteria(region="X")

    def test_trailing_newline_is_accepted(self):
        assert decode_request(b'{"Query": {"Region": "X"}}\n').region == "X"

    def test_non_ascii_region(self):
        payload = '{"Query": {"Region": "Azad Kashmir – AJK"}}'.encode("utf-8")

        assert decode_request(payload).region == "Azad Kashmir – AJK"


class TestEncodeRequest:
    """Tests for encode_request()."""

    def test_wire_form(self):
        payload = encode_request(QueryCriteria(region="X", date="01-05-2020"))

        assert payload == b'{"Query":{"Region":"X","Date":"01-05-2020"}}'

    def test_empty_fields_are_omitted(self):
        assert encode_request(QueryCriteria(region="X")) == b'{"Query":{"Region":"X"}}'
        assert encode_request(QueryCriteria()) == b'{"Query":{}}'

    @pytest.mark.parametrize("criteria", [
        QueryCriteria(region="X", date="01-05-2020"),
        QueryCriteria(region="Punjab"),
        QueryCriteria(date="20-05-2020"),
        QueryCriteria(),
    ])
    def test_decode_reverses_encode(self, criteria: QueryCriteria):
        assert decode_request(encode_request(criteria)) == criteria


class TestEncodeResponse:
    """Tests for encode_response()."""

    def test_empty_result(self):
        assert encode_response([]) == b'{"response":[]}\n\n'

    def test_ends_with_two_newlines(self, records: list[Record]):
        payload = encode_response(records)

        assert payload.endswith(MESSAGE_TERMINATOR)
        assert MESSAGE_TERMINATOR == b"\n\n"
        assert payload.count(b"\n") == 2

    def test_field_names_and_order(self, records: list[Record]):
        payload = encode_response(records[:1])

        assert payload == (
            b'{"response":[{"date":"2020-05-20","positive":"100","tests":"1000",'
            b'"expired":"2","admitted":"30","discharged":"50","region":"Punjab"}]}\n\n'
        )

    def test_preserves_record_order(self, records: list[Record]):
        rows = json.loads(encode_response(records))["response"]

        assert [row["positive"] for row in rows] == ["100", "200", "150", "80"]
        assert all(tuple(row) == FIELD_NAMES for row in rows)

    def test_html_characters_are_escaped(self):
        record = Record("d", "<1>", "&", "", "", "", "A & B")

        payload = encode_response([record])

        assert b"<" not in payload
        assert b">" not in payload
        assert b"&" not in payload
        assert json.loads(payload)["response"][0]["region"] == "A & B"
        assert json.loads(payload)["response"][0]["positive"] == "<1>"

    def test_non_ascii_is_utf8(self):
        record = Record("d", "", "", "", "", "", "Khyber Pakhtunkhwa – KPK")

        payload = encode_response([record])

        assert "–".encode("utf-8") in payload

    def test_unencodable_record_raises(self):
        with pytest.raises(ResponseEncodingError):
            encode_response([object()])

    def test_record_to_dict(self, records: list[Record]):
        assert record_to_dict(records[3]) == {
            "date": "2020-06-20",
            "positive": "80",
            "tests": "900",
            "expired": "1",
            "admitted": "10",
            "discharged": "20",
            "region": "KP",
        }


class TestDecodeResponse:
    """Tests for decode_response()."""

    def test_reads_rows(self, records: list[Record]):
        payload = encode_response(records).rstrip(b"\n")

        rows = decode_response(payload)

        assert rows == [record_to_dict(r) for r in records]

    def test_rejects_non_envelope(self):
        with pytest.raises(ValueError):
            decode_response(b'{"rows": []}')

        with pytest.raises(ValueError):
            decode_response(b"not json")
