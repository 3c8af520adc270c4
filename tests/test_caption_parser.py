"""
Unit tests for caption_parser.py.

Covers timed-text XML parsing, json3 event parsing, numeric coercion of
malformed fields and declared-format dispatch.
"""

import json
import unittest

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from caption_parser import (
    parse_xml_payload, parse_json_events_payload, parse_payload, is_json_payload
)
from models import CaptionEntry


SAMPLE_XML = """<?xml version="1.0" encoding="utf-8" ?>
<transcript>
  <text start="0.5" dur="2.1">Hello there</text>
  <text start="2.6" dur="1.9">  it&amp;#39;s a &amp;quot;test&amp;quot;  </text>
  <text start="4.5" dur="3">Tom &amp;amp; Jerry</text>
</transcript>"""


class TestParseXmlPayload(unittest.TestCase):
    """Timed-text XML documents."""

    def test_entries_in_source_order(self):
        entries = parse_xml_payload(SAMPLE_XML)

        self.assertEqual(len(entries), 3)
        self.assertEqual([e.start for e in entries], [0.5, 2.6, 4.5])
        self.assertEqual(entries[0], CaptionEntry(start=0.5, dur=2.1, text="Hello there"))

    def test_double_encoded_entities_are_decoded_and_trimmed(self):
        entries = parse_xml_payload(SAMPLE_XML)

        self.assertEqual(entries[1].text, 'it\'s a "test"')
        self.assertEqual(entries[2].text, "Tom & Jerry")

    def test_non_numeric_start_defaults_to_zero(self):
        raw = '<transcript><text start="abc" dur="1.5">one</text><text start="2" dur="">two</text></transcript>'
        entries = parse_xml_payload(raw)

        self.assertEqual(entries[0].start, 0)
        self.assertEqual(entries[0].dur, 1.5)
        self.assertEqual(entries[1].start, 2.0)
        self.assertEqual(entries[1].dur, 0)

    def test_missing_attributes_and_text(self):
        entries = parse_xml_payload('<transcript><text/><text start="1"></text></transcript>')

        self.assertEqual(entries, [
            CaptionEntry(start=0.0, dur=0.0, text=""),
            CaptionEntry(start=1.0, dur=0.0, text=""),
        ])

    def test_non_finite_and_negative_numbers_coerce_to_zero(self):
        entries = parse_xml_payload('<transcript><text start="nan" dur="-3">x</text><text start="inf">y</text></transcript>')

        self.assertEqual(entries[0].start, 0)
        self.assertEqual(entries[0].dur, 0)
        self.assertEqual(entries[1].start, 0)

    def test_empty_transcript_is_empty_list(self):
        self.assertEqual(parse_xml_payload("<transcript></transcript>"), [])

    def test_malformed_payloads_never_raise(self):
        for raw in ["", "   ", "not xml at all", "<transcript><text start='1'>", None,
                    "<!DOCTYPE html><html><body>Before you continue to YouTube</body></html>"]:
            with self.subTest(raw=raw):
                self.assertEqual(parse_xml_payload(raw), [])

    def test_parsing_is_idempotent(self):
        self.assertEqual(parse_xml_payload(SAMPLE_XML), parse_xml_payload(SAMPLE_XML))


class TestParseJsonEventsPayload(unittest.TestCase):
    """json3 event lists."""

    def test_events_without_segs_are_dropped(self):
        events = [
            {"tStartMs": 0, "dDurationMs": 5000, "id": 1, "wpWinPosId": 1},
            {"tStartMs": 1000, "dDurationMs": 2500, "segs": [{"utf8": "Hello "}, {"utf8": "world"}]},
            {"tStartMs": 3500, "dDurationMs": 1000, "aAppend": 1},
        ]
        entries = parse_json_events_payload(events)

        self.assertEqual(entries, [CaptionEntry(start=1.0, dur=2.5, text="Hello world")])

    def test_missing_duration_defaults_to_zero(self):
        entries = parse_json_events_payload([{"tStartMs": 4200, "segs": [{"utf8": "hi"}]}])

        self.assertEqual(entries[0].start, 4.2)
        self.assertEqual(entries[0].dur, 0)

    def test_segment_text_fallbacks(self):
        events = [{"tStartMs": 0, "segs": [{"utf8": "a"}, {"text": "b"}, {}, {"utf8": None}, "junk"]}]
        entries = parse_json_events_payload(events)

        self.assertEqual(entries[0].text, "ab")

    def test_segs_without_text_yield_empty_trimmed_entry(self):
        entries = parse_json_events_payload([{"tStartMs": 10, "segs": [{"utf8": "\n"}]}])

        self.assertEqual(entries, [CaptionEntry(start=0.01, dur=0.0, text="")])

    def test_malformed_numbers_do_not_abort_parsing(self):
        events = [
            {"tStartMs": "oops", "dDurationMs": {}, "segs": [{"utf8": "first"}]},
            {"tStartMs": 2000, "dDurationMs": 500, "segs": [{"utf8": "second"}]},
        ]
        entries = parse_json_events_payload(events)

        self.assertEqual(len(entries), 2)
        self.assertEqual(entries[0].start, 0)
        self.assertEqual(entries[0].dur, 0)
        self.assertEqual(entries[1].start, 2.0)

    def test_non_list_input_is_empty(self):
        self.assertEqual(parse_json_events_payload(None), [])
        self.assertEqual(parse_json_events_payload({"events": []}), [])

    def test_non_dict_events_are_skipped(self):
        entries = parse_json_events_payload(["x", 3, None, {"segs": [{"utf8": "ok"}]}])

        self.assertEqual([e.text for e in entries], ["ok"])


class TestParsePayloadDispatch(unittest.TestCase):
    """Format detection from content type, locator and body."""

    JSON_BODY = json.dumps({"events": [{"tStartMs": 500, "dDurationMs": 1000, "segs": [{"utf8": "json line"}]}]})

    def test_json_content_type(self):
        entries = parse_payload(self.JSON_BODY, "application/json; charset=UTF-8")

        self.assertEqual(entries, [CaptionEntry(start=0.5, dur=1.0, text="json line")])

    def test_json3_locator(self):
        self.assertTrue(is_json_payload("", "text/plain", "https://www.youtube.com/api/timedtext?v=x&fmt=json3"))

    def test_json_body_sniffing(self):
        self.assertTrue(is_json_payload('  {"events": []}', "", ""))

    def test_xml_by_default(self):
        entries = parse_payload(SAMPLE_XML, "text/xml; charset=UTF-8",
                                "https://www.youtube.com/api/timedtext?v=abc&lang=en")

        self.assertEqual(len(entries), 3)

    def test_invalid_json_is_empty(self):
        self.assertEqual(parse_payload("{not json", "application/json"), [])
        self.assertEqual(parse_payload("[1, 2]", "application/json"), [])

    def test_deeply_nested_json_is_empty(self):
        deep = '{"events": ' + '[' * 100000 + ']' * 100000 + '}'

        self.assertEqual(parse_payload(deep, "application/json"), [])


if __name__ == "__main__":
    unittest.main()
