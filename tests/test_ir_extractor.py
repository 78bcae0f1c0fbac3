"""
Tests for the IR schema and the semantic extractor.
"""

import json
import unittest
from unittest.mock import patch

from src.ir.extractor import (
    ExtractionError,
    build_extraction_prompt,
    extract_ir,
    parse_extraction_response,
)
from src.ir.schema import Concept, IntermediateRepresentation, parse_json_field
from src.llm import LLMProvider, LLMResponse

SAMPLE_RESPONSE = {
    "summary": "React's official quick start guide.",
    "keyTopics": ["react", "components"],
    "concepts": [
        {"name": "JSX", "description": "Markup in JS", "importance": "high", "relatedConcepts": ["React"]},
        {"name": "State"},
    ],
    "difficulty": "beginner",
    "contentType": "tutorial",
    "estimatedReadTime": 12,
}


class TestParseJsonField(unittest.TestCase):

    def test_list_passthrough(self):
        self.assertEqual(parse_json_field(["a"]), ["a"])

    def test_json_string(self):
        self.assertEqual(parse_json_field('["a", "b"]'), ["a", "b"])

    def test_invalid_values_become_empty(self):
        self.assertEqual(parse_json_field("not json"), [])
        self.assertEqual(parse_json_field('{"a": 1}'), [])
        self.assertEqual(parse_json_field(None), [])
        self.assertEqual(parse_json_field(42), [])


class TestIntermediateRepresentation(unittest.TestCase):

    def test_from_dict_decodes_json_strings(self):
        data = {
            "source_url": "https://react.dev/learn",
            "summary": "s",
            "key_topics": '["react"]',
            "concepts": json.dumps([{"name": "JSX", "related_concepts": ["React"]}]),
            "difficulty": "expert",
            "content_type": "podcast",
        }

        ir = IntermediateRepresentation.from_dict(data, "ir-1")

        self.assertEqual(ir.id, "ir-1")
        self.assertEqual(ir.key_topics, ["react"])
        self.assertEqual(ir.concept_names, ["JSX"])
        self.assertEqual(ir.concepts[0].related_concepts, ["React"])
        self.assertEqual(ir.difficulty, "intermediate")
        self.assertEqual(ir.content_type, "other")

    def test_to_dict_round_trip(self):
        ir = IntermediateRepresentation.new(
            "https://react.dev/learn",
            "Quick Start",
            summary="s",
            key_topics=["react"],
            concepts=[Concept(name="JSX")],
            bookmark_id=3,
        )

        restored = IntermediateRepresentation.from_dict(ir.to_dict(), ir.id)

        self.assertEqual(restored, ir)

    def test_new_generates_unique_ids(self):
        a = IntermediateRepresentation.new("https://a", summary="s")
        b = IntermediateRepresentation.new("https://a", summary="s")
        self.assertNotEqual(a.id, b.id)
        self.assertEqual(a.version, 1)

    def test_concept_from_non_dict(self):
        self.assertEqual(Concept.from_dict("Hooks").name, "Hooks")
        self.assertEqual(Concept.from_dict(None).name, "Unknown")

    def test_api_dict_is_camel_case(self):
        ir = IntermediateRepresentation(id="ir-1", source_url="u", summary="s", key_topics=["x"], bookmark_id=7)
        data = ir.to_api_dict()
        self.assertEqual(data["bookmarkId"], 7)
        self.assertEqual(data["keyTopics"], ["x"])
        self.assertEqual(data["sourceUrl"], "u")


class TestParseExtractionResponse(unittest.TestCase):

    def test_full_response(self):
        fields = parse_extraction_response(json.dumps(SAMPLE_RESPONSE))

        self.assertEqual(fields["key_topics"], ["react", "components"])
        self.assertEqual(fields["difficulty"], "beginner")
        self.assertEqual(fields["content_type"], "tutorial")
        self.assertEqual(fields["estimated_read_time"], 12)
        self.assertEqual(fields["concepts"][0].importance, "high")
        self.assertEqual(fields["concepts"][1].importance, "medium")

    def test_fenced_response_with_prose(self):
        text = "Here is the IR:\n```json\n" + json.dumps(SAMPLE_RESPONSE) + "\n```"
        self.assertEqual(parse_extraction_response(text)["summary"], SAMPLE_RESPONSE["summary"])

    def test_defaults(self):
        fields = parse_extraction_response('{"difficulty": "guru", "contentType": "meme"}')

        self.assertEqual(fields["summary"], "No summary available")
        self.assertEqual(fields["key_topics"], [])
        self.assertEqual(fields["concepts"], [])
        self.assertEqual(fields["difficulty"], "intermediate")
        self.assertEqual(fields["content_type"], "other")
        self.assertIsNone(fields["estimated_read_time"])

    def test_no_object_raises(self):
        with self.assertRaises(ExtractionError):
            parse_extraction_response("I can't access that URL.")

    def test_invalid_json_raises(self):
        with self.assertRaises(ExtractionError):
            parse_extraction_response('{"summary": "unterminated}')


class TestExtractIR(unittest.TestCase):

    def test_prompt_mentions_url_and_title(self):
        prompt = build_extraction_prompt("https://react.dev/learn", None)
        self.assertIn("URL: https://react.dev/learn", prompt)
        self.assertIn("Title: Unknown", prompt)

    @patch("src.ir.extractor.generate_with_fallback")
    def test_extract_ir(self, mock_llm):
        mock_llm.return_value = LLMResponse(
            text=json.dumps(SAMPLE_RESPONSE), model="gemini-2.0-flash", provider=LLMProvider.GEMINI
        )

        ir = extract_ir("https://react.dev/learn", "Quick Start", bookmark_id=42)

        self.assertEqual(ir.bookmark_id, 42)
        self.assertEqual(ir.source_title, "Quick Start")
        self.assertEqual(ir.concept_names, ["JSX", "State"])
        self.assertEqual(ir.version, 1)
        self.assertTrue(ir.id)

        _, config, models = mock_llm.call_args.args
        self.assertEqual(config.temperature, 0.3)
        self.assertEqual(config.max_output_tokens, 4096)
        self.assertEqual(models[0], "gemini-2.0-flash")
        self.assertEqual(mock_llm.call_args.kwargs["label"], "ir-extract")
