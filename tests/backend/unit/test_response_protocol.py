"""
Unit tests for services.response_protocol module.
Tests JSON repair, decoding fallbacks, score normalization and transcription grounding.
"""
import json

import pytest

from app.schemas.ai import ChatMessage, ConversationContext
from app.services.ai_base import DecodeFailure
from app.services.response_protocol import (
    PARSE_FAILURE_FEEDBACK,
    build_audio_turn,
    coerce_score,
    decode_model_json,
    extract_json_object,
    format_conversation_context,
    parse_rich_translation,
    parse_suggestions,
    parse_unified_response,
    parse_usage,
    resolve_transcription,
    sanitize_model_json,
)


class TestSanitizer:
    """Repair pass for known model JSON defects."""

    def test_parenthetical_after_string_is_removed(self):
        raw = (
            '{"reply": "ok", "analysis": {"mispronunciations": '
            '[{"word": "word", "heardAs": "word" (with a slight mispronunciation), '
            '"correctPronunciation": "/wɜːd/"}]}}'
        )
        with pytest.raises(ValueError):
            json.loads(raw)

        parsed = json.loads(sanitize_model_json(raw))
        assert parsed["analysis"]["mispronunciations"][0]["heardAs"] == "word"

    def test_parenthetical_before_closing_brace(self):
        raw = '{"word": "pizza", "heardAs": "piza" (short vowel)}'
        assert json.loads(sanitize_model_json(raw)) == {"word": "pizza", "heardAs": "piza"}

    def test_dangling_connector_words_are_removed(self):
        raw = '{"heardAs": "word" with a slight error, "word": "word"}'
        assert json.loads(sanitize_model_json(raw)) == {"heardAs": "word", "word": "word"}

    def test_legitimate_parentheses_inside_strings_untouched(self):
        raw = '{"reply": "Try this (it helps) next time", "note": "(a)"}'
        assert sanitize_model_json(raw) == raw

    def test_escaped_quotes_inside_strings_untouched(self):
        raw = json.dumps({
            "reply": 'You said "pizza" and that is great, tell me more!',
            "note": 'Say "hello" (politely), then wave',
        })
        assert sanitize_model_json(raw) == raw

        result = parse_unified_response(raw, has_audio=False)
        assert result.reply == 'You said "pizza" and that is great, tell me more!'

    def test_decode_leaves_valid_json_unrepaired(self):
        raw = '{"reply": "Nice!", "note": "(a), b"}'
        assert decode_model_json(raw) == {"reply": "Nice!", "note": "(a), b"}

    def test_extract_strips_code_fence_and_prose(self):
        raw = 'Sure! Here you go:\n```json\n{"reply": "hi"}\n```'
        assert extract_json_object(raw) == '{"reply": "hi"}'

    def test_decode_rejects_truncated_output(self):
        with pytest.raises(DecodeFailure):
            decode_model_json('{"reply": "Great, what kind of pi')

    def test_decode_rejects_non_object(self):
        with pytest.raises(DecodeFailure):
            decode_model_json("[1, 2, 3]")


class TestUnifiedResponse:
    """parse_unified_response always returns a complete object."""

    def test_irrecoverable_output_returns_defaults(self):
        result = parse_unified_response('{"reply": "Great, what kind of pi', has_audio=False)

        assert result.reply == ""
        assert result.analysis.grammarScore == 70
        assert result.analysis.vocabularyScore == 70
        assert result.analysis.relevanceScore == 80
        assert result.analysis.grammarErrors == []
        assert result.analysis.vocabularySuggestions == []
        assert result.analysis.alternativePhrasings == []
        assert result.analysis.overallFeedback == PARSE_FAILURE_FEEDBACK
        assert result.analysis.pronunciation is None

    def test_irrecoverable_audio_output_keeps_draft(self):
        result = parse_unified_response("not json at all", has_audio=True, draft_transcription="I like pizza")

        assert result.reply == ""
        assert result.analysis.pronunciation.pronunciationScore == 70
        assert result.analysis.pronunciation.transcribedText == "I like pizza"
        assert result.analysis.pronunciation.mispronunciations == []

    def test_sanitized_mispronunciation_is_decoded(self):
        content = (
            '{"reply": "Nice!", "analysis": {"grammarScore": 80, "pronunciationScore": 60, '
            '"mispronunciations": [{"word": "word", "heardAs": "word" (with a slight mispronunciation), '
            '"correctPronunciation": "/wɜːd/"}]}}'
        )
        result = parse_unified_response(content, has_audio=True)

        assert result.reply == "Nice!"
        assert result.analysis.pronunciation.mispronunciations[0].heardAs == "word"
        assert result.analysis.pronunciation.pronunciationScore == 60

    def test_draft_fills_missing_transcription(self):
        content = json.dumps({"reply": "Me too!", "analysis": {"grammarScore": 95, "pronunciationScore": 85}})
        result = parse_unified_response(content, has_audio=True, draft_transcription="I like pizza")

        assert result.analysis.pronunciation.transcribedText == "I like pizza"

    def test_model_transcription_takes_precedence(self):
        content = json.dumps({"reply": "ok", "analysis": {"transcribedText": "I like pizzas"}})
        result = parse_unified_response(content, has_audio=True, draft_transcription="I like pizza")

        assert result.analysis.pronunciation.transcribedText == "I like pizzas"

    def test_blank_model_transcription_falls_back_to_draft(self):
        content = json.dumps({"reply": "ok", "analysis": {"transcribedText": "   "}})
        result = parse_unified_response(content, has_audio=True, draft_transcription="I like pizza")

        assert result.analysis.pronunciation.transcribedText == "I like pizza"

    def test_no_transcription_anywhere_is_empty_string(self):
        result = parse_unified_response(json.dumps({"reply": "ok"}), has_audio=True)
        assert result.analysis.pronunciation.transcribedText == ""

    def test_nested_pronunciation_block_is_accepted(self):
        content = json.dumps({
            "reply": "ok",
            "analysis": {
                "pronunciation": {
                    "pronunciationScore": 55,
                    "transcribedText": "hello",
                    "mispronunciations": [{"word": "hello", "heardAs": "yellow"}],
                    "pronunciationFeedback": "Watch the h",
                },
            },
        })
        pron = parse_unified_response(content, has_audio=True).analysis.pronunciation

        assert pron.pronunciationScore == 55
        assert pron.transcribedText == "hello"
        assert pron.mispronunciations[0].correctPronunciation == ""
        assert pron.pronunciationFeedback == "Watch the h"

    def test_text_mode_has_no_pronunciation(self):
        content = json.dumps({"reply": "ok", "analysis": {"pronunciationScore": 90, "transcribedText": "x"}})
        assert parse_unified_response(content, has_audio=False).analysis.pronunciation is None

    def test_flat_analysis_at_top_level(self):
        content = json.dumps({"reply": "ok", "grammarScore": 40, "overallFeedback": "Keep going"})
        analysis = parse_unified_response(content, has_audio=False).analysis

        assert analysis.grammarScore == 40
        assert analysis.overallFeedback == "Keep going"

    def test_missing_fields_take_defaults(self):
        analysis = parse_unified_response(json.dumps({"reply": "ok", "analysis": {}}), has_audio=False).analysis

        assert (analysis.grammarScore, analysis.vocabularyScore, analysis.relevanceScore) == (70, 70, 80)
        assert analysis.grammarErrors == []
        assert analysis.relevanceFeedback is None
        assert analysis.overallFeedback == "Good effort!"

    def test_malformed_array_items_are_dropped(self):
        content = json.dumps({
            "reply": "ok",
            "analysis": {
                "grammarErrors": [{"original": "I goed", "correction": "I went"}, "bad", None],
                "vocabularySuggestions": ["use 'fond of'", {"x": 1}, None, 3],
                "alternativePhrasings": "not a list",
            },
        })
        analysis = parse_unified_response(content, has_audio=False).analysis

        assert len(analysis.grammarErrors) == 1
        assert analysis.grammarErrors[0].explanation == ""
        assert analysis.vocabularySuggestions == ["use 'fond of'", "3"]
        assert analysis.alternativePhrasings == []


class TestScores:

    @pytest.mark.parametrize("value,expected", [
        (85, 85),
        ("85", 85),
        ("90%", 90),
        (72.6, 73),
        (150, 100),
        (-5, 0),
        ("abc", 70),
        (None, 70),
        (True, 70),
        (float("nan"), 70),
        ([80], 70),
    ])
    def test_coerce_score(self, value, expected):
        assert coerce_score(value, 70) == expected

    def test_resolve_transcription(self):
        assert resolve_transcription("model text", "draft") == "model text"
        assert resolve_transcription(None, "draft") == "draft"
        assert resolve_transcription(None, None) == ""
        assert resolve_transcription(42, "draft") == "draft"


class TestRichTranslation:

    def test_malformed_output_returns_safe_default(self):
        result = parse_rich_translation("Sorry, I can't do that", "break a leg")

        assert result.model_dump(exclude_none=True) == {
            "translation": "break a leg",
            "type": "word",
            "definition": "",
            "usageExamples": [],
            "formality": "neutral",
        }

    def test_out_of_enum_values_are_normalized(self):
        content = json.dumps({"translation": "ni pukha", "type": "proverb", "formality": "casual"})
        result = parse_rich_translation(content, "break a leg")

        assert result.type == "word"
        assert result.formality == "neutral"
        assert result.definition == "ni pukha"
        assert result.notes is None

    def test_examples_key_aliases(self):
        content = json.dumps({"translation": "t", "type": "idiom", "usage_examples": ["Break a leg tonight!"]})
        result = parse_rich_translation(content, "break a leg")

        assert result.type == "idiom"
        assert result.usageExamples == ["Break a leg tonight!"]

    def test_missing_translation_uses_original_text(self):
        result = parse_rich_translation(json.dumps({"definition": "good luck"}), "break a leg")
        assert result.translation == "break a leg"
        assert result.definition == "good luck"


class TestHelpers:

    def test_parse_suggestions(self):
        assert parse_suggestions('{"suggestions": ["Yes!", " ", "No, thanks"]}') == ["Yes!", "No, thanks"]
        assert parse_suggestions("garbage") == []

    def test_format_conversation_context_limits_turns(self):
        ctx = ConversationContext(
            chatId="c",
            summary="They met at a cafe.",
            messages=[ChatMessage(role="user", content=f"m{i}") for i in range(15)],
        )
        text = format_conversation_context(ctx)

        assert text.startswith("EARLIER CONVERSATION SUMMARY:\nThey met at a cafe.")
        assert "user: m5" in text and "user: m14" in text
        assert "user: m4\n" not in text

    def test_audio_turn_embeds_draft(self):
        turn = build_audio_turn("RECENT CONVERSATION:\n", "I like pizza")
        assert 'VERIFIED TRANSCRIPTION (use this EXACTLY as transcribedText): "I like pizza"' in turn

    def test_parse_usage(self):
        usage = parse_usage({"prompt_tokens": 10, "completion_tokens": 5})
        assert (usage.promptTokens, usage.completionTokens, usage.totalTokens) == (10, 5, 15)
        assert parse_usage(None) is None
