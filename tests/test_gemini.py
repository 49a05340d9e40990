import pytest

import gemini
from gemini import extract_json, calculate_cost, empty_usage


def test_extract_json_from_fenced_reply():
    text = 'Here you go:\n```json\n{"overall_score": 82, "bugs": []}\n```\nThanks!'
    assert extract_json(text) == {"overall_score": 82, "bugs": []}


def test_extract_json_spans_outermost_braces():
    text = 'prefix {"a": {"b": 1}} suffix'
    assert extract_json(text) == {"a": {"b": 1}}


@pytest.mark.parametrize("text", ["", None, "no json at all", "{not: valid}", "} backwards {"])
def test_extract_json_returns_none_on_bad_input(text):
    assert extract_json(text) is None


def test_calculate_cost_uses_model_pricing():
    flash = calculate_cost("gemini-2.5-flash", 1_000_000, 1_000_000)
    pro = calculate_cost("gemini-2.5-pro", 1_000_000, 1_000_000)
    assert flash == pytest.approx(0.375)
    assert pro == pytest.approx(11.25)


def test_calculate_cost_unknown_model_falls_back_to_flash():
    assert calculate_cost("mystery", 2_000_000, 0) == pytest.approx(0.15)


def test_generate_content_without_key_returns_placeholder(monkeypatch):
    monkeypatch.setattr(gemini, "GEMINI_API_KEY", None)
    text, usage = gemini.generate_content("gemini-2.5-flash", "hello")
    assert text == gemini.PLACEHOLDER_TEXT
    assert usage == empty_usage()


def test_generate_content_raises_with_status(monkeypatch):
    class Resp:
        status_code = 429
        text = "slow down"

        def json(self):
            return {"error": {"message": "Resource exhausted"}}

    monkeypatch.setattr(gemini, "GEMINI_API_KEY", "key")
    monkeypatch.setattr(gemini.requests, "post", lambda *a, **k: Resp())
    with pytest.raises(gemini.GeminiError) as exc:
        gemini.generate_content("gemini-2.5-flash", "hello")
    assert exc.value.status == 429
    assert "Resource exhausted" in str(exc.value)


def test_generate_content_parses_text_and_usage(monkeypatch):
    class Resp:
        status_code = 200

        def json(self):
            return {
                "candidates": [{"content": {"parts": [{"text": "Hello "}, {"text": "founder"}]}}],
                "usageMetadata": {"promptTokenCount": 100, "candidatesTokenCount": 20, "totalTokenCount": 120},
            }

    monkeypatch.setattr(gemini, "GEMINI_API_KEY", "key")
    monkeypatch.setattr(gemini.requests, "post", lambda *a, **k: Resp())
    text, usage = gemini.generate_content("gemini-2.5-flash", "hello")
    assert text == "Hello founder"
    assert usage["total_tokens"] == 120
    assert usage["cost"] == pytest.approx(calculate_cost("gemini-2.5-flash", 100, 20))
