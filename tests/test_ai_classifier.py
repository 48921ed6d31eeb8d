"""
Tests for the LLM fallback classifier, its limiter and retry policy.
"""
import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import ollama
import pytest

from factories import make_normalized, make_video
from slop_detector.discovery.ai_classifier import (
    AIClassifier,
    MalformedAIResponse,
    RateLimiter,
    build_prompt,
    call_with_retry,
    is_rate_limit_error,
    parse_ai_response,
)
from slop_detector.discovery.models import Classification, Method, SlopType


def _verdict_json(**overrides):
    data = {
        "classification": "SLOP",
        "confidence": 88,
        "slop_score": 91,
        "slop_type": "ai_voice",
        "reasoning": "Reddit stories read by a synthetic voice.",
        "nlp_signals": {
            "has_spam_keywords": False,
            "templated_titles": True,
            "generic_description": True,
            "content_type": "reddit reading",
        },
        "behavior_signals": {
            "high_velocity": True,
            "dead_engagement": False,
            "new_operation": False,
        },
    }
    data.update(overrides)
    return json.dumps(data)


def _chat_response(content):
    return MagicMock(message=MagicMock(content=content))


def _classifier(client, **kwargs):
    return AIClassifier(RateLimiter(min_interval=0), client=client, **kwargs)


class TestParseAIResponse:
    def test_plain_json(self):
        verdict = parse_ai_response(_verdict_json())
        assert verdict.classification == Classification.SLOP
        assert verdict.confidence == 88
        assert verdict.slop_score == 91
        assert verdict.slop_type == SlopType.AI_VOICE
        assert verdict.nlp_signals.templated_titles is True

    def test_code_fences_stripped(self):
        text = "```json\n" + _verdict_json() + "\n```"
        assert parse_ai_response(text).classification == Classification.SLOP

    def test_fractions_rescaled(self):
        verdict = parse_ai_response(_verdict_json(confidence=0.85, slop_score=0.7))
        assert verdict.confidence == 85
        assert verdict.slop_score == 70

    def test_missing_slop_score_derived(self):
        text = json.dumps({
            "classification": "OKAY",
            "confidence": 70,
            "reasoning": "Normal vlog channel.",
        })
        verdict = parse_ai_response(text)
        assert verdict.slop_score == 20
        assert verdict.slop_type is None
        assert verdict.behavior_signals.high_velocity is False

    def test_out_of_range_clamped(self):
        assert parse_ai_response(_verdict_json(confidence=250)).confidence == 100

    @pytest.mark.parametrize("text", [
        "",
        None,
        "I think this is slop.",
        '{"classification": "MAYBE", "confidence": 50, "reasoning": "x"}',
        '{"confidence": 50}',
    ])
    def test_malformed(self, text):
        with pytest.raises(MalformedAIResponse):
            parse_ai_response(text)


class TestIsRateLimitError:
    def test_http_status(self):
        request = httpx.Request("POST", "http://localhost")
        response = httpx.Response(429, request=request)
        error = httpx.HTTPStatusError("too many", request=request, response=response)
        assert is_rate_limit_error(error)

    def test_ollama_status(self):
        assert is_rate_limit_error(ollama.ResponseError("busy", 503))
        assert not is_rate_limit_error(ollama.ResponseError("model not found", 404))

    def test_message_markers(self):
        assert is_rate_limit_error(RuntimeError("Quota exceeded for project"))
        assert is_rate_limit_error(RuntimeError("model is overloaded"))
        assert not is_rate_limit_error(ValueError("bad input"))


class TestCallWithRetry:
    @pytest.mark.asyncio
    async def test_success_after_rate_limit(self):
        fn = AsyncMock(side_effect=[ollama.ResponseError("slow down", 429), "ok"])
        with patch("slop_detector.discovery.ai_classifier.asyncio.sleep", new_callable=AsyncMock) as sleep:
            result = await call_with_retry(fn, RateLimiter(min_interval=0))
        assert result == "ok"
        assert fn.await_count == 2
        sleep.assert_awaited_once_with(2.0)

    @pytest.mark.asyncio
    async def test_non_rate_limit_not_retried(self):
        fn = AsyncMock(side_effect=ValueError("bad request"))
        with patch("slop_detector.discovery.ai_classifier.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(ValueError):
                await call_with_retry(fn, RateLimiter(min_interval=0))
        assert fn.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        fn = AsyncMock(side_effect=ollama.ResponseError("rate limited", 429))
        with patch("slop_detector.discovery.ai_classifier.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(ollama.ResponseError):
                await call_with_retry(fn, RateLimiter(min_interval=0))
        assert fn.await_count == 4
        assert [c.args[0] for c in sleep.await_args_list] == [2.0, 4.0, 8.0]


class TestRateLimiter:
    @pytest.mark.asyncio
    async def test_first_call_does_not_wait(self):
        limiter = RateLimiter(min_interval=1.5)
        with patch("slop_detector.discovery.ai_classifier.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await limiter.wait()
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_enforces_min_interval(self):
        clock = MagicMock(side_effect=[100.0, 100.5, 101.5])
        limiter = RateLimiter(min_interval=1.5, clock=clock)
        with patch("slop_detector.discovery.ai_classifier.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await limiter.wait()
            await limiter.wait()
        sleep.assert_awaited_once()
        assert sleep.await_args.args[0] == pytest.approx(1.0)


class TestBuildPrompt:
    def test_includes_channel_and_videos(self):
        videos = [
            make_video("v1", title="Top 10 Reddit Stories", tags=["reddit", "stories"],
                       duration="PT12M5S", view_count=1200),
        ]
        prompt = build_prompt(make_normalized(title="Story Time", recent_videos=videos))
        assert '"Story Time"' in prompt
        assert "Top 10 Reddit Stories" in prompt
        assert "12m5s" in prompt
        assert "reddit, stories" in prompt

    def test_caps_videos(self):
        videos = [make_video(f"v{i}", title=f"Video number {i}") for i in range(20)]
        prompt = build_prompt(make_normalized(recent_videos=videos))
        assert "Video number 9" in prompt
        assert "Video number 10" not in prompt


class TestAIClassifier:
    @pytest.mark.asyncio
    async def test_classify_success(self):
        client = MagicMock()
        client.chat = AsyncMock(return_value=_chat_response(_verdict_json()))

        result = await _classifier(client).classify(make_normalized(channel_id="UCai"))

        assert result.channel_id == "UCai"
        assert result.classification == Classification.SLOP
        assert result.method == Method.AI
        assert result.confidence == 88
        assert result.slop_score == 91
        assert result.ai_analysis.nlp_signals.content_type == "reddit reading"
        assert result.reasons == ("Reddit stories read by a synthetic voice.",)
        client.chat.assert_awaited_once()
        assert "format" in client.chat.await_args.kwargs

    @pytest.mark.asyncio
    async def test_malformed_reply_falls_back(self):
        client = MagicMock()
        client.chat = AsyncMock(return_value=_chat_response("not json at all"))

        result = await _classifier(client).classify(make_normalized())

        assert result.classification == Classification.SUSPICIOUS
        assert result.confidence == 50
        assert result.slop_score == 50
        assert result.method == Method.AI
        assert result.ai_analysis is None
        assert result.reasons[0].startswith("AI classification failed")
        client.chat.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_timeout_reason_names_error_type(self):
        client = MagicMock()
        client.chat = AsyncMock(side_effect=asyncio.TimeoutError())

        result = await _classifier(client).classify(make_normalized())

        assert result.classification == Classification.SUSPICIOUS
        assert result.reasons == ("AI classification failed: TimeoutError: ",)

    @pytest.mark.asyncio
    async def test_result_sequences_are_immutable(self):
        client = MagicMock()
        client.chat = AsyncMock(return_value=_chat_response(_verdict_json()))
        channel = make_normalized(recent_videos=[make_video("v1", title="first")])

        result = await _classifier(client).classify(channel)

        assert isinstance(result.reasons, tuple)
        assert result.recent_video_titles == ("first",)
        with pytest.raises(AttributeError):
            result.reasons.append("extra")

    @pytest.mark.asyncio
    async def test_persistent_rate_limit_retries_then_falls_back(self):
        client = MagicMock()
        client.chat = AsyncMock(side_effect=ollama.ResponseError("rate limited", 429))

        with patch("slop_detector.discovery.ai_classifier.asyncio.sleep", new_callable=AsyncMock) as sleep:
            result = await _classifier(client).classify(make_normalized())

        assert client.chat.await_count == 4
        assert [c.args[0] for c in sleep.await_args_list] == [2.0, 4.0, 8.0]
        assert result.classification == Classification.SUSPICIOUS
        assert result.confidence == 50

    @pytest.mark.asyncio
    async def test_permanent_error_not_retried(self):
        client = MagicMock()
        client.chat = AsyncMock(side_effect=ollama.ResponseError("model not found", 404))

        result = await _classifier(client).classify(make_normalized())

        assert client.chat.await_count == 1
        assert result.classification == Classification.SUSPICIOUS
