"""Tests for Gemini response handling (SDK mocked)."""
import io
import json
from unittest.mock import MagicMock, patch

import pytest
from google.api_core import exceptions as google_exceptions
from PIL import Image as PILImage

from fakes import make_analysis
from listing_optimizer.errors import ClassificationError, OptimizationError
from listing_optimizer.services import ai_service


def _png_bytes():
    buffer = io.BytesIO()
    PILImage.new("RGB", (8, 8), color=(200, 120, 40)).save(buffer, format="PNG")
    return buffer.getvalue()


def test_parse_analysis_strips_code_fences():
    text = "```json\n" + json.dumps(make_analysis("Kitchen")) + "\n```"

    analysis = ai_service.parse_analysis(text)

    assert analysis["room_type"] == "kitchen"


@pytest.mark.parametrize(
    "text",
    [
        "not json",
        json.dumps(["a list"]),
        json.dumps({"room_type": "bedroom"}),
        json.dumps(dict(make_analysis(), room_type="garage")),
        json.dumps(dict(make_analysis(), enhancement_priority="lighting")),
        json.dumps(dict(make_analysis(), lighting="good")),
    ],
)
def test_parse_analysis_rejects_bad_output(text):
    with pytest.raises(ClassificationError) as info:
        ai_service.parse_analysis(text)
    assert info.value.transient is False


def test_optimization_prompt_mentions_room_and_style():
    analysis = dict(make_analysis(), batch_consistency={"style_reference": "none"})

    prompt = ai_service.build_optimization_prompt("living_room", analysis)

    assert "living room" in prompt
    assert "lighting, composition" in prompt
    assert "match the lighting" in prompt


def _response_with_image(data):
    part = MagicMock()
    part.inline_data.data = data
    response = MagicMock()
    response.candidates[0].content.parts = [part]
    return response


def test_extract_image_reencodes_as_jpeg():
    jpeg = ai_service.extract_image(_response_with_image(_png_bytes()))

    assert PILImage.open(io.BytesIO(jpeg)).format == "JPEG"


def test_extract_image_rejects_garbage():
    with pytest.raises(OptimizationError):
        ai_service.extract_image(_response_with_image(b"not an image"))


def test_extract_image_requires_candidates():
    response = MagicMock()
    response.candidates = []
    with pytest.raises(OptimizationError):
        ai_service.extract_image(response)


@patch("listing_optimizer.services.ai_service.genai")
def test_classifier_parses_model_reply(mock_genai):
    mock_genai.GenerativeModel.return_value.generate_content.return_value.text = json.dumps(
        make_analysis("bathroom")
    )

    analysis = ai_service.GeminiClassifier("key").classify(_png_bytes())

    assert analysis["room_type"] == "bathroom"
    mock_genai.configure.assert_called_with(api_key="key")


@patch("listing_optimizer.services.ai_service.genai")
def test_throttling_is_transient(mock_genai):
    mock_genai.GenerativeModel.return_value.generate_content.side_effect = (
        google_exceptions.TooManyRequests("slow down")
    )

    with pytest.raises(ClassificationError) as info:
        ai_service.GeminiClassifier("key").classify(_png_bytes())
    assert info.value.transient is True


@patch("listing_optimizer.services.ai_service.genai")
def test_rejected_request_is_permanent(mock_genai):
    mock_genai.GenerativeModel.return_value.generate_content.side_effect = (
        google_exceptions.InvalidArgument("bad image")
    )

    with pytest.raises(OptimizationError) as info:
        ai_service.GeminiOptimizer("key").optimize(_png_bytes(), "kitchen")
    assert info.value.transient is False
