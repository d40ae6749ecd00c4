"""Tests for iconforge.core.negotiator — two-tier request negotiation.

All tests use a mocked OpenAI client and a mocked httpx client so that no
network access occurs. Tests cover:

- Inline base64 and linked-image responses on the first tier.
- Fallback to the second tier on parameter rejection (code or message).
- No fallback for any other service failure.
- Empty responses and failed downloads.
- Local input validation (no calls made).
- Construction from configuration.
"""

from __future__ import annotations

import base64
from unittest.mock import MagicMock, patch

import httpx
import openai
import pytest

from iconforge.core.errors import (
    ConfigurationError,
    EmptyResponseError,
    UpstreamError,
    ValidationError,
)
from iconforge.core.models import SourceImage
from iconforge.core.negotiator import RequestNegotiator, is_parameter_rejection

PROMPT = "Make it an icon."
LINK = "https://cdn.example.com/icon.png"


@pytest.fixture
def negotiator(openai_client, http_client) -> RequestNegotiator:
    return RequestNegotiator(openai_client, http_client=http_client)


def _edit_kwargs(openai_client: MagicMock, call: int) -> dict:
    return openai_client.images.edit.call_args_list[call].kwargs


# ---------------------------------------------------------------------------
# First tier succeeds.
# ---------------------------------------------------------------------------


class TestOptimisticTier:
    """The transparent-background request is answered directly."""

    def test_inline_payload_returned_after_one_call(
        self, negotiator, openai_client, http_client, source_image, edit_response
    ):
        openai_client.images.edit.return_value = edit_response(b64="aWNvbg==")

        assert negotiator.transform(source_image, PROMPT) == "aWNvbg=="
        assert openai_client.images.edit.call_count == 1
        http_client.get.assert_not_called()

    def test_request_shape_includes_transparency(
        self, negotiator, openai_client, source_image, edit_response
    ):
        openai_client.images.edit.return_value = edit_response(b64="aWNvbg==")

        negotiator.transform(source_image, PROMPT)

        kwargs = _edit_kwargs(openai_client, 0)
        assert kwargs["model"] == "gpt-image-1"
        assert kwargs["prompt"] == PROMPT
        assert kwargs["size"] == "1024x1024"
        assert kwargs["n"] == 1
        assert kwargs["background"] == "transparent"
        assert kwargs["image"] == [("car.png", source_image.content, "image/png")]

    def test_linked_payload_is_downloaded_and_encoded(
        self, negotiator, openai_client, http_client, source_image, edit_response, http_response
    ):
        openai_client.images.edit.return_value = edit_response(url=LINK)
        http_client.get.return_value = http_response(content=b"png-bytes")

        result = negotiator.transform(source_image, PROMPT)

        assert result == base64.b64encode(b"png-bytes").decode("ascii")
        http_client.get.assert_called_once_with(LINK)
        assert openai_client.images.edit.call_count == 1

    def test_inline_payload_preferred_over_link(
        self, negotiator, openai_client, http_client, source_image, edit_response
    ):
        openai_client.images.edit.return_value = edit_response(b64="aW5saW5l", url=LINK)

        assert negotiator.transform(source_image, PROMPT) == "aW5saW5l"
        http_client.get.assert_not_called()

    def test_missing_name_and_type_use_defaults(self, negotiator, openai_client, edit_response):
        openai_client.images.edit.return_value = edit_response(b64="aWNvbg==")
        source = SourceImage(content=b"data", filename="photo", media_type="")

        negotiator.transform(source, PROMPT)

        assert _edit_kwargs(openai_client, 0)["image"] == [("photo", b"data", "image/png")]


# ---------------------------------------------------------------------------
# Fallback tier.
# ---------------------------------------------------------------------------


class TestFallbackTier:
    """Parameter rejection triggers exactly one conservative retry."""

    @pytest.mark.parametrize(
        "message",
        [
            "Unknown parameter: 'background'.",
            "UNKNOWN PARAMETER background",
            "Invalid parameter: background is not supported for this model",
        ],
    )
    def test_rejection_message_triggers_single_fallback(
        self, negotiator, openai_client, source_image, edit_response, api_error, message
    ):
        openai_client.images.edit.side_effect = [
            api_error(message),
            edit_response(b64="ZmFsbGJhY2s="),
        ]

        assert negotiator.transform(source_image, PROMPT) == "ZmFsbGJhY2s="
        assert openai_client.images.edit.call_count == 2

    def test_rejection_code_triggers_fallback(
        self, negotiator, openai_client, source_image, edit_response, api_error
    ):
        openai_client.images.edit.side_effect = [
            api_error("Request could not be processed.", code="unknown_parameter"),
            edit_response(b64="ZmFsbGJhY2s="),
        ]

        assert negotiator.transform(source_image, PROMPT) == "ZmFsbGJhY2s="
        assert openai_client.images.edit.call_count == 2

    def test_fallback_request_omits_transparency(
        self, negotiator, openai_client, source_image, edit_response, api_error
    ):
        openai_client.images.edit.side_effect = [
            api_error("Unknown parameter: 'background'."),
            edit_response(b64="ZmFsbGJhY2s="),
        ]

        negotiator.transform(source_image, PROMPT)

        first, second = _edit_kwargs(openai_client, 0), _edit_kwargs(openai_client, 1)
        assert "background" not in second
        first.pop("background")
        assert first == second

    def test_fallback_with_link(
        self, negotiator, openai_client, http_client, source_image, edit_response, api_error, http_response
    ):
        openai_client.images.edit.side_effect = [
            api_error("Unknown parameter: 'background'."),
            edit_response(url=LINK),
        ]
        http_client.get.return_value = http_response(content=b"linked")

        result = negotiator.transform(source_image, PROMPT)

        assert base64.b64decode(result) == b"linked"
        assert openai_client.images.edit.call_count == 2
        http_client.get.assert_called_once_with(LINK)

    def test_fallback_without_image_raises_empty_response(
        self, negotiator, openai_client, source_image, edit_response, api_error
    ):
        openai_client.images.edit.side_effect = [
            api_error("Unknown parameter: 'background'."),
            edit_response(),
        ]

        with pytest.raises(EmptyResponseError, match="No image returned"):
            negotiator.transform(source_image, PROMPT)
        assert openai_client.images.edit.call_count == 2

    def test_fallback_rejection_is_not_retried_again(
        self, negotiator, openai_client, source_image, api_error
    ):
        openai_client.images.edit.side_effect = [
            api_error("Unknown parameter: 'background'."),
            api_error("Unknown parameter: 'size'."),
        ]

        with pytest.raises(UpstreamError, match="Unknown parameter: 'size'"):
            negotiator.transform(source_image, PROMPT)
        assert openai_client.images.edit.call_count == 2

    def test_empty_first_response_moves_to_fallback(
        self, negotiator, openai_client, source_image, edit_response
    ):
        openai_client.images.edit.side_effect = [edit_response(), edit_response(b64="c2Vjb25k")]

        assert negotiator.transform(source_image, PROMPT) == "c2Vjb25k"
        assert openai_client.images.edit.call_count == 2


# ---------------------------------------------------------------------------
# Hard failures.
# ---------------------------------------------------------------------------


class TestHardFailures:
    """Errors other than parameter rejection propagate without a fallback."""

    @pytest.mark.parametrize(
        "status,message",
        [
            (401, "Incorrect API key provided: sk-test."),
            (429, "Rate limit reached for images per minute."),
            (500, "The server had an error while processing your request."),
            (400, "Invalid image file or mode for image 1."),
        ],
    )
    def test_other_errors_propagate_unchanged(
        self, negotiator, openai_client, source_image, api_error, status, message
    ):
        openai_client.images.edit.side_effect = api_error(message, status=status)

        with pytest.raises(UpstreamError) as exc_info:
            negotiator.transform(source_image, PROMPT)

        assert exc_info.value.message == message
        assert exc_info.value.status_code == status
        assert openai_client.images.edit.call_count == 1

    def test_connection_error_propagates(self, negotiator, openai_client, source_image):
        request = httpx.Request("POST", "https://api.openai.com/v1/images/edits")
        openai_client.images.edit.side_effect = openai.APIConnectionError(request=request)

        with pytest.raises(UpstreamError, match="Connection error"):
            negotiator.transform(source_image, PROMPT)
        assert openai_client.images.edit.call_count == 1

    def test_download_http_error(
        self, negotiator, openai_client, http_client, source_image, edit_response, http_response
    ):
        openai_client.images.edit.return_value = edit_response(url=LINK)
        http_client.get.return_value = http_response(status=404)

        with pytest.raises(UpstreamError, match="HTTP 404") as exc_info:
            negotiator.transform(source_image, PROMPT)
        assert exc_info.value.status_code == 404

    def test_download_transport_error(
        self, negotiator, openai_client, http_client, source_image, edit_response
    ):
        openai_client.images.edit.return_value = edit_response(url=LINK)
        http_client.get.side_effect = httpx.ConnectError("connection refused")

        with pytest.raises(UpstreamError, match="connection refused"):
            negotiator.transform(source_image, PROMPT)

    def test_download_without_body(
        self, negotiator, openai_client, http_client, source_image, edit_response, http_response
    ):
        openai_client.images.edit.return_value = edit_response(url=LINK)
        http_client.get.return_value = http_response(content=b"")

        with pytest.raises(EmptyResponseError):
            negotiator.transform(source_image, PROMPT)


# ---------------------------------------------------------------------------
# Local validation.
# ---------------------------------------------------------------------------


class TestInputValidation:
    """Unusable input is rejected before any request is made."""

    def test_empty_content(self, negotiator, openai_client, empty_image):
        with pytest.raises(ValidationError, match="empty"):
            negotiator.transform(empty_image, PROMPT)
        openai_client.images.edit.assert_not_called()

    def test_missing_filename(self, negotiator, openai_client):
        with pytest.raises(ValidationError):
            negotiator.transform(SourceImage(content=b"data", filename=" "), PROMPT)
        openai_client.images.edit.assert_not_called()

    def test_empty_instruction(self, negotiator, openai_client, source_image):
        with pytest.raises(ValidationError):
            negotiator.transform(source_image, "   ")
        openai_client.images.edit.assert_not_called()


# ---------------------------------------------------------------------------
# Error classification.
# ---------------------------------------------------------------------------


class TestIsParameterRejection:
    """Classification of parameter-support errors."""

    def test_structured_code(self, api_error):
        assert is_parameter_rejection(api_error("whatever", code="invalid_parameter"))

    def test_message_match(self, api_error):
        assert is_parameter_rejection(api_error("unknown Parameter: background"))

    def test_other_code_and_message(self, api_error):
        assert not is_parameter_rejection(api_error("Invalid value: 'huge'.", code="invalid_value"))

    def test_plain_exception(self):
        assert is_parameter_rejection(RuntimeError("Unknown parameter: background"))
        assert not is_parameter_rejection(RuntimeError("timeout"))


# ---------------------------------------------------------------------------
# Construction.
# ---------------------------------------------------------------------------


class TestFromConfig:
    """Building a negotiator from configuration."""

    def test_requires_credentials(self, unconfigured_config):
        with pytest.raises(ConfigurationError, match="API key not configured"):
            RequestNegotiator.from_config(unconfigured_config)

    def test_uses_configured_values(self, test_config):
        test_config.image_model = "gpt-image-1-mini"
        with patch("iconforge.core.negotiator.OpenAI") as mock_openai:
            negotiator = RequestNegotiator.from_config(test_config)

        mock_openai.assert_called_once_with(api_key="sk-test")
        assert negotiator.model == "gpt-image-1-mini"
        assert negotiator.size == "1024x1024"
        assert negotiator.fetch_timeout == test_config.fetch_timeout

    def test_passes_request_timeout(self, test_config):
        test_config.request_timeout = 90.0
        with patch("iconforge.core.negotiator.OpenAI") as mock_openai:
            RequestNegotiator.from_config(test_config)

        mock_openai.assert_called_once_with(api_key="sk-test", timeout=90.0)

    def test_default_download_client(self, openai_client, source_image, edit_response, http_response):
        openai_client.images.edit.return_value = edit_response(url=LINK)
        negotiator = RequestNegotiator(openai_client, fetch_timeout=5.0)

        with patch("iconforge.core.negotiator.httpx.Client") as mock_client_cls:
            mock_client = mock_client_cls.return_value.__enter__.return_value
            mock_client.get.return_value = http_response(content=b"abc")
            result = negotiator.transform(source_image, PROMPT)

        mock_client_cls.assert_called_once_with(follow_redirects=True, timeout=5.0)
        assert base64.b64decode(result) == b"abc"
