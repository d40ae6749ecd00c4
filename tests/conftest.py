"""Shared pytest fixtures for Iconforge tests."""

import base64
import io
import os
from collections.abc import Callable, Generator
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import openai
import pytest
from PIL import Image

from iconforge.core.config import IconforgeConfig
from iconforge.core.models import SourceImage

_CREDENTIAL_VARS = ("OPENAI_API_KEY", "ICONFORGE_OPENAI_API_KEY")
_EDIT_URL = "https://api.openai.com/v1/images/edits"


@pytest.fixture
def test_config(monkeypatch) -> IconforgeConfig:
    """Create a configuration with a fake credential and no .env influence.

    Returns:
        IconforgeConfig instance for testing
    """
    for var in _CREDENTIAL_VARS:
        monkeypatch.delenv(var, raising=False)
    return IconforgeConfig(openai_api_key="sk-test", _env_file=None)


@pytest.fixture
def unconfigured_config(monkeypatch) -> IconforgeConfig:
    """Create a configuration without any credential.

    Returns:
        IconforgeConfig instance whose ``has_credentials`` is False
    """
    for var in _CREDENTIAL_VARS:
        monkeypatch.delenv(var, raising=False)
    return IconforgeConfig(_env_file=None)


@pytest.fixture
def png_bytes() -> bytes:
    """A real PNG of roughly 10KB (noise does not compress).

    Returns:
        Encoded PNG bytes
    """
    image = Image.frombytes("RGB", (64, 64), os.urandom(64 * 64 * 3))
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def source_image(png_bytes: bytes) -> SourceImage:
    """A valid uploaded reference image."""
    return SourceImage(content=png_bytes, filename="car.png", media_type="image/png")


@pytest.fixture
def empty_image() -> SourceImage:
    """A zero-byte upload."""
    return SourceImage(content=b"", filename="empty.png", media_type="image/png")


@pytest.fixture
def edit_response() -> Callable[..., SimpleNamespace]:
    """Factory for objects shaped like ``ImagesResponse``.

    Returns:
        Callable taking ``b64`` and/or ``url``; with neither, ``data`` is empty
    """

    def _make(b64: str | None = None, url: str | None = None) -> SimpleNamespace:
        if b64 is None and url is None:
            return SimpleNamespace(data=[])
        return SimpleNamespace(data=[SimpleNamespace(b64_json=b64, url=url)])

    return _make


@pytest.fixture
def api_error() -> Callable[..., openai.APIStatusError]:
    """Factory for real OpenAI SDK status errors.

    Returns:
        Callable taking ``message``, optional ``code`` and ``status``
    """
    classes = {
        400: openai.BadRequestError,
        401: openai.AuthenticationError,
        429: openai.RateLimitError,
        500: openai.InternalServerError,
    }

    def _make(message: str, code: str | None = None, status: int = 400) -> openai.APIStatusError:
        request = httpx.Request("POST", _EDIT_URL)
        response = httpx.Response(status, request=request)
        body = {"message": message, "type": "invalid_request_error", "param": None, "code": code}
        return classes[status](message, response=response, body=body)

    return _make


@pytest.fixture
def http_response() -> Callable[..., httpx.Response]:
    """Factory for downloaded-image responses."""

    def _make(content: bytes = b"\x89PNG linked", status: int = 200, url: str = "https://cdn.example.com/icon.png") -> httpx.Response:
        return httpx.Response(status, content=content, request=httpx.Request("GET", url))

    return _make


@pytest.fixture
def openai_client() -> MagicMock:
    """A stand-in for ``openai.OpenAI``; configure ``images.edit`` per test."""
    return MagicMock(name="OpenAI")


@pytest.fixture
def http_client() -> MagicMock:
    """A stand-in for ``httpx.Client``; configure ``get`` per test."""
    return MagicMock(name="httpx.Client")


@pytest.fixture
def fake_negotiator() -> MagicMock:
    """A negotiator whose icons encode the source file name.

    Returns:
        MagicMock with a working ``transform``
    """
    negotiator = MagicMock(name="RequestNegotiator")
    negotiator.transform.side_effect = lambda source, text: base64.b64encode(
        b"icon:" + source.filename.encode()
    ).decode("ascii")
    return negotiator


@pytest.fixture
def test_client(test_config, fake_negotiator) -> Generator:
    """FastAPI TestClient wired to the test config and fake negotiator.

    Yields:
        TestClient with the application lifespan running
    """
    from fastapi.testclient import TestClient

    from iconforge.api.main import app

    with TestClient(app) as client:
        app.state.config = test_config
        app.state.negotiator = fake_negotiator
        yield client
