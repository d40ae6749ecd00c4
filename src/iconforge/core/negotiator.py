"""Adaptive request negotiation with the OpenAI image edit endpoint.

This module provides :class:`RequestNegotiator`, the single point of contact
with the external image service. Given one reference image and the assembled
instruction text it returns one base64-encoded PNG, hiding the service's
parameter-support differences from the rest of the pipeline.

Two-Tier Negotiation
--------------------
1. **Optimistic tier**: ``images.edit`` with ``background="transparent"``.
   Some deployments reject the parameter; that rejection (and only that) is
   classified as a :class:`~iconforge.core.errors.CompatibilityError`.
2. **Fallback tier**: the identical call without ``background``.

Any other failure (authentication, rate limit, malformed input, server fault)
is raised as :class:`~iconforge.core.errors.UpstreamError` straight from the
first tier. There is no backoff and no further retry: at most two edit calls
are made per image, plus at most one download per call when the service
answers with a link instead of inline data.

Parameter Rejection
-------------------
The structured error ``code`` reported by the SDK is checked first
(``unknown_parameter``, ``invalid_parameter``). When the service gives no
code, the message is matched case-insensitively against ``"unknown
parameter"`` and ``"invalid parameter"``.

Usage
-----
::

    from iconforge.core.config import config
    from iconforge.core.negotiator import RequestNegotiator
    from iconforge.core.style_preset import build_instruction_text

    negotiator = RequestNegotiator.from_config(config)
    b64 = negotiator.transform(source_image, build_instruction_text(config.image_size))
"""

from __future__ import annotations

import base64
import logging
from typing import TYPE_CHECKING, Any

import httpx
from openai import OpenAI, OpenAIError

from .errors import CompatibilityError, EmptyResponseError, UpstreamError, ValidationError
from .models import SourceImage

if TYPE_CHECKING:
    from .config import IconforgeConfig

logger = logging.getLogger(__name__)

TRANSPARENT_BACKGROUND = "transparent"

_REJECTION_CODES = frozenset({"unknown_parameter", "invalid_parameter"})
_REJECTION_PHRASES = ("unknown parameter", "invalid parameter")


def error_message(exc: BaseException) -> str:
    """Return the user-facing message carried by an exception."""
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(exc)


def is_parameter_rejection(exc: BaseException) -> bool:
    """Check whether an error means "this optional parameter is not supported".

    Args:
        exc: Error raised by the image edit call

    Returns:
        True for unknown/invalid parameter errors, False for everything else
    """
    code = getattr(exc, "code", None)
    if isinstance(code, str) and code.lower() in _REJECTION_CODES:
        return True

    text = error_message(exc).lower()
    return any(phrase in text for phrase in _REJECTION_PHRASES)


class RequestNegotiator:
    """Turns one reference image into one stylized icon via the OpenAI API.

    The negotiator keeps no state between calls; it is a pure
    request/response mapping and can be reused for a whole batch.

    Attributes:
        model: Image model identifier sent with every request
        size: Square size token (``"1024x1024"``)
        fetch_timeout: Timeout in seconds for downloading linked images
    """

    def __init__(
        self,
        client: OpenAI,
        model: str = "gpt-image-1",
        size: str = "1024x1024",
        http_client: httpx.Client | None = None,
        fetch_timeout: float = 60.0,
    ) -> None:
        """Initialise the negotiator.

        Args:
            client: Authenticated OpenAI client
            model: Image model identifier
            size: Square size token
            http_client: Client used to download linked images. When None a
                short-lived client is opened per download.
            fetch_timeout: Timeout for downloads made with the short-lived client
        """
        self._client = client
        self._http_client = http_client
        self.model = model
        self.size = size
        self.fetch_timeout = fetch_timeout

    @classmethod
    def from_config(cls, config: IconforgeConfig) -> RequestNegotiator:
        """Build a negotiator with an OpenAI client authenticated from *config*.

        Raises:
            ConfigurationError: If no API key is configured
        """
        client_kwargs: dict[str, Any] = {"api_key": config.require_credentials()}
        if config.request_timeout is not None:
            client_kwargs["timeout"] = config.request_timeout

        return cls(
            OpenAI(**client_kwargs),
            model=config.image_model,
            size=config.image_size,
            fetch_timeout=config.fetch_timeout,
        )

    # -- Public interface ---------------------------------------------------

    def transform(self, source: SourceImage, instruction_text: str) -> str:
        """Produce a base64 PNG icon for *source*.

        Args:
            source: Reference image (non-empty content and display name)
            instruction_text: Fully assembled prompt

        Returns:
            Non-empty base64-encoded PNG

        Raises:
            ValidationError: If the image or instruction is empty
            UpstreamError: If the service fails for any reason other than
                rejecting the transparency parameter
            EmptyResponseError: If neither tier returns an image
        """
        if source.is_empty:
            raise ValidationError("Invalid or empty file")
        if not source.filename or not source.filename.strip():
            raise ValidationError("Image has no file name")
        if not instruction_text or not instruction_text.strip():
            raise ValidationError("Instruction text is empty")

        try:
            payload = self._attempt(source, instruction_text, transparent=True)
        except CompatibilityError as exc:
            logger.info(
                "Transparent background rejected for '%s' (%s); retrying without it.",
                source.filename,
                exc.message,
            )
            payload = None
        else:
            if payload:
                return payload
            logger.warning(
                "No image in first response for '%s'; retrying without background.",
                source.filename,
            )

        payload = self._attempt(source, instruction_text, transparent=False)
        if not payload:
            raise EmptyResponseError("No image returned by API")
        return payload

    # -- Internals ----------------------------------------------------------

    def _attempt(self, source: SourceImage, instruction_text: str, *, transparent: bool) -> str | None:
        """Run one edit call and extract its payload.

        Returns:
            Base64 payload, or None when the response carried no image

        Raises:
            CompatibilityError: (transparent tier only) parameter rejected
            UpstreamError: Any other service failure
        """
        params: dict[str, Any] = {
            "model": self.model,
            "prompt": instruction_text,
            "image": [source.upload_tuple()],
            "size": self.size,
            "n": 1,
        }
        if transparent:
            params["background"] = TRANSPARENT_BACKGROUND

        logger.info(
            "Requesting icon for '%s' (%d bytes, model=%s, size=%s, transparent=%s).",
            source.filename,
            source.size,
            self.model,
            self.size,
            transparent,
        )

        try:
            response = self._client.images.edit(**params)
        except OpenAIError as exc:
            if transparent and is_parameter_rejection(exc):
                raise CompatibilityError(error_message(exc)) from exc
            logger.warning("Image edit failed for '%s': %s", source.filename, error_message(exc))
            raise UpstreamError(
                error_message(exc), status_code=getattr(exc, "status_code", None)
            ) from exc

        return self._extract_payload(response)

    def _extract_payload(self, response: Any) -> str | None:
        """Prefer inline base64; otherwise download the linked image."""
        data = getattr(response, "data", None) or []
        if not data:
            return None

        first = data[0]
        b64 = getattr(first, "b64_json", None)
        if b64:
            return b64

        url = getattr(first, "url", None)
        if url:
            return self._fetch_as_base64(url)
        return None

    def _fetch_as_base64(self, url: str) -> str:
        """Download a linked image and re-encode it as base64.

        Raises:
            UpstreamError: If the download fails
            EmptyResponseError: If the download has no body
        """
        logger.info("Service returned a link; downloading image.")
        try:
            if self._http_client is not None:
                response = self._http_client.get(url)
            else:
                with httpx.Client(follow_redirects=True, timeout=self.fetch_timeout) as client:
                    response = client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise UpstreamError(
                f"Failed to download generated image (HTTP {status})", status_code=status
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Failed to download generated image: {exc}") from exc

        if not response.content:
            raise EmptyResponseError("No image returned by API")
        return base64.b64encode(response.content).decode("ascii")
