"""Pydantic response models for the Iconforge API.

These models define the JSON schema of every API response. FastAPI uses them
for serialisation and OpenAPI documentation generation.

Models
------
IconResultModel
    One generated icon (``name`` + ``b64``) or one failure (``name`` + ``error``).
IconifyResponse
    Body of ``POST /api/iconify``.
ConfigResponse
    Body of ``GET /api/config``.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from iconforge.core.models import IconResult


class IconResultModel(BaseModel):
    """Outcome of a single uploaded file.

    Exactly one of ``b64`` and ``error`` is set.

    Attributes:
        name: Download name of the icon (``<stem>-icon.png``), or ``"error"``
            for a batch-level failure.
        b64: Base64-encoded PNG.
        error: Human-readable error description.
    """

    name: str = Field(..., description="Download name, e.g. 'car-icon.png'.")
    b64: str | None = Field(default=None, description="Base64-encoded PNG icon.")
    error: str | None = Field(default=None, description="Error description.")

    @classmethod
    def from_result(cls, result: IconResult) -> IconResultModel:
        return cls(name=result.name, b64=result.b64, error=result.error)


class IconifyResponse(BaseModel):
    """Response body for ``POST /api/iconify``.

    Attributes:
        results: One entry per uploaded file in submission order, or a
            single error entry when the batch could not start.
    """

    results: list[IconResultModel] = Field(default_factory=list)


class ConfigResponse(BaseModel):
    """Response body for ``GET /api/config``.

    Attributes:
        version: API version string.
        style_name: Name of the baked style preset.
        image_model: Image model used for edits.
        image_size: Output size token.
        credentials_configured: Whether an API key is present.
    """

    version: str
    style_name: str
    image_model: str
    image_size: str
    credentials_configured: bool
