"""Iconforge — FastAPI HTTP layer.

This package contains the FastAPI application and the Pydantic response
models it serves.

Modules
-------
main
    FastAPI application with the upload page, the batch endpoints
    (buffered and streamed) and the ``main()`` CLI entry point.
models
    Pydantic models for API responses.
"""
