from __future__ import annotations

from typing import Optional


class AddressFormatterError(Exception):
    """Base class for errors raised by address_formatter."""


class TemplateSyntaxError(AddressFormatterError, ValueError):
    """A template could not be compiled (bad delimiters, unclosed tags or sections)."""

    def __init__(self, message: str, position: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.position = position

    def __str__(self) -> str:
        if self.position is None:
            return self.message
        return f"{self.message} at {self.position}"


class TemplateRenderError(AddressFormatterError):
    """A compiled template could not be rendered."""


class DataError(AddressFormatterError):
    """A data asset is missing or malformed."""
