"""Format address components into country-conventional postal addresses."""
from __future__ import annotations

from .data import AddressData
from .errors import AddressFormatterError, DataError, TemplateRenderError, TemplateSyntaxError
from .formatter import AddressFormatter, FormatOptions, format_address

format = format_address

__all__ = [
    "AddressData",
    "AddressFormatter",
    "AddressFormatterError",
    "DataError",
    "FormatOptions",
    "TemplateRenderError",
    "TemplateSyntaxError",
    "format",
    "format_address",
]
