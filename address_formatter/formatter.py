"""
Format a bag of address fields according to the postal conventions of the
address's country.

    >>> format_address({"road": "Main St", "houseNumber": "10", "city": "Springfield",
    ...                 "postcode": "12345", "countryCode": "US"})
    '10 Main St\\nSpringfield, 12345\\nUnited States of America\\n'
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple, Union
import logging
import re

from .cleanup import apply_substitutions, clean_rendered
from .data import AddressData, default_data
from .mustache import Renderer, no_escape
from .normalize import (
    Fields,
    append_country_name,
    apply_aliases,
    cleanup_input,
    determine_country_code,
    normalize_component_keys,
    redirect_replacements,
    resolve_country_code,
)

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ("string", "array")

# The fallback template is used only when all of these are missing.
REQUIRED_COMPONENTS = ("road", "postcode")

_ALTERNATIVES_RE = re.compile(r"\s*\|\|\s*")


@dataclass
class FormatOptions:
    abbreviate: bool = False
    append_country: bool = False
    cleanup_postcode: bool = True
    country_code: Optional[str] = None
    fallback_country_code: Optional[str] = None
    output: str = "string"

    def __post_init__(self):
        if self.output not in OUTPUT_FORMATS:
            raise ValueError(f"output must be one of {OUTPUT_FORMATS}, not {self.output!r}")


def first_available(text: str, render: Callable[[str], str]) -> str:
    """Body of ``{{#first}} a || b || c {{/first}}``: the first non-empty alternative."""
    for alternative in _ALTERNATIVES_RE.split(render(text)):
        alternative = alternative.strip()
        if alternative:
            return alternative
    return ""


def choose_template_text(template: Mapping[str, Any], fields: Fields, default: Mapping[str, Any]) -> str:
    text = template.get("address_template") or default["address_template"]
    if not any(fields.get(name) for name in REQUIRED_COMPONENTS):
        text = template.get("fallback_template") or default.get("fallback_template") or text
        logger.debug("no %s, using fallback template", " or ".join(REQUIRED_COMPONENTS))
    return text


class AddressFormatter:
    def __init__(self, data: Optional[AddressData] = None, renderer: Optional[Renderer] = None):
        self.data = data if data is not None else default_data()
        # Field values are plain text, not HTML.
        self.renderer = renderer if renderer is not None else Renderer(escape=no_escape)

    def normalize(self, fields: Mapping[str, Any], options: FormatOptions) -> Tuple[Fields, List[Sequence[str]]]:
        """Canonical fields plus the ``replace`` rules of a redirecting country entry."""
        working: Fields = dict(fields)
        normalize_component_keys(working, self.data)
        if options.country_code:
            working["country_code"] = options.country_code
        requested = resolve_country_code(working.get("country_code"), self.data, options.fallback_country_code)
        replacements = redirect_replacements(requested, self.data)
        determine_country_code(working, self.data, options.fallback_country_code)
        if options.append_country:
            append_country_name(working, self.data)
        return apply_aliases(working, self.data), replacements

    def render_template(self, template: Mapping[str, Any], fields: Fields) -> str:
        text = choose_template_text(template, fields, self.data.templates["default"])
        view = dict(fields)
        view["first"] = lambda _view: first_available

        rendered = clean_rendered(self.renderer.render(text, view))
        if template.get("postformat_replace"):
            rendered = apply_substitutions(rendered, template["postformat_replace"])
        rendered = clean_rendered(rendered)

        if not rendered:
            logger.debug("template rendered nothing, joining all fields")
            rendered = clean_rendered(", ".join(str(v) for v in fields.values() if v))
        return rendered + "\n"

    def format(
        self,
        fields: Mapping[str, Any],
        options: Optional[FormatOptions] = None,
        **kwargs: Any,
    ) -> Union[str, List[str]]:
        if options is None:
            options = FormatOptions(**kwargs)
        elif kwargs:
            options = replace(options, **kwargs)

        working, replacements = self.normalize(fields, options)
        template = self.data.template_for(working.get("country_code"))
        cleanup_input(
            working,
            self.data,
            replacements + list(template.get("replace") or []),
            abbreviate_components=options.abbreviate,
            postcode_cleanup=options.cleanup_postcode,
        )
        result = self.render_template(template, working)

        if options.output == "array":
            return [line for line in result.split("\n") if line]
        return result


_default_formatter: Optional[AddressFormatter] = None


def default_formatter() -> AddressFormatter:
    global _default_formatter
    if _default_formatter is None:
        _default_formatter = AddressFormatter()
    return _default_formatter


def format_address(
    fields: Mapping[str, Any],
    options: Optional[FormatOptions] = None,
    **kwargs: Any,
) -> Union[str, List[str]]:
    return default_formatter().format(fields, options, **kwargs)
