"""
Input normalization: turn a loose bag of address fields into the canonical
components the country templates reference.

All functions mutate and return the ``fields`` dict they are given; the
formatter always hands them a private copy of the caller's input.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence
import logging
import re

from .cleanup import apply_substitutions
from .data import AddressData

logger = logging.getLogger(__name__)

Fields = Dict[str, Any]

# Countries where "district" means a part of a city rather than of a state.
SMALL_DISTRICT_COUNTRIES = frozenset({"BR", "CR", "ES", "NI", "PY", "RO", "TG", "TM", "XK"})

_CAMEL_RE = re.compile(r"([A-Z])")
_COMPONENT_REF_RE = re.compile(r"\$(\w*)")
_WASHINGTON_DC_RE = re.compile(r"^washington,? d\.?c\.?", re.IGNORECASE)
_POSTCODE_RANGE_RE = re.compile(r"\d+;\d+")
_MULTI_POSTCODE_RE = re.compile(r"^(\d{5}),\d{5}")
_URL_RE = re.compile(r"^https?://", re.IGNORECASE)

MAX_POSTCODE_LENGTH = 20

# -----------------------------
# Keys and country
# -----------------------------
def normalize_component_keys(fields: Fields, data: AddressData) -> Fields:
    """Rename camelCase keys (``houseNumber``) to their snake_case component."""
    for key in list(fields):
        snaked = _CAMEL_RE.sub(r"_\1", key).lower()
        if snaked == key or snaked not in data.components:
            continue
        if fields[key] and not fields.get(snaked):
            fields[snaked] = fields[key]
        del fields[key]
    return fields


def _substitute_component(text: str, fields: Fields) -> str:
    m = _COMPONENT_REF_RE.search(text)
    if not m:
        return text
    value = fields.get(m.group(1)) or ""
    return text.replace(m.group(0), str(value), 1)


def resolve_country_code(country_code: Any, data: AddressData, fallback_country_code: Optional[str] = None) -> str:
    country_code = str(country_code).upper() if country_code else ""
    if country_code == "UK":
        country_code = "GB"
    if country_code not in data.templates and fallback_country_code:
        country_code = fallback_country_code.upper()
    return country_code


def redirect_replacements(country_code: str, data: AddressData) -> List[Sequence[str]]:
    """``replace`` rules of a ``use_country`` entry, applied before the target's own."""
    entry = data.templates.get(country_code) or {}
    if not entry.get("use_country"):
        return []
    return list(entry.get("replace") or [])


def determine_country_code(fields: Fields, data: AddressData, fallback_country_code: Optional[str] = None) -> Fields:
    """Resolve ``country_code``, following ``use_country`` redirects."""
    country_code = resolve_country_code(fields.get("country_code"), data, fallback_country_code)
    if len(country_code) != 2:
        return fields

    entry = data.templates.get(country_code) or {}
    if entry.get("use_country"):
        original = country_code
        country_code = str(entry["use_country"]).upper()
        logger.debug("rendering %s with the %s template", original, country_code)
        if entry.get("change_country"):
            fields["country"] = _substitute_component(str(entry["change_country"]), fields)
        add_component = entry.get("add_component") or ""
        if "=" in add_component:
            name, value = add_component.split("=", 1)
            fields[name.strip()] = value.strip()

    state = fields.get("state")
    if country_code == "NL" and state:
        state = str(state)
        if state == "Curaçao":
            country_code = "CW"
            fields["country"] = "Curaçao"
        elif re.search(r"sint maarten", state, re.IGNORECASE):
            country_code = "SX"
            fields["country"] = "Sint Maarten"
        elif re.search(r"aruba", state, re.IGNORECASE):
            country_code = "AW"
            fields["country"] = "Aruba"

    fields["country_code"] = country_code
    return fields


def append_country_name(fields: Fields, data: AddressData) -> Fields:
    name = data.country_names.get(fields.get("country_code") or "")
    if name and not fields.get("country"):
        fields["country"] = name
    return fields

# -----------------------------
# Aliases
# -----------------------------
def apply_aliases(fields: Fields, data: AddressData) -> Fields:
    """Copy alias values (``town``, ``province``...) into empty canonical components."""
    country_code = fields.get("country_code")
    for key in list(fields):
        if key == "district":
            canonical = "neighbourhood" if country_code in SMALL_DISTRICT_COUNTRIES else "state_district"
        else:
            canonical = data.aliases.get(key)
        if canonical and canonical != key and not fields.get(canonical):
            fields[canonical] = fields[key]
    return fields

# -----------------------------
# Cleanup before rendering
# -----------------------------
def apply_replacements(fields: Fields, replacements: Sequence[Sequence[str]]) -> Fields:
    for key in list(fields):
        if fields[key] is None:
            continue
        fields[key] = apply_substitutions(str(fields[key]), replacements, component=key)
    return fields


def add_subdivision_codes(fields: Fields, data: AddressData) -> Fields:
    country_code = fields.get("country_code")
    state = fields.get("state")
    if state and not fields.get("state_code"):
        state = str(state)
        code = data.state_code(state, country_code)
        if code:
            fields["state_code"] = code
        if _WASHINGTON_DC_RE.match(state):
            fields["state_code"] = "DC"
            fields["state"] = "District of Columbia"
            fields["city"] = "Washington"

    county = fields.get("county")
    if county and not fields.get("county_code"):
        code = data.county_code(str(county), country_code)
        if code:
            fields["county_code"] = code
    return fields


def collect_unknown_components(fields: Fields, data: AddressData) -> Fields:
    """Fold values of unrecognized keys into ``attention``."""
    unknown = [str(fields[key]) for key in fields if key not in data.components and fields[key]]
    if unknown:
        if fields.get("attention"):
            unknown.insert(0, str(fields["attention"]))
        fields["attention"] = ", ".join(unknown)
    return fields


def cleanup_postcode(fields: Fields) -> Fields:
    if not fields.get("postcode"):
        return fields
    postcode = str(fields["postcode"])
    multi = _MULTI_POSTCODE_RE.match(postcode)
    if len(postcode) > MAX_POSTCODE_LENGTH:
        logger.debug("dropping overlong postcode")
        del fields["postcode"]
    elif _POSTCODE_RANGE_RE.search(postcode):
        logger.debug("dropping postcode range %r", postcode)
        del fields["postcode"]
    elif multi:
        fields["postcode"] = multi.group(1)
    else:
        fields["postcode"] = postcode
    return fields


def abbreviate(fields: Fields, data: AddressData) -> Fields:
    country_code = fields.get("country_code") or ""
    for lang in data.country2lang.get(country_code) or []:
        for entry in data.abbreviations.get(lang) or []:
            component = entry["component"]
            if not fields.get(component):
                continue
            value = str(fields[component])
            for rule in entry.get("rules") or []:
                pattern = r"\b" + re.escape(rule["src"]) + r"\b"
                value = re.sub(pattern, lambda _m, dest=rule["dest"]: dest, value, count=1)
            fields[component] = value
    return fields


def drop_urls(fields: Fields) -> Fields:
    for key in list(fields):
        if _URL_RE.match(str(fields[key])):
            logger.debug("dropping URL value for %s", key)
            del fields[key]
    return fields


def cleanup_input(
    fields: Fields,
    data: AddressData,
    replacements: Optional[Sequence[Sequence[str]]] = None,
    *,
    abbreviate_components: bool = False,
    postcode_cleanup: bool = True,
) -> Fields:
    country = fields.get("country")
    # A numeric country is a legacy input quirk: the state holds the real country.
    if isinstance(country, int) and not isinstance(country, bool) and fields.get("state"):
        fields["country"] = fields.pop("state")

    if replacements:
        apply_replacements(fields, replacements)
    add_subdivision_codes(fields, data)
    collect_unknown_components(fields, data)
    if postcode_cleanup:
        cleanup_postcode(fields)
    if abbreviate_components:
        abbreviate(fields, data)
    return drop_urls(fields)
