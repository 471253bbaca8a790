"""
Loading of the static YAML assets the formatter consumes.

Files in the data directory:

- ``templates.yaml``: country code -> template entry (``default`` included);
  other lowercase top-level keys only hold shared anchors.
- ``components.yaml``: canonical component names and their aliases.
- ``country_names.yaml``: country code -> display name.
- ``state_codes.yaml`` / ``county_codes.yaml``: country code -> {code: name},
  where a name is a string or a mapping of localized variants.
- ``country2lang.yaml``: country code -> primary language codes.
- ``abbreviations.yaml``: language -> [{component, rules: [{src, dest}]}].
"""
from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Union
import logging
import os
import re

import yaml

from .errors import DataError

logger = logging.getLogger(__name__)

DATA_DIR_ENV = "ADDRESS_FORMATTER_DATA_DIR"
PACKAGE_DATA_DIR = Path(__file__).resolve().parent / "data"

_COUNTRY_KEY_RE = re.compile(r"^[A-Z]{2}$")


def resolve_data_dir(data_dir: Optional[Union[str, Path]] = None) -> Path:
    if data_dir is None:
        data_dir = os.getenv(DATA_DIR_ENV) or PACKAGE_DATA_DIR
    return Path(data_dir)


def _read_yaml(path: Path) -> Any:
    try:
        with path.open(encoding="utf-8") as fp:
            return yaml.safe_load(fp)
    except FileNotFoundError as e:
        raise DataError(f"Missing data file: {path}") from e
    except yaml.YAMLError as e:
        raise DataError(f"Invalid YAML in {path}: {e}") from e


def _name_variants(name: Union[str, Dict[str, str]]) -> List[str]:
    if isinstance(name, dict):
        return [str(v) for v in name.values()]
    return [str(name)]


@dataclass
class AddressData:
    templates: Dict[str, Dict[str, Any]]
    aliases: Dict[str, str]
    components: FrozenSet[str]
    country_names: Dict[str, str] = field(default_factory=dict)
    state_codes: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    county_codes: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    country2lang: Dict[str, List[str]] = field(default_factory=dict)
    abbreviations: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)

    @classmethod
    def load(cls, data_dir: Optional[Union[str, Path]] = None) -> "AddressData":
        root = resolve_data_dir(data_dir)
        logger.debug("loading address data from %s", root)

        raw_templates = _read_yaml(root / "templates.yaml") or {}
        templates = {
            key: value for key, value in raw_templates.items()
            if isinstance(key, str) and (key == "default" or _COUNTRY_KEY_RE.match(key))
        }
        if "default" not in templates:
            raise DataError(f"{root / 'templates.yaml'} has no default template")

        aliases: Dict[str, str] = {}
        for entry in _read_yaml(root / "components.yaml") or []:
            name = entry["name"]
            aliases.setdefault(name, name)
            for alias in entry.get("aliases") or []:
                aliases.setdefault(alias, name)

        return cls(
            templates=templates,
            aliases=aliases,
            components=frozenset(aliases),
            country_names=_read_yaml(root / "country_names.yaml") or {},
            state_codes=_read_yaml(root / "state_codes.yaml") or {},
            county_codes=_read_yaml(root / "county_codes.yaml") or {},
            country2lang=_read_yaml(root / "country2lang.yaml") or {},
            abbreviations=_read_yaml(root / "abbreviations.yaml") or {},
        )

    def template_for(self, country_code: Optional[str]) -> Dict[str, Any]:
        return self.templates.get(country_code or "", self.templates["default"])

    def _code_for(self, table: Dict[str, Dict[str, Any]], name: str, country_code: Optional[str]) -> Optional[str]:
        codes = table.get(country_code or "")
        if not codes:
            return None
        wanted = name.upper()
        for code, names in codes.items():
            if any(variant.upper() == wanted for variant in _name_variants(names)):
                return str(code)
        return None

    def state_code(self, state: str, country_code: Optional[str]) -> Optional[str]:
        return self._code_for(self.state_codes, state, country_code)

    def county_code(self, county: str, country_code: Optional[str]) -> Optional[str]:
        return self._code_for(self.county_codes, county, country_code)


@lru_cache(maxsize=None)
def _load_cached(data_dir: str) -> AddressData:
    return AddressData.load(data_dir)


def default_data() -> AddressData:
    """Data from the configured directory, loaded once per directory."""
    return _load_cached(str(resolve_data_dir()))
