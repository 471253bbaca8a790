from __future__ import annotations

import pytest

from address_formatter.data import AddressData
from address_formatter.normalize import (
    abbreviate,
    add_subdivision_codes,
    apply_aliases,
    cleanup_input,
    cleanup_postcode,
    collect_unknown_components,
    determine_country_code,
    drop_urls,
    normalize_component_keys,
    redirect_replacements,
    resolve_country_code,
)


def test_camel_case_keys_become_components(data: AddressData) -> None:
    fields = normalize_component_keys({"houseNumber": "10", "countryCode": "us", "road": "Main St"}, data)
    assert fields == {"house_number": "10", "country_code": "us", "road": "Main St"}


def test_camel_case_key_does_not_overwrite_component(data: AddressData) -> None:
    fields = normalize_component_keys({"house_number": "5", "houseNumber": "10"}, data)
    assert fields == {"house_number": "5"}


def test_unknown_camel_case_key_is_kept(data: AddressData) -> None:
    assert normalize_component_keys({"fooBar": "x"}, data) == {"fooBar": "x"}


@pytest.mark.parametrize(
    "given, expected",
    [("de", "DE"), ("uk", "GB"), ("UK", "GB"), ("us", "US")],
)
def test_country_code_is_uppercased(data: AddressData, given: str, expected: str) -> None:
    assert determine_country_code({"country_code": given}, data)["country_code"] == expected


def test_fallback_country_code(data: AddressData) -> None:
    assert determine_country_code({"country_code": "zz"}, data, "de")["country_code"] == "DE"
    assert determine_country_code({}, data, "fr")["country_code"] == "FR"
    assert determine_country_code({"country_code": "zz"}, data)["country_code"] == "ZZ"


def test_missing_or_invalid_country_code_is_left_alone(data: AddressData) -> None:
    assert determine_country_code({"city": "X"}, data) == {"city": "X"}
    assert determine_country_code({"country_code": "deu"}, data) == {"country_code": "deu"}


def test_redirected_country(data: AddressData) -> None:
    fields = determine_country_code({"country_code": "PR", "city": "San Juan"}, data)
    assert fields["country_code"] == "US"
    assert fields["country"] == "United States of America"
    assert fields["state"] == "PR"


def test_redirect_change_country_substitutes_field(data: AddressData) -> None:
    fields = determine_country_code({"country_code": "SJ", "state": "Svalbard"}, data)
    assert fields["country_code"] == "NO"
    assert fields["country"] == "Svalbard, Norge"


def test_redirect_change_country_with_missing_field(data: AddressData) -> None:
    fields = determine_country_code({"country_code": "SJ"}, data)
    assert fields["country"] == ", Norge"


def test_dutch_caribbean_states(data: AddressData) -> None:
    fields = determine_country_code({"country_code": "NL", "state": "Curaçao"}, data)
    assert (fields["country_code"], fields["country"]) == ("CW", "Curaçao")
    fields = determine_country_code({"country_code": "nl", "state": "Sint Maarten (Dutch part)"}, data)
    assert (fields["country_code"], fields["country"]) == ("SX", "Sint Maarten")


def test_aliases_fill_empty_components(data: AddressData) -> None:
    assert apply_aliases({"town": "X"}, data) == {"town": "X", "city": "X"}
    assert apply_aliases({"city": "A", "town": "B"}, data) == {"city": "A", "town": "B"}
    assert apply_aliases({"province": "Ontario"}, data)["state"] == "Ontario"
    assert apply_aliases({"street": "Main St", "suburb": "Mitte"}, data) == {
        "street": "Main St",
        "suburb": "Mitte",
        "road": "Main St",
        "neighbourhood": "Mitte",
    }


def test_first_alias_wins(data: AddressData) -> None:
    assert apply_aliases({"town": "A", "township": "B"}, data)["city"] == "A"


@pytest.mark.parametrize("country_code, component", [("ES", "neighbourhood"), ("BR", "neighbourhood"), ("DE", "state_district"), (None, "state_district")])
def test_district_depends_on_country(data: AddressData, country_code, component: str) -> None:
    fields = apply_aliases({"district": "D", "country_code": country_code}, data)
    assert fields[component] == "D"


def test_state_code_lookup(data: AddressData) -> None:
    assert add_subdivision_codes({"state": "california", "country_code": "US"}, data)["state_code"] == "CA"
    assert add_subdivision_codes({"state": "Colombie-Britannique", "country_code": "CA"}, data)["state_code"] == "BC"
    assert add_subdivision_codes({"state": "Ontario", "country_code": "CA"}, data)["state_code"] == "ON"
    assert "state_code" not in add_subdivision_codes({"state": "Atlantis", "country_code": "US"}, data)


def test_supplied_state_code_is_kept(data: AddressData) -> None:
    fields = add_subdivision_codes({"state": "California", "state_code": "Calif.", "country_code": "US"}, data)
    assert fields["state_code"] == "Calif."


def test_county_code_lookup(data: AddressData) -> None:
    assert add_subdivision_codes({"county": "Rome", "country_code": "IT"}, data)["county_code"] == "RM"


@pytest.mark.parametrize("state", ["Washington, DC", "washington d.c.", "Washington DC"])
def test_washington_dc(data: AddressData, state: str) -> None:
    fields = add_subdivision_codes({"state": state}, data)
    assert fields["state_code"] == "DC"
    assert fields["state"] == "District of Columbia"
    assert fields["city"] == "Washington"


def test_unknown_components_become_attention(data: AddressData) -> None:
    assert collect_unknown_components({"foo": "bar", "city": "X"}, data)["attention"] == "bar"
    fields = collect_unknown_components({"foo": "bar", "baz": "qux"}, data)
    assert fields["attention"] == "bar, qux"


def test_unknown_components_extend_supplied_attention(data: AddressData) -> None:
    fields = collect_unknown_components({"attention": "Jane Doe", "foo": "bar"}, data)
    assert fields["attention"] == "Jane Doe, bar"


@pytest.mark.parametrize(
    "postcode, expected",
    [
        ("12345;67890", None),
        ("x" * 21, None),
        ("12345,67890", "12345"),
        ("SW1A 1AA", "SW1A 1AA"),
        (10115, "10115"),
    ],
)
def test_postcode_cleanup(postcode, expected) -> None:
    assert cleanup_postcode({"postcode": postcode}).get("postcode") == expected


def test_postcode_cleanup_can_be_disabled(data: AddressData) -> None:
    fields = cleanup_input({"postcode": "12345;67890"}, data, postcode_cleanup=False)
    assert fields["postcode"] == "12345;67890"


def test_abbreviate(data: AddressData) -> None:
    assert abbreviate({"road": "Main Street", "country_code": "US"}, data)["road"] == "Main St"
    assert abbreviate({"road": "Berliner Straße", "country_code": "DE"}, data)["road"] == "Berliner Str."
    # whole words only
    assert abbreviate({"road": "Hauptstraße", "country_code": "DE"}, data)["road"] == "Hauptstraße"
    assert abbreviate({"road": "Main Street", "country_code": "ZZ"}, data)["road"] == "Main Street"


def test_urls_are_dropped() -> None:
    assert drop_urls({"road": "http://example.com", "city": "X"}) == {"city": "X"}
    assert drop_urls({"house": "HTTPS://example.com/a"}) == {}


def test_numeric_country_takes_the_state(data: AddressData) -> None:
    fields = cleanup_input({"country": 49, "state": "Deutschland"}, data)
    assert fields["country"] == "Deutschland"
    assert "state" not in fields


def test_template_replacements(data: AddressData) -> None:
    fields = cleanup_input(
        {"city": "Stadtteil Mitte", "county": "Landkreis Foo", "road": "Stadtteil Weg", "country_code": "DE"},
        data,
        data.templates["DE"]["replace"],
    )
    assert fields["city"] == "Mitte"
    assert fields["county"] == "Foo"
    assert fields["road"] == "Stadtteil Weg"


def test_replacements_run_before_county_code_lookup(data: AddressData) -> None:
    fields = cleanup_input(
        {"county": "Provincia di Roma", "country_code": "IT"},
        data,
        data.templates["IT"]["replace"],
    )
    assert fields["county"] == "Roma"
    assert fields["county_code"] == "RM"


def test_resolve_country_code(data: AddressData) -> None:
    assert resolve_country_code("uk", data) == "GB"
    assert resolve_country_code("zz", data, "de") == "DE"
    assert resolve_country_code(None, data) == ""


def test_redirect_replacements_only_for_redirecting_entries(data: AddressData) -> None:
    # DE has replace rules of its own but is not a redirect.
    assert redirect_replacements("DE", data) == []
    assert redirect_replacements("PR", data) == []
    assert redirect_replacements("ZZ", data) == []
