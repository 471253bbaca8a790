from __future__ import annotations

import pytest

from address_formatter.data import AddressData
from address_formatter.formatter import AddressFormatter
from address_formatter.mustache import Renderer


@pytest.fixture(scope="session")
def data() -> AddressData:
    return AddressData.load()


@pytest.fixture
def formatter(data: AddressData) -> AddressFormatter:
    return AddressFormatter(data=data)


@pytest.fixture
def renderer() -> Renderer:
    return Renderer()
