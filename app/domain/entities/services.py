from __future__ import annotations

from enum import Enum
from typing import Mapping


class ServiceCategory(str, Enum):
    STAFF = "staff"
    EQUIPMENT = "equipment"
    CATERING = "catering"
    CLEANING = "cleaning"
    SECURITY = "security"
    SETUP = "setup"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    ServiceCategory.STAFF: "Staff",
    ServiceCategory.EQUIPMENT: "Equipment",
    ServiceCategory.CATERING: "Catering",
    ServiceCategory.CLEANING: "Cleaning",
    ServiceCategory.SECURITY: "Security",
    ServiceCategory.SETUP: "Setup",
}


class ServiceTrack(str, Enum):
    """Sub-state of one category inside the Services Request region."""

    REQUESTED = "Requested"
    APPROVED = "Approved"
    DECLINED = "Declined"


class CloseoutTrack(str, Enum):
    """Sub-state of one category inside the Service Closeout region."""

    PENDING = "Closeout Pending"
    CLOSED_OUT = "Closed Out"


def parse_service_flags(raw: Mapping[str, object] | None) -> dict[ServiceCategory, bool]:
    """Normalize a `{category: bool}` mapping, dropping unknown keys."""
    flags: dict[ServiceCategory, bool] = {}
    for key, value in (raw or {}).items():
        try:
            category = ServiceCategory(key)
        except ValueError:
            continue
        if isinstance(value, bool):
            flags[category] = value
    return flags


def dump_service_flags(flags: Mapping[ServiceCategory, bool]) -> dict[str, bool]:
    return {category.value: value for category, value in flags.items()}


def requested_categories(services_requested: Mapping[ServiceCategory, bool]) -> list[ServiceCategory]:
    return [category for category in ServiceCategory if services_requested.get(category)]


def approved_categories(
    services_requested: Mapping[ServiceCategory, bool],
    services_approved: Mapping[ServiceCategory, bool],
) -> list[ServiceCategory]:
    return [
        category
        for category in ServiceCategory
        if services_requested.get(category) and services_approved.get(category) is True
    ]
