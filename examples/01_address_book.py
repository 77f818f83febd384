"""
Address Book Example
====================

Demonstrates:
- Populating an object graph from flat path/value rows
- Autovivification with a custom InstanceFactory producer
- Static (class-level) paths
- Filtering with PathExpressionPredicate
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import ClassVar

from pathdsl import InstanceFactory, Is, PathExpressionPredicate, compile


# ============================================================================
# Define the model
# ============================================================================

@dataclass
class Address:
    state: str | None = None
    country: str | None = None


@dataclass
class Contact:
    HOME_COUNTRY: ClassVar[str] = "BR"

    name: str | None = None
    addresses: list[Address] | None = None
    tags: list[str] = field(default_factory=list)


# ============================================================================
# Populate from flat rows
# ============================================================================

ROWS = [
    {"name": "Ana", "addresses[0].state": "PE", "addresses[0].country": "BR"},
    {"name": "Bob", "addresses[0].state": "NY", "addresses[0].country": "US"},
    {"name": "Caio", "addresses[1].state": "SP", "addresses[1].country": "BR"},
]


def load(rows: list[dict[str, str]]) -> list[Contact]:
    """Build contacts, creating two address slots on demand."""
    factory = InstanceFactory.empty().put(list[Address], lambda _: [None, None])
    contacts = []
    for row in rows:
        contact = Contact()
        for text, value in row.items():
            compile(text).set_value(contact, value, factory=factory)
        contacts.append(contact)
    return contacts


# ============================================================================
# Query
# ============================================================================

if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG)

    contacts = load(ROWS)

    first_state = compile("addresses[0].state")
    for contact in contacts:
        print(f"{contact.name}: {first_state.get_value(contact)}")

    home_country = compile("class(__main__.Contact)HOME_COUNTRY")
    print(f"Home country: {home_country.get_static_value()}")

    at_home = PathExpressionPredicate.of(
        "addresses[0].country",
        Is.EQUAL,
        "class(__main__.Contact)HOME_COUNTRY",
    )
    print("Living at home:", [c.name for c in filter(at_home, contacts)])
