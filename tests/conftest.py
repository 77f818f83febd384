"""Shared fixtures."""

from collections.abc import Iterator

import pytest
from models import Person


@pytest.fixture(autouse=True)
def restore_person_class_state() -> Iterator[None]:
    """Restore Person's class variables, which static writes mutate."""
    saved = {name: getattr(Person, name) for name in ("NAME", "NULL", "ADDRESS", "TAGS")}
    yield
    for name, value in saved.items():
        setattr(Person, name, value)
