"""Placeholder substitution for notification titles and messages."""

from collections.abc import Mapping
from typing import Any


def apply_template(text: str, variables: Mapping[str, Any] | None) -> str:
    """Replace every ``{{key}}`` with ``str(value)``.

    Keys are matched literally. Placeholders without a matching variable are
    left untouched.
    """
    if not variables:
        return text
    for key, value in variables.items():
        text = text.replace("{{" + str(key) + "}}", str(value))
    return text
