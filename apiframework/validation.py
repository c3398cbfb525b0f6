"""Rule-based attribute validation.

A ruleset maps a field name to rule names. ``required`` is reserved: it fails
when the field is missing, None or blank. Every other rule name must name a
pattern that the value contains.
"""

import re
from typing import Any, Mapping, Optional

REQUIRED = "required"

DEFAULT_RULES: dict[str, str] = {
    "alpha": r"[a-zA-Z\s]+",
    "numeric": r"[0-9]+",
    "alphanumeric": r"[-\w\s]+",
    "email": r"[-\w]+(\.-\w+)*@[-\w]+(\.[-\w]+)*(\.[a-zA-Z]{2,6})",
}


def _is_blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def validation_errors(
    attributes: Mapping[str, Any],
    ruleset: Mapping[str, list[str]],
    patterns: Optional[Mapping[str, str]] = None,
) -> dict[str, str]:
    """Return ``{field: failed rule}``; empty when every attribute is valid.

    Attributes without rules are not checked. A field failing ``required`` is
    not checked further; otherwise the last failing rule is reported.
    """
    patterns = DEFAULT_RULES if patterns is None else patterns
    errors: dict[str, str] = {}
    for field, rules in ruleset.items():
        if REQUIRED in rules and _is_blank(attributes.get(field)):
            errors[field] = REQUIRED
            continue
        if field not in attributes:
            continue
        value = attributes[field]
        for rule in rules:
            if rule == REQUIRED:
                continue
            pattern = patterns.get(rule)
            if pattern is None or value is None or re.search(pattern, str(value)) is None:
                errors[field] = rule
    return errors
