"""Normalization helpers.

Centralizes defensive parsing of operator input and property-change
payload shapes.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from pyder.exceptions import DerDecodeError, DerDeltaFormatError, DerInputError


def parse_watts(value: Any) -> int:
    """Parse a setpoint as a non-negative integer.

    Accepts ``int`` values and plain decimal strings (surrounding whitespace
    allowed). Booleans, floats, signs and anything else are rejected with
    :class:`DerInputError`.
    """
    if isinstance(value, bool):
        raise DerInputError(f"watts must be an integer, got {value!r}", value=value)
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if not text or not (text.isascii() and text.isdigit()):
            raise DerInputError(f"watts must be a non-negative integer, got {value!r}", value=value)
        parsed = int(text)
    else:
        raise DerInputError(f"watts must be an integer, got {type(value).__name__}", value=value)

    if parsed < 0:
        raise DerInputError(f"watts must be non-negative, got {parsed}", value=value)
    return parsed


def parse_elapsed_ms(value: Any) -> float:
    """Parse an elapsed-time value in milliseconds (finite, ``>= 0``)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DerInputError(f"elapsed time must be a number, got {value!r}", value=value)
    elapsed = float(value)
    if math.isnan(elapsed) or math.isinf(elapsed) or elapsed < 0:
        raise DerInputError(f"elapsed time must be finite and non-negative, got {value!r}", value=value)
    return elapsed


def split_entry(entry: Any) -> tuple[str, Any]:
    """Split one delta entry into ``(name, value)``.

    An entry is either a two-item ``[name, value]`` pair or a single-key
    mapping ``{name: value}``.
    """
    if isinstance(entry, Mapping) and len(entry) == 1:
        ((name, value),) = entry.items()
    elif isinstance(entry, (list, tuple)) and len(entry) == 2:
        name, value = entry
    else:
        raise DerDecodeError("invalid property change", value=entry)

    if not isinstance(name, str):
        raise DerDecodeError(f"property name must be a string, got {type(name).__name__}", value=entry)
    return name, value


def delta_entries(delta: Any) -> list[Any]:
    """Return the raw entries of a property-change delta, in order.

    A mapping yields its ``(name, value)`` items; a list or tuple yields its
    elements unchanged. Anything else raises :class:`DerDeltaFormatError`.
    """
    if isinstance(delta, Mapping):
        return list(delta.items())
    if isinstance(delta, (list, tuple)):
        return list(delta)
    raise DerDeltaFormatError(
        f"property delta must be a mapping or a list of entries, got {type(delta).__name__}",
        value=delta,
    )
