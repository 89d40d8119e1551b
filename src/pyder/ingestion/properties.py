"""Property-change decoding.

Translates the untyped ``(name, value)`` entries of a property-change
notification into :mod:`pyder.state.events` signal updates.
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from pyder._constants import PROP_PRICE, PROP_TIME
from pyder.exceptions import DerDecodeError
from pyder.ingestion.normalize import delta_entries, split_entry
from pyder.state.events import PriceUpdate, SignalUpdate, TimeUpdate, UnknownProperty


def decode_entry(name: str, value: Any) -> SignalUpdate:
    """Decode one named value into a signal update.

    Raises :class:`DerDecodeError` when a known property carries a value of
    the wrong type or out of range.
    """
    try:
        if name == PROP_PRICE:
            return PriceUpdate(price=value)
        if name == PROP_TIME:
            return TimeUpdate(time=value)
    except ValidationError as exc:
        raise DerDecodeError(
            f"cannot decode {name}={value!r}: {exc.errors()[0]['msg']}",
            name=name,
            value=value,
        ) from exc
    return UnknownProperty(name=name)


def decode_delta(delta: Any) -> tuple[list[SignalUpdate], list[DerDecodeError]]:
    """Decode a whole property-change delta.

    Returns a tuple of:
    - the decoded updates, in delta order
    - one error per entry that could not be decoded (those entries are skipped)

    Raises :class:`pyder.exceptions.DerDeltaFormatError` when *delta* is not
    a sequence of named entries at all.
    """
    updates: list[SignalUpdate] = []
    errors: list[DerDecodeError] = []
    for entry in delta_entries(delta):
        try:
            name, value = split_entry(entry)
            updates.append(decode_entry(name, value))
        except DerDecodeError as exc:
            errors.append(exc)
    return updates, errors
