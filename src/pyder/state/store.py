"""In-memory signal store.

This is the only component allowed to mutate signal samples.
"""

from __future__ import annotations

import threading

from pyder.models.signal import SignalSample
from pyder.state.events import PriceUpdate, SignalUpdate, TimeUpdate, UnknownProperty


class SignalStore:
    """Latest known :class:`SignalSample` per publisher address.

    Samples are never purged: values stay readable after a publisher is
    lost. Readers always receive copies.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._samples: dict[str, SignalSample] = {}

    def _sample(self, address: str) -> SignalSample:
        sample = self._samples.get(address)
        if sample is None:
            sample = SignalSample()
            self._samples[address] = sample
        return sample

    def ensure(self, address: str) -> None:
        """Create an empty sample for *address* if none exists yet."""
        with self._lock:
            self._sample(address)

    def apply(self, address: str, update: SignalUpdate) -> bool:
        """Apply a decoded update. Returns ``True`` when a field was written."""
        with self._lock:
            sample = self._sample(address)
            if isinstance(update, PriceUpdate):
                sample.price = update.price
                return True
            if isinstance(update, TimeUpdate):
                sample.time = update.time
                return True
            if isinstance(update, UnknownProperty):
                return False
            raise TypeError(f"Unsupported signal update: {type(update).__name__}")

    def get(self, address: str) -> SignalSample | None:
        with self._lock:
            sample = self._samples.get(address)
            return sample.model_copy() if sample is not None else None

    def addresses(self) -> list[str]:
        with self._lock:
            return list(self._samples)

    def snapshot(self) -> dict[str, SignalSample]:
        """Copies of every sample, keyed by publisher address."""
        with self._lock:
            return {address: sample.model_copy() for address, sample in self._samples.items()}

    def __contains__(self, address: object) -> bool:
        with self._lock:
            return address in self._samples

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)
