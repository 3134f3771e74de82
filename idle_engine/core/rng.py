from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import EngineState

_FALLBACK_SEED = 0x9E3779B9
_FALLBACK_STATE = 0x6D2B79F5


def seed_to_uint32(seed: int | str) -> int:
    digest = hashlib.sha256(str(seed).encode("utf-8")).hexdigest()
    value = int(digest[:8], 16)
    return value or _FALLBACK_SEED


def fresh_seed() -> int:
    """Entropy for a brand new game; everything after this is replayable."""
    return secrets.randbits(32) or _FALLBACK_SEED


@dataclass(slots=True)
class DeterministicRNG:
    """Xorshift32 stream whose full position is (state, calls).

    The engine stores both numbers on the game state, so a stream can be
    paused at save time and continued after loading without drifting.
    """

    seed: int | str
    state: int
    calls: int = 0

    @classmethod
    def from_seed(cls, seed: int | str) -> "DeterministicRNG":
        return cls(seed=seed, state=seed_to_uint32(seed), calls=0)

    def _next_uint32(self) -> int:
        value = self.state & 0xFFFFFFFF
        value ^= (value << 13) & 0xFFFFFFFF
        value ^= value >> 17
        value ^= (value << 5) & 0xFFFFFFFF
        self.state = value or _FALLBACK_STATE
        self.calls += 1
        return self.state

    def next_float(self) -> float:
        """Uniform float in [0, 1)."""
        return self._next_uint32() / 2**32

    def next_int(self, min_inclusive: int, max_exclusive: int) -> int:
        if max_exclusive <= min_inclusive:
            raise ValueError(
                f"next_int requires max_exclusive ({max_exclusive}) > min_inclusive ({min_inclusive})."
            )
        return min_inclusive + int(self.next_float() * (max_exclusive - min_inclusive))

    def next_between(self, low: int, high: int) -> int:
        """Uniform integer in [low, high]; no draw when the range is a single value."""
        if high < low:
            raise ValueError(f"next_between requires high ({high}) >= low ({low}).")
        if high == low:
            return low
        return self.next_int(low, high + 1)


def rng_from_state(state: "EngineState") -> DeterministicRNG:
    return DeterministicRNG(seed=state.seed, state=state.rng_state, calls=state.rng_calls)


def sync_rng_to_state(state: "EngineState", rng: DeterministicRNG) -> None:
    state.rng_state = rng.state
    state.rng_calls = rng.calls
