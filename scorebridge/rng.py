from __future__ import annotations

from typing import Optional

try:
    from constants import DEFAULT_SEED, RNG_RESOLUTION, XORSHIFT_ZERO_SEED
except ImportError:
    from .constants import DEFAULT_SEED, RNG_RESOLUTION, XORSHIFT_ZERO_SEED

MASK_32 = 0xFFFFFFFF


class XorShift32:
    """Seeded 32-bit xorshift generator; every consumer owns its own instance."""

    def __init__(self, seed: Optional[int] = DEFAULT_SEED) -> None:
        if seed is None:
            seed = DEFAULT_SEED
        state = int(seed) & MASK_32
        # All-zero state never leaves zero.
        self.state = state or XORSHIFT_ZERO_SEED
        self.seed = seed

    def next_u32(self) -> int:
        s = self.state
        s ^= (s << 13) & MASK_32
        s ^= s >> 17
        s ^= (s << 5) & MASK_32
        self.state = s & MASK_32
        return self.state

    def random(self) -> float:
        return (self.next_u32() % RNG_RESOLUTION) / RNG_RESOLUTION

    def uniform(self, low: float, high: float) -> float:
        return low + (high - low) * self.random()
