"""
Push Key Generation

Generates 20-character keys that are unique and sort lexicographically in
generation order: 8 characters encode the millisecond timestamp and 12
characters of randomness follow. Keys generated within the same
millisecond increment the random suffix instead of re-rolling it, so
ordering holds even for bursts.
"""

import random
import time
from typing import Callable, List, Optional

# Alphabet in ASCII order so string comparison matches generation order
PUSH_CHARS = "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"

TIMESTAMP_LENGTH = 8
RANDOM_LENGTH = 12


class PushIdGenerator:
    """
    Stateful push key generator.

    Args:
        clock: Callable returning the current time in seconds
        rng: Random source (injectable for tests)
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
    ):
        self._clock = clock
        self._rng = rng or random.SystemRandom()
        self._last_time = -1
        self._last_random: List[int] = [0] * RANDOM_LENGTH

    def generate(self) -> str:
        now = int(self._clock() * 1000)
        if now <= self._last_time:
            # Same (or earlier) millisecond: keep the timestamp, bump suffix
            now = self._last_time
            self._increment_random()
        else:
            self._last_random = [
                self._rng.randrange(64) for _ in range(RANDOM_LENGTH)
            ]
        self._last_time = now

        time_chars = []
        remaining = now
        for _ in range(TIMESTAMP_LENGTH):
            time_chars.append(PUSH_CHARS[remaining % 64])
            remaining //= 64
        time_chars.reverse()

        return "".join(time_chars) + "".join(
            PUSH_CHARS[i] for i in self._last_random
        )

    def _increment_random(self) -> None:
        index = RANDOM_LENGTH - 1
        while index >= 0 and self._last_random[index] == 63:
            self._last_random[index] = 0
            index -= 1
        if index >= 0:
            self._last_random[index] += 1
