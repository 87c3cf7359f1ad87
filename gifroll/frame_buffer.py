from __future__ import annotations

import logging
from dataclasses import replace
from enum import Enum
from typing import NamedTuple

from PIL import Image

from .errors import ConfigError, EmptyBufferError
from .image_ops import PLAN9_PALETTE, Frame, Palette, palettize

logger = logging.getLogger(__name__)

TICKS_PER_SECOND = 100
MS_PER_TICK = 10
# GIF stores each frame delay in an unsigned 16-bit field.
MAX_DELAY_TICKS = 65535


class Position(Enum):
    START = "start"
    END = "end"


class AnimationFrames(NamedTuple):
    images: tuple[Image.Image, ...]
    durations_ms: tuple[int, ...]


class FrameBuffer:
    """Fixed-capacity rolling sequence of palettized frames.

    Frames are kept in order with index 0 at the ``START`` end. Once the
    buffer is full every insertion evicts the frame farthest from the
    insertion end. After each insertion all frames share one delay, stretched
    when needed so the whole animation lasts at least ``min_duration``
    seconds.

    The buffer does no locking; callers must serialize ``insert``.
    """

    def __init__(
        self,
        capacity: int,
        base_delay: int,
        min_duration: float,
        palette: Palette | None = PLAN9_PALETTE,
    ) -> None:
        if capacity < 1:
            raise ConfigError(f"frame buffer capacity must be at least 1, got {capacity}")
        if base_delay < 0:
            raise ConfigError(f"frame delay must not be negative, got {base_delay}")
        if min_duration < 0:
            raise ConfigError(f"minimum duration must not be negative, got {min_duration}")

        self.capacity = capacity
        self.base_delay = base_delay
        self.min_duration = min_duration
        self.palette = palette
        self._frames: list[Frame] = []
        self._delay = base_delay
        self._last_position: Position | None = None

        # A single frame gets the longest delay the policy can produce.
        if self.compute_delay(1) > MAX_DELAY_TICKS:
            raise ConfigError(
                f"frame delay cannot exceed {MAX_DELAY_TICKS} ticks, got {self.compute_delay(1)}"
            )

    def __len__(self) -> int:
        return len(self._frames)

    def length(self) -> int:
        return len(self._frames)

    @property
    def delay(self) -> int:
        return self._delay

    def frames(self) -> tuple[Frame, ...]:
        return tuple(self._frames)

    def compute_delay(self, count: int) -> int:
        """Uniform per-frame delay, in ticks, for a buffer holding ``count`` frames."""
        min_ticks = round(self.min_duration * TICKS_PER_SECOND)
        if self.base_delay * count < min_ticks:
            # ceil(min_ticks / count)
            return -(-min_ticks // count)
        return self.base_delay

    def insert(self, image: Image.Image | Frame, position: Position = Position.END) -> None:
        if isinstance(image, Frame):
            frame = image
        else:
            # Raises InvalidImageError before anything is touched.
            frame = palettize(image, self.palette)

        frames = list(self._frames)
        if len(frames) >= self.capacity:
            evicted = frames.pop() if position is Position.START else frames.pop(0)
            logger.debug("evicted frame " + str(evicted.image.size))

        if position is Position.START:
            frames.insert(0, frame)
        else:
            frames.append(frame)

        delay = self.compute_delay(len(frames))
        self._frames = [replace(f, delay=delay) for f in frames]
        self._delay = delay
        self._last_position = position

    def latest(self) -> Frame:
        """Return the most recently inserted frame."""
        if not self._frames:
            raise EmptyBufferError("frame buffer is empty")
        if self._last_position is Position.START:
            return self._frames[0]
        return self._frames[-1]

    def snapshot(self) -> AnimationFrames:
        frames = tuple(self._frames)
        return AnimationFrames(
            images=tuple(f.image for f in frames),
            durations_ms=tuple(f.delay * MS_PER_TICK for f in frames),
        )
