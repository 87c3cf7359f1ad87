from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from functools import lru_cache

from PIL import Image

from .errors import ConfigError, InvalidImageError

RGB = tuple[int, int, int]
Palette = Sequence[RGB]

MAX_PALETTE_SIZE = 256


@dataclass(frozen=True)
class Frame:
    """A palette-indexed image plus its display duration in ticks (1/100 s)."""

    image: Image.Image
    delay: int = 0

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def palette(self) -> list[RGB]:
        flat = self.image.getpalette() or []
        return [tuple(flat[i : i + 3]) for i in range(0, len(flat), 3)]


def _plan9_palette() -> tuple[RGB, ...]:
    # Same layout as the Plan 9 colormap: 4 red levels x 4 value levels,
    # each a 4x4 green/blue block, rotated so greys land on the diagonal.
    colors: list[RGB] = [(0, 0, 0)] * 256
    i = 0
    for r in range(4):
        for v in range(4):
            j = v - r
            for g in range(4):
                for b in range(4):
                    den = max(r, g, b)
                    if den == 0:
                        c = (0x11 * v, 0x11 * v, 0x11 * v)
                    else:
                        num = 17 * (4 * den + v)
                        c = (r * num // den, g * num // den, b * num // den)
                    colors[i + (j & 0x0F)] = c
                    j += 1
            i += 16
    return tuple(colors)


def _websafe_palette() -> tuple[RGB, ...]:
    levels = range(0, 256, 51)
    return tuple((r, g, b) for r in levels for g in levels for b in levels)


PLAN9_PALETTE = _plan9_palette()
WEBSAFE_PALETTE = _websafe_palette()


def resolve_palette(name: str) -> Palette | None:
    """Map a configured palette name to a palette; ``adaptive`` means None."""
    if name == "plan9":
        return PLAN9_PALETTE
    if name == "websafe":
        return WEBSAFE_PALETTE
    if name == "adaptive":
        return None
    raise ConfigError(f"Unknown palette: {name!r}")


@lru_cache(maxsize=8)
def _palette_image(palette: tuple[RGB, ...]) -> Image.Image:
    if not 0 < len(palette) <= MAX_PALETTE_SIZE:
        raise ValueError(f"palette must hold 1..{MAX_PALETTE_SIZE} colors, got {len(palette)}")
    # Pad with the first colour so unused indices never introduce black.
    padded = list(palette) + [palette[0]] * (MAX_PALETTE_SIZE - len(palette))
    out = Image.new("P", (1, 1))
    out.putpalette([channel for color in padded for channel in color])
    return out


def palettize(image: Image.Image, palette: Palette | None = PLAN9_PALETTE, delay: int = 0) -> Frame:
    """Quantize ``image`` to ``palette`` using nearest-colour mapping.

    Passing ``palette=None`` computes an adaptive 256-colour palette from the
    image itself. Dithering is disabled so every pixel maps to its nearest
    palette entry.
    """
    width, height = image.size
    if width <= 0 or height <= 0:
        raise InvalidImageError(f"image has degenerate bounds {width}x{height}")

    try:
        rgb = image if image.mode == "RGB" else image.convert("RGB")
        if palette is None:
            paletted = rgb.quantize(
                colors=MAX_PALETTE_SIZE,
                method=Image.Quantize.MEDIANCUT,
                dither=Image.Dither.NONE,
            )
        else:
            key = tuple(tuple(int(c) for c in color) for color in palette)
            paletted = rgb.quantize(palette=_palette_image(key), dither=Image.Dither.NONE)
    except (OSError, ValueError) as exc:
        raise InvalidImageError(f"failed to palettize image: {exc}") from exc

    return Frame(image=paletted, delay=delay)
