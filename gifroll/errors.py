from __future__ import annotations


class GifrollError(Exception):
    """Base class for every error raised by gifroll."""


class ConfigError(GifrollError):
    """Invalid or missing configuration. Fatal at startup."""


class InvalidImageError(GifrollError):
    """A source image could not be turned into a frame."""


class FetchError(GifrollError):
    """The remote image could not be retrieved."""


class DecodeError(GifrollError):
    """The retrieved bytes are not a readable image."""


class EncodeIOError(GifrollError):
    """Writing the animation to its sink failed."""


class EmptyBufferError(GifrollError):
    """An operation needed at least one frame in the buffer."""


class PostError(GifrollError):
    """The posting endpoint rejected a request or could not be reached."""
