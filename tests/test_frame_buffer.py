"""Tests for the rolling frame buffer: capacity, eviction order and delay policy."""

from unittest.mock import Mock

import pytest
from PIL import Image

from gifroll.errors import ConfigError, EmptyBufferError, InvalidImageError
from gifroll.frame_buffer import FrameBuffer, Position
from gifroll.image_ops import palettize


def _frames(marker_image, count):
    return [palettize(marker_image(i)) for i in range(count)]


def _images(buffer):
    return [f.image for f in buffer.frames()]


class TestCapacity:
    """Tests for the capacity bound."""

    @pytest.mark.parametrize("position", [Position.START, Position.END])
    def test_length_never_exceeds_capacity(self, marker_image, position):
        buffer = FrameBuffer(capacity=4, base_delay=10, min_duration=0)

        for i in range(12):
            buffer.insert(marker_image(i), position)
            assert len(buffer) <= buffer.capacity
            assert buffer.length() == min(i + 1, 4)

    def test_zero_capacity_is_config_error(self):
        with pytest.raises(ConfigError):
            FrameBuffer(capacity=0, base_delay=10, min_duration=0)

    def test_negative_delay_is_config_error(self):
        with pytest.raises(ConfigError):
            FrameBuffer(capacity=3, base_delay=-1, min_duration=0)

    @pytest.mark.parametrize(
        "base_delay, min_duration", [(65536, 0), (50, 1000), (50, 655.36)]
    )
    def test_delay_beyond_gif_limit_is_config_error(self, base_delay, min_duration):
        with pytest.raises(ConfigError):
            FrameBuffer(capacity=1, base_delay=base_delay, min_duration=min_duration)

    def test_largest_encodable_delay_is_accepted(self):
        buffer = FrameBuffer(capacity=1, base_delay=50, min_duration=655.35)

        assert buffer.compute_delay(1) == 65535


class TestOrdering:
    """Tests for insertion order and eviction at both ends."""

    def test_end_insertion_is_fifo(self, marker_image):
        f1, f2, f3, f4 = _frames(marker_image, 4)
        buffer = FrameBuffer(capacity=3, base_delay=10, min_duration=0)
        for frame in (f1, f2, f3):
            buffer.insert(frame, Position.END)
        assert _images(buffer) == [f1.image, f2.image, f3.image]

        buffer.insert(f4, Position.END)

        assert _images(buffer) == [f2.image, f3.image, f4.image]

    def test_start_insertion_mirrors_fifo(self, marker_image):
        f1, f2, f3, f4 = _frames(marker_image, 4)
        buffer = FrameBuffer(capacity=3, base_delay=10, min_duration=0)
        for frame in (f3, f2, f1):
            buffer.insert(frame, Position.START)
        assert _images(buffer) == [f1.image, f2.image, f3.image]

        buffer.insert(f4, Position.START)

        assert _images(buffer) == [f4.image, f1.image, f2.image]

    def test_start_insertion_before_full_prepends(self, marker_image, marker_index):
        buffer = FrameBuffer(capacity=5, base_delay=10, min_duration=0)
        for i in range(3):
            buffer.insert(marker_image(i), Position.START)

        assert [marker_index(f.image) for f in buffer.frames()] == [2, 1, 0]

    def test_raw_images_are_palettized(self, marker_image):
        buffer = FrameBuffer(capacity=2, base_delay=10, min_duration=0)
        buffer.insert(marker_image(0))

        frame = buffer.frames()[0]
        assert frame.image.mode == "P"
        assert (frame.width, frame.height) == marker_image(0).size

    def test_latest_follows_insertion_end(self, marker_image, marker_index):
        buffer = FrameBuffer(capacity=3, base_delay=10, min_duration=0)
        for i in range(5):
            buffer.insert(marker_image(i), Position.END)
        assert marker_index(buffer.latest().image) == 4

        buffer.insert(marker_image(7), Position.START)
        assert marker_index(buffer.latest().image) == 7

    def test_latest_on_empty_buffer(self):
        buffer = FrameBuffer(capacity=3, base_delay=10, min_duration=0)
        with pytest.raises(EmptyBufferError):
            buffer.latest()


class TestDelay:
    """Tests for the uniform delay recomputed on every insertion."""

    def test_short_animation_is_stretched(self, marker_image):
        buffer = FrameBuffer(capacity=2, base_delay=50, min_duration=10)
        buffer.insert(marker_image(0))
        buffer.insert(marker_image(1))

        # 50 * 2 = 100 ticks < 1000 ticks, so each frame gets 10 s / 2
        assert buffer.delay == 500
        assert [f.delay for f in buffer.frames()] == [500, 500]

    def test_long_enough_animation_keeps_base_delay(self, marker_image):
        buffer = FrameBuffer(capacity=10, base_delay=50, min_duration=1)
        for i in range(10):
            buffer.insert(marker_image(i))

        assert buffer.delay == 50
        assert {f.delay for f in buffer.frames()} == {50}

    def test_delay_changes_as_buffer_fills(self, marker_image):
        buffer = FrameBuffer(capacity=10, base_delay=50, min_duration=1)
        buffer.insert(marker_image(0))
        assert buffer.delay == 100

        buffer.insert(marker_image(1))
        assert buffer.delay == 50

    def test_stretched_delay_meets_minimum(self):
        buffer = FrameBuffer(capacity=3, base_delay=10, min_duration=10)

        delay = buffer.compute_delay(3)

        assert delay == 334
        assert 3 * delay >= 10 * 100

    @pytest.mark.parametrize("position", [Position.START, Position.END])
    def test_all_frames_share_latest_delay(self, marker_image, position):
        buffer = FrameBuffer(capacity=4, base_delay=20, min_duration=3)
        for i in range(9):
            buffer.insert(marker_image(i), position)
            delays = {f.delay for f in buffer.frames()}
            assert delays == {buffer.delay}

    def test_snapshot_reports_milliseconds(self, marker_image):
        buffer = FrameBuffer(capacity=2, base_delay=50, min_duration=10)
        buffer.insert(marker_image(0))
        buffer.insert(marker_image(1))

        snapshot = buffer.snapshot()

        assert len(snapshot.images) == 2
        assert snapshot.durations_ms == (5000, 5000)


class TestInvalidImage:
    """A rejected image must leave the buffer untouched."""

    def test_zero_width_image_leaves_buffer_unchanged(self, marker_image):
        buffer = FrameBuffer(capacity=3, base_delay=50, min_duration=2)
        buffer.insert(marker_image(0))
        buffer.insert(marker_image(1))
        before = buffer.frames()
        delay_before = buffer.delay

        bad = Mock(spec=Image.Image)
        bad.size = (0, 8)
        with pytest.raises(InvalidImageError):
            buffer.insert(bad, Position.END)

        assert buffer.length() == 2
        assert buffer.frames() == before
        assert buffer.delay == delay_before
