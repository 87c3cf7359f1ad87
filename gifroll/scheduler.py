from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from io import BytesIO
from typing import Union

from PIL import Image

from .config import Settings
from .encoder import encode, write_latest_frame
from .errors import DecodeError, EncodeIOError, FetchError, InvalidImageError, PostError
from .fetcher import fetch_image
from .frame_buffer import FrameBuffer, Position
from .image_ops import resolve_palette
from .posting import MastodonClient
from .storage import record_fetch, record_publish, save_animation, save_latest_frame

logger = logging.getLogger(__name__)

POLL_SECONDS = 1.0
RECONNECT_SECONDS = 10.0


@dataclass(frozen=True)
class Disconnected:
    pass


@dataclass(frozen=True)
class Connected:
    client: MastodonClient


ConnectionState = Union[Disconnected, Connected]


def build_buffer(settings: Settings) -> FrameBuffer:
    return FrameBuffer(
        capacity=settings.frame_count,
        base_delay=settings.frame_delay,
        min_duration=settings.min_duration,
        palette=resolve_palette(settings.frame_palette),
    )


def connect_mastodon(settings: Settings) -> MastodonClient:
    client = MastodonClient(
        settings.mastodon_server,
        access_token=settings.mastodon_access_token,
        client_id=settings.mastodon_client_id,
        client_secret=settings.mastodon_client_secret,
    )
    if not settings.mastodon_access_token:
        client.login(settings.mastodon_user_email, settings.mastodon_user_password)
    account = client.verify_credentials()
    logger.info("connected to " + settings.mastodon_server + " as " + str(account.get("acct")))
    return client


class CaptureScheduler:
    """Fetches frames on one timer and publishes the animation on another."""

    def __init__(
        self,
        settings: Settings,
        buffer: FrameBuffer | None = None,
        fetcher: Callable[..., Image.Image] = fetch_image,
        connector: Callable[[Settings], MastodonClient] = connect_mastodon,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings
        self.buffer = buffer or build_buffer(settings)
        self.position = Position(settings.frame_position)
        self.connection: ConnectionState = Disconnected()
        self.latest_animation: bytes | None = None
        self._fetcher = fetcher
        self._connector = connector
        self._clock = clock
        self._next_refresh = float("-inf")
        self._next_post = float("-inf")
        self._task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def is_connected(self) -> bool:
        return isinstance(self.connection, Connected)

    def start(self) -> None:
        if self._task is None:
            self._running = True
            self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _loop(self) -> None:
        while self._running:
            try:
                delay = await self.run_cycle()
            except Exception:
                logger.exception("Capture cycle failed")
                delay = RECONNECT_SECONDS
            await asyncio.sleep(delay)

    async def run_cycle(self) -> float:
        """Run one pass of the loop and return how long to sleep before the next."""
        if not self.settings.test_mode and isinstance(self.connection, Disconnected):
            try:
                client = await asyncio.to_thread(self._connector, self.settings)
            except PostError as exc:
                logger.error("Failed to connect to mastodon: " + str(exc))
                return RECONNECT_SECONDS
            self.connection = Connected(client)

        now = self._clock()
        if now >= self._next_refresh:
            self._next_refresh = now + self.settings.update_interval
            await self.refresh()

        if now >= self._next_post and len(self.buffer) > 0:
            self._next_post = now + self.settings.post_interval
            await self.publish()

        return POLL_SECONDS

    async def refresh(self) -> bool:
        try:
            image = await asyncio.to_thread(
                self._fetcher, self.settings.image_url, self.settings.fetch_timeout
            )
        except (FetchError, DecodeError) as exc:
            logger.error("Failed to download and parse image: " + str(exc))
            return False

        try:
            self.buffer.insert(image, self.position)
        except InvalidImageError as exc:
            logger.error("Dropped frame: " + str(exc))
            return False

        logger.info(
            "buffer holds " + str(len(self.buffer)) + " frames at " + str(self.buffer.delay) + " ticks each"
        )
        try:
            record_fetch(self.settings.state_file)
        except OSError as exc:
            logger.error("Failed to update state file: " + str(exc))
        return True

    async def publish(self) -> bool:
        try:
            payload = encode(self.buffer)
        except EncodeIOError as exc:
            logger.error(str(exc))
            return False
        self.latest_animation = payload

        if self.settings.test_mode:
            return self._save_locally(payload)

        if not isinstance(self.connection, Connected):
            logger.error("Not connected to mastodon, skipping post")
            return False

        client = self.connection.client
        try:
            await asyncio.to_thread(
                client.post_status_with_media,
                self.settings.status_text,
                BytesIO(payload),
                self.settings.mastodon_visibility,
            )
        except PostError as exc:
            logger.error(str(exc))
            self.connection = Disconnected()
            return False

        logger.info("posted " + str(len(payload)) + " byte animation")
        try:
            record_publish(self.settings.mastodon_server, self.settings.state_file)
        except OSError as exc:
            logger.error("Failed to update state file: " + str(exc))
        return True

    def _save_locally(self, payload: bytes) -> bool:
        frame = BytesIO()
        try:
            write_latest_frame(self.buffer, frame)
            path = save_animation(payload, self.settings.output_dir)
            save_latest_frame(frame.getvalue(), self.settings.output_dir)
            record_publish(str(path), self.settings.state_file)
        except (EncodeIOError, OSError) as exc:
            logger.error("Failed to save animation locally: " + str(exc))
            return False

        logger.info("wrote animation to " + str(path))
        return True
