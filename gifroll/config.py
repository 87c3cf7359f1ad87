from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import ParseResult, urlparse

from .errors import ConfigError
from .frame_buffer import MAX_DELAY_TICKS, TICKS_PER_SECOND

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = BASE_DIR / "data"
OUTPUT_DIR = DATA_DIR / "output"
STATE_FILE = DATA_DIR / "state.json"

DEFAULT_UPDATE_INTERVAL = 300
DEFAULT_POST_INTERVAL = 3600
DEFAULT_FRAME_COUNT = 10
DEFAULT_FRAME_DELAY = 50
DEFAULT_MIN_DURATION = 5
DEFAULT_FETCH_TIMEOUT = 30
DEFAULT_STATUS_TEXT = "A gif, just for you."

SUPPORTED_SCHEMES = {"http", "https", "ftp"}
VISIBILITIES = {"public", "unlisted", "private", "direct"}
POSITIONS = {"start", "end"}
PALETTES = {"plan9", "websafe", "adaptive"}

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    image_url: ParseResult
    update_interval: int = DEFAULT_UPDATE_INTERVAL
    post_interval: int = DEFAULT_POST_INTERVAL
    frame_count: int = DEFAULT_FRAME_COUNT
    frame_delay: int = DEFAULT_FRAME_DELAY
    min_duration: int = DEFAULT_MIN_DURATION
    frame_position: str = "start"
    frame_palette: str = "plan9"
    fetch_timeout: int = DEFAULT_FETCH_TIMEOUT
    test_mode: bool = False
    output_dir: Path = OUTPUT_DIR
    state_file: Path = STATE_FILE
    mastodon_server: str = ""
    mastodon_access_token: str = ""
    mastodon_client_id: str = ""
    mastodon_client_secret: str = ""
    mastodon_user_email: str = ""
    mastodon_user_password: str = ""
    mastodon_visibility: str = "public"
    status_text: str = DEFAULT_STATUS_TEXT
    log_level: str = "INFO"


def parse_image_url(raw: str) -> ParseResult:
    if not raw:
        raise ConfigError("IMAGE_URL is not set")
    try:
        parsed = urlparse(raw)
        # Port parsing is lazy; an out-of-range or non-numeric port raises here.
        parsed.port
    except ValueError as exc:
        raise ConfigError(f"Failed to parse image URL: {exc}") from exc
    if parsed.scheme not in SUPPORTED_SCHEMES:
        raise ConfigError(f"Unrecognised URL scheme: {parsed.scheme!r}")
    if not parsed.netloc:
        raise ConfigError(f"Image URL has no host: {raw!r}")
    return parsed


def _int(
    environ: Mapping[str, str],
    key: str,
    default: int,
    minimum: int = 0,
    maximum: int | None = None,
) -> int:
    raw = environ.get(key, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise ConfigError(f"{key} must be at least {minimum}, got {value}")
    if maximum is not None and value > maximum:
        raise ConfigError(f"{key} must be at most {maximum}, got {value}")
    return value


def _choice(environ: Mapping[str, str], key: str, default: str, allowed: set[str]) -> str:
    value = environ.get(key, "").strip().lower() or default
    if value not in allowed:
        raise ConfigError(f"{key} must be one of {sorted(allowed)}, got {value!r}")
    return value


def _path(environ: Mapping[str, str], key: str, default: Path) -> Path:
    raw = environ.get(key, "").strip()
    if not raw:
        return default
    p = Path(raw).expanduser()
    return p if p.is_absolute() else (BASE_DIR / p)


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build the runtime settings from environment variables.

    Any invalid value raises ``ConfigError``; the service refuses to start
    rather than running with a half-understood configuration.
    """
    env = os.environ if environ is None else environ

    test_mode = env.get("TEST_MODE", "").strip().lower() in _TRUE_VALUES
    server = env.get("MASTODON_SERVER", "").strip().rstrip("/")
    if not test_mode and not server:
        raise ConfigError("MASTODON_SERVER is required unless TEST_MODE is enabled")

    return Settings(
        image_url=parse_image_url(env.get("IMAGE_URL", "").strip()),
        update_interval=_int(env, "IMAGE_UPDATE_INTERVAL", DEFAULT_UPDATE_INTERVAL, minimum=1),
        post_interval=_int(env, "POST_INTERVAL", DEFAULT_POST_INTERVAL),
        frame_count=_int(env, "IMAGE_FRAME_COUNT", DEFAULT_FRAME_COUNT, minimum=1),
        frame_delay=_int(env, "IMAGE_FRAME_DELAY", DEFAULT_FRAME_DELAY, maximum=MAX_DELAY_TICKS),
        min_duration=_int(
            env,
            "IMAGE_MIN_DURATION",
            DEFAULT_MIN_DURATION,
            maximum=MAX_DELAY_TICKS // TICKS_PER_SECOND,
        ),
        frame_position=_choice(env, "FRAME_POSITION", "start", POSITIONS),
        frame_palette=_choice(env, "FRAME_PALETTE", "plan9", PALETTES),
        fetch_timeout=_int(env, "FETCH_TIMEOUT", DEFAULT_FETCH_TIMEOUT, minimum=1),
        test_mode=test_mode,
        output_dir=_path(env, "OUTPUT_DIR", OUTPUT_DIR),
        state_file=_path(env, "STATE_FILE", STATE_FILE),
        mastodon_server=server,
        mastodon_access_token=env.get("MASTODON_ACCESS_TOKEN", "").strip(),
        mastodon_client_id=env.get("MASTODON_CLIENT_ID", "").strip(),
        mastodon_client_secret=env.get("MASTODON_CLIENT_SECRET", "").strip(),
        mastodon_user_email=env.get("MASTODON_USER_EMAIL", "").strip(),
        mastodon_user_password=env.get("MASTODON_USER_PASSWORD", ""),
        mastodon_visibility=_choice(env, "MASTODON_VISIBILITY", "public", VISIBILITIES),
        status_text=env.get("STATUS_TEXT", "") or DEFAULT_STATUS_TEXT,
        log_level=env.get("LOG_LEVEL", "").strip().upper() or "INFO",
    )
