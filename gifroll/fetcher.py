from __future__ import annotations

import ftplib
import logging
from io import BytesIO
from urllib.parse import ParseResult, urlparse

import requests
from PIL import Image

from .config import DEFAULT_FETCH_TIMEOUT
from .errors import DecodeError, FetchError

logger = logging.getLogger(__name__)

FTP_PORT = 21
FTP_TIMEOUT = 5
FTP_USER = "anonymous"
FTP_PASSWORD = "anonymous"


def _download_http(url: ParseResult, timeout: float) -> bytes:
    try:
        resp = requests.get(url.geturl(), timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as exc:
        raise FetchError(f"HTTP download of {url.geturl()} failed: {exc}") from exc
    return resp.content


def _download_ftp(url: ParseResult) -> bytes:
    buf = BytesIO()
    try:
        ftp = ftplib.FTP(timeout=FTP_TIMEOUT)
        ftp.connect(url.hostname or "", url.port or FTP_PORT)
        try:
            ftp.login(url.username or FTP_USER, url.password or FTP_PASSWORD)
            ftp.retrbinary("RETR " + url.path, buf.write)
            ftp.quit()
        except ftplib.all_errors:
            ftp.close()
            raise
    except ftplib.all_errors as exc:
        raise FetchError(f"FTP download of {url.geturl()} failed: {exc}") from exc
    return buf.getvalue()


def decode_image(payload: bytes) -> Image.Image:
    """Decode ``payload`` with Pillow; animated sources yield their first frame."""
    try:
        with Image.open(BytesIO(payload)) as im:
            im.load()
            return im.copy()
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise DecodeError(f"failed to decode image: {exc}") from exc


def fetch_image(url: ParseResult | str, timeout: float = DEFAULT_FETCH_TIMEOUT) -> Image.Image:
    if isinstance(url, str):
        url = urlparse(url)

    if url.scheme == "ftp":
        payload = _download_ftp(url)
    elif url.scheme in ("http", "https"):
        payload = _download_http(url, timeout)
    else:
        raise FetchError(f"Unrecognised URL scheme: {url.scheme!r}")

    logger.info("downloaded " + str(len(payload)) + " bytes from " + url.geturl())
    return decode_image(payload)
