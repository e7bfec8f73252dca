"""Video metadata and native caption retrieval via yt-dlp."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import httpx
import yt_dlp
from yt_dlp.utils import DownloadError as YtDlpDownloadError
from yt_dlp.utils import ExtractorError

from extraction_worker.errors import VideoNotFoundError

logger = logging.getLogger(__name__)

YdlFactory = Callable[[dict[str, Any]], Any]

_CUE_TIMING = re.compile(r"^(?:\d{2}:)?\d{2}:\d{2}\.\d{3}\s*-->")
_INLINE_TIMESTAMP = re.compile(r"<\d{2}:\d{2}:\d{2}\.\d{3}>")
_C_TAG = re.compile(r"</?c(?:\.[\w.]+)?>")
_CUE_SETTINGS = re.compile(r"align:.*position:.*%")
_WS = re.compile(r"\s+")

# Caption formats in order of preference
_FORMAT_PREFERENCE = ("vtt", "srv3", "srv1", "ttml", "json3")


def watch_url(video_id: str) -> str:
    if video_id.startswith(("http://", "https://")):
        return video_id
    return f"https://www.youtube.com/watch?v={video_id}"


def ydl_base_options(proxy_url: str | None = None) -> dict[str, Any]:
    opts: dict[str, Any] = {
        "quiet": True,
        "no_warnings": True,
        "noprogress": True,
        "noplaylist": True,
        "geo_bypass": True,
        "nocheckcertificate": True,
    }
    if proxy_url:
        opts["proxy"] = proxy_url
    return opts


class VttCaptionParser:
    """WebVTT -> one line of plain transcript text."""

    def can_parse(self, content: str) -> bool:
        return (
            content.strip().startswith("WEBVTT")
            or "-->" in content
            or "kind: captions" in content.lower()
        )

    def parse(self, content: str) -> str:
        lines: list[str] = []
        for raw in content.splitlines():
            line = _INLINE_TIMESTAMP.sub("", raw)
            line = _C_TAG.sub("", line)
            line = _CUE_SETTINGS.sub("", line)
            if line.startswith(("WEBVTT", "Kind:", "Language:")):
                continue
            if _CUE_TIMING.match(line):
                continue
            line = line.strip()
            if not line or line.isdigit():
                continue
            # Rolling auto-captions repeat the previous cue's line
            if lines and lines[-1] == line:
                continue
            lines.append(line)
        return _WS.sub(" ", " ".join(lines)).strip()


@dataclass(frozen=True)
class VideoMetadata:
    video_id: str
    title: str
    author: str
    duration: float | None = None


@dataclass(frozen=True)
class CaptionTrack:
    language: str
    url: str
    ext: str
    automatic: bool


def _pick_format(formats: list[Mapping[str, Any]]) -> Mapping[str, Any] | None:
    usable = [f for f in formats if f.get("url")]
    for ext in _FORMAT_PREFERENCE:
        for f in usable:
            if f.get("ext") == ext:
                return f
    return usable[0] if usable else None


def select_caption_track(info: Mapping[str, Any], language: str) -> CaptionTrack | None:
    """Preferred language first, then any language; manual before automatic."""
    manual = info.get("subtitles") or {}
    automatic = info.get("automatic_captions") or {}

    def matches(lang: str) -> bool:
        return lang == language or lang.startswith(f"{language}-")

    for want_preferred in (True, False):
        for is_auto, tracks in ((False, manual), (True, automatic)):
            for lang, formats in tracks.items():
                if lang == "live_chat" or (want_preferred and not matches(lang)):
                    continue
                fmt = _pick_format(formats or [])
                if fmt is not None:
                    return CaptionTrack(
                        language=lang,
                        url=str(fmt["url"]),
                        ext=str(fmt.get("ext") or ""),
                        automatic=is_auto,
                    )
    return None


class CaptionFetcher:
    def __init__(
        self,
        *,
        language: str = "en",
        proxy_url: str | None = None,
        timeout_s: float = 30.0,
        ydl_factory: YdlFactory = yt_dlp.YoutubeDL,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._language = language
        self._proxy_url = proxy_url
        self._timeout = timeout_s
        self._ydl_factory = ydl_factory
        self._http = http_client
        self._parser = VttCaptionParser()

    def fetch_info(self, video_id: str) -> dict[str, Any]:
        opts = {**ydl_base_options(self._proxy_url), "skip_download": True}
        try:
            with self._ydl_factory(opts) as ydl:
                info = ydl.extract_info(watch_url(video_id), download=False)
        except (YtDlpDownloadError, ExtractorError) as e:
            raise VideoNotFoundError(video_id, str(e)) from e
        if not info:
            raise VideoNotFoundError(video_id, "no metadata returned")
        return dict(info)

    def metadata(self, info: Mapping[str, Any], video_id: str) -> VideoMetadata:
        return VideoMetadata(
            video_id=str(info.get("id") or video_id),
            title=str(info.get("title") or f"YouTube Video: {video_id}"),
            author=str(info.get("uploader") or info.get("channel") or "Unknown"),
            duration=info.get("duration"),
        )

    def _get(self, url: str) -> str:
        if self._http is not None:
            resp = self._http.get(url)
        else:
            with httpx.Client(timeout=self._timeout, proxy=self._proxy_url, follow_redirects=True) as client:
                resp = client.get(url)
        resp.raise_for_status()
        return resp.text

    def captions(self, info: Mapping[str, Any]) -> str | None:
        track = select_caption_track(info, self._language)
        if track is None:
            return None
        try:
            content = self._get(track.url)
        except httpx.HTTPError as e:
            logger.warning("Caption download failed lang=%s auto=%s: %s", track.language, track.automatic, e)
            return None
        if not self._parser.can_parse(content):
            logger.warning("Caption track lang=%s (%s) is not WebVTT; ignoring", track.language, track.ext)
            return None
        text = self._parser.parse(content)
        logger.info("Captions lang=%s auto=%s chars=%d", track.language, track.automatic, len(text))
        return text or None

    def fetch(self, video_id: str) -> tuple[VideoMetadata, str | None]:
        info = self.fetch_info(video_id)
        return self.metadata(info, video_id), self.captions(info)
