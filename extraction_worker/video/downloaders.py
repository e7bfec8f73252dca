"""Ordered chain of media download strategies.

Strategies are injected into the chain by name at construction time; the
chain tries them in the configured order and stops at the first success.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import yt_dlp

from extraction_worker.errors import DownloadError
from extraction_worker.video.captions import YdlFactory, watch_url, ydl_base_options

logger = logging.getLogger(__name__)


class MediaDownloader(Protocol):
    name: str

    def download(self, video_id: str, out_dir: str) -> str: ...


@dataclass(frozen=True)
class DownloadResult:
    path: str
    strategy: str


class _YtDlpDownloader:
    name = ""
    format_selector = "best"

    def __init__(self, *, proxy_url: str | None = None, ydl_factory: YdlFactory = yt_dlp.YoutubeDL) -> None:
        self._proxy_url = proxy_url
        self._ydl_factory = ydl_factory

    def options(self, video_id: str, out_dir: str) -> dict[str, Any]:
        return {
            **ydl_base_options(self._proxy_url),
            "format": self.format_selector,
            "outtmpl": os.path.join(out_dir, f"{video_id}.%(ext)s"),
            "overwrites": True,
        }

    def download(self, video_id: str, out_dir: str) -> str:
        os.makedirs(out_dir, exist_ok=True)
        with self._ydl_factory(self.options(video_id, out_dir)) as ydl:
            info = ydl.extract_info(watch_url(video_id), download=True)
            if info is None:
                raise RuntimeError(f"yt-dlp returned no info for {video_id}")
            downloads = info.get("requested_downloads") or []
            if downloads:
                path = downloads[0].get("filepath") or downloads[0].get("_filename")
            else:
                path = ydl.prepare_filename(info)
        if not path or not os.path.exists(path):
            raise RuntimeError(f"yt-dlp reported success but no file was written for {video_id}")
        return str(path)


class YtDlpAudioDownloader(_YtDlpDownloader):
    name = "yt-dlp-audio"
    format_selector = "bestaudio[ext=m4a]/bestaudio/best"


class YtDlpFallbackDownloader(_YtDlpDownloader):
    """Muxed audio+video stream, for videos without a separate audio format."""

    name = "yt-dlp-fallback"
    format_selector = "best[acodec!=none]/best"


class MediaDownloaderChain:
    def __init__(self, downloaders: Mapping[str, MediaDownloader], order: Sequence[str]) -> None:
        unknown = [n for n in order if n not in downloaders]
        if unknown:
            raise ValueError(f"Unknown downloader strategy: {', '.join(unknown)}")
        self._downloaders = dict(downloaders)
        self._order = list(order)

    def download(self, video_id: str, out_dir: str) -> DownloadResult:
        failures: dict[str, str] = {}
        for name in self._order:
            try:
                path = self._downloaders[name].download(video_id, out_dir)
            except Exception as e:
                logger.warning("Downloader %s failed for %s: %s", name, video_id, e)
                failures[name] = f"{type(e).__name__}: {e}"
                continue
            logger.info("Downloader %s fetched %s -> %s", name, video_id, path)
            return DownloadResult(path=path, strategy=name)
        raise DownloadError(video_id, failures)


def default_downloaders(proxy_url: str | None = None) -> dict[str, MediaDownloader]:
    return {
        d.name: d
        for d in (
            YtDlpAudioDownloader(proxy_url=proxy_url),
            YtDlpFallbackDownloader(proxy_url=proxy_url),
        )
    }
