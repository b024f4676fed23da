#!/usr/bin/env python3
"""
Catalog module for the Watch Party server.

Loads show entries from catalog.yaml and seeds them into the database:
- Movies become one show with a single video
- Series become one show with a group per season and a video per episode

Media URLs are derived from titles so the files under media/ can be
laid out without touching the database.
"""

import logging
import re
from datetime import date, datetime
from pathlib import Path
from typing import Optional

import yaml

from . import database as db

PROJECT_ROOT = Path(__file__).parent.parent
CATALOG_FILE = PROJECT_ROOT / "catalog.yaml"

DEFAULT_MEDIA_BASE_URL = "/media"

logger = logging.getLogger(__name__)

# Show columns taken straight from a catalog entry
SHOW_FIELDS = (
    "title", "title_type", "synopsis", "language", "air_start",
    "air_end", "preview_image", "age_rating",
)


# ============================================
# HELPERS
# ============================================

def duration_in_seconds(readable) -> int:
    """
    Convert a readable duration into seconds.

    Examples:
        "1:53:52" -> 6832
        "23:42"   -> 1422
        "95"      -> 95
    """
    if isinstance(readable, (int, float)):
        if readable < 0:
            raise ValueError(f"Negative duration: {readable}")
        return int(readable)

    parts = str(readable).strip().split(":")
    if not 1 <= len(parts) <= 3 or not all(p.isdigit() for p in parts):
        raise ValueError(f"Invalid duration: {readable!r}")

    seconds = 0
    for part in parts:
        seconds = seconds * 60 + int(part)
    return seconds


def slugify(title: str) -> str:
    """Lowercase a title and collapse everything that isn't a letter or digit into '-'."""
    slug = re.sub(r"[^a-z0-9]+", "-", title.lower().replace("'", ""))
    return slug.strip("-")


def preview_url(title: str, base_url: str = DEFAULT_MEDIA_BASE_URL) -> str:
    return f"{base_url}/previews/{slugify(title)}.jpg"


def movie_video_url(title: str, extension: str, base_url: str = DEFAULT_MEDIA_BASE_URL) -> str:
    return f"{base_url}/movies/{slugify(title)}.{extension}"


def movie_subtitle_url(title: str, language: str, base_url: str = DEFAULT_MEDIA_BASE_URL) -> str:
    return f"{base_url}/subtitles/{slugify(title)}.{language}.vtt"


def episode_path(title: str, season: int, episode: int, base_url: str = DEFAULT_MEDIA_BASE_URL) -> str:
    return f"{base_url}/series/{slugify(title)}/s{season:02d}e{episode:02d}"


def episode_video_url(title: str, season: int, episode: int, extension: str,
                      base_url: str = DEFAULT_MEDIA_BASE_URL) -> str:
    return f"{episode_path(title, season, episode, base_url)}.{extension}"


def episode_subtitle_url(title: str, season: int, episode: int, language: str,
                         base_url: str = DEFAULT_MEDIA_BASE_URL) -> str:
    return f"{episode_path(title, season, episode, base_url)}.{language}.vtt"


def _as_date_string(value) -> Optional[str]:
    """Normalize a YAML date/year into an ISO date string."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, int):
        return date(value, 1, 1).isoformat()
    return str(value)


def video_details(video: dict) -> str:
    """
    Short description of a video for player titles.

    Episodes read "<season>: <episode>", movies show the air year.
    """
    group = video.get("group")
    if group:
        return f"{group['title']}: {video.get('title', '')}"

    show = video.get("show") or {}
    air_start = show.get("air_start") or ""
    return air_start[:4]


def video_preview_image(video: dict) -> str:
    show = video.get("show") or {}
    return show.get("preview_image") or ""


# ============================================
# LOADING & SEEDING
# ============================================

def load_catalog(path: Optional[Path] = None) -> list[dict]:
    """Load show entries from a catalog YAML file."""
    path = Path(path or CATALOG_FILE)
    if not path.exists():
        logger.warning(f"Catalog file not found: {path}")
        return []

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    entries = data.get("shows", [])
    logger.info(f"Loaded {len(entries)} catalog entries from {path.name}")
    return entries


def _show_fields(entry: dict, base_url: str) -> dict:
    fields = {k: entry[k] for k in SHOW_FIELDS if k in entry}
    fields["air_start"] = _as_date_string(entry.get("air_start"))
    fields["air_end"] = _as_date_string(entry.get("air_end"))
    fields.setdefault("synopsis", "")
    fields.setdefault("language", "")
    fields.setdefault("age_rating", "")
    if not fields.get("preview_image"):
        fields["preview_image"] = preview_url(entry["title"], base_url)
    return fields


def seed_movie(entry: dict, base_url: str = DEFAULT_MEDIA_BASE_URL) -> int:
    """Create a movie show and its single video. Returns the show ID."""
    show_id = db.create_show(**_show_fields(entry, base_url))

    subtitle_url = entry.get("subtitle_url") or ""
    if not subtitle_url and entry.get("subtitle_language"):
        subtitle_url = movie_subtitle_url(entry["title"], entry["subtitle_language"], base_url)

    db.create_show_video(
        show_id=show_id,
        show_group_id=None,
        title=entry["title"],
        video_url=movie_video_url(entry["title"], entry.get("extension", "mp4"), base_url),
        subtitle_url=subtitle_url,
        duration=duration_in_seconds(entry.get("duration", 0)),
        synopsis=entry.get("synopsis", ""),
    )
    return show_id


def seed_series(entry: dict, base_url: str = DEFAULT_MEDIA_BASE_URL) -> int:
    """Create a series show with a group per season and a video per episode."""
    show_id = db.create_show(**_show_fields(entry, base_url))
    title = entry["title"]

    for i, season in enumerate(entry.get("seasons", []), start=1):
        group_id = db.create_show_group(show_id, season.get("title") or f"Season {i}")
        duration = duration_in_seconds(season.get("duration", 0))
        extension = season.get("extension", "mp4")
        language = season.get("subtitle_language")

        for j in range(1, int(season.get("episodes", 0)) + 1):
            db.create_show_video(
                show_id=show_id,
                show_group_id=group_id,
                title=f"Episode {j}",
                video_url=episode_video_url(title, i, j, extension, base_url),
                subtitle_url=episode_subtitle_url(title, i, j, language, base_url) if language else "",
                duration=duration,
                synopsis="",
            )

    return show_id


def seed_catalog(entries: list[dict], base_url: str = DEFAULT_MEDIA_BASE_URL) -> dict:
    """
    Replace the catalog with the given entries.

    Returns:
        Dict with counts of shows and videos created
    """
    db.clear_catalog()

    shows = 0
    for entry in entries:
        if entry.get("title_type", "movie") == "movie":
            seed_movie(entry, base_url)
        else:
            seed_series(entry, base_url)
        shows += 1

    counts = db.get_catalog_counts()
    logger.info(f"Catalog seeded: {shows} shows, {counts['videos']} videos")
    return {"shows": shows, "videos": counts["videos"]}


def media_directories(entries: list[dict]) -> list[str]:
    """Relative media directories needed to hold the catalog's files."""
    dirs = {"previews", "movies", "subtitles"}
    for entry in entries:
        if entry.get("title_type") == "series":
            dirs.add(f"series/{slugify(entry['title'])}")
    return sorted(dirs)


# ============================================
# SERIALIZATION
# ============================================

def show_with_videos(show: dict) -> dict:
    """Show with its groups and videos nested (movies get a single `video`)."""
    result = dict(show)
    if show["title_type"] == "movie":
        videos = db.get_show_videos(show["id"])
        result["video"] = videos[0] if videos else None
        result["groups"] = []
        return result

    result["groups"] = [
        {**group, "videos": db.get_show_videos(show["id"], group["id"])}
        for group in db.get_show_groups(show["id"])
    ]
    return result


def video_with_show(video: dict) -> dict:
    """Video with its show and group nested."""
    result = dict(video)
    result["show"] = db.get_show_by_id(video["show_id"])
    result["group"] = db.get_group_by_id(video["show_group_id"]) if video.get("show_group_id") else None
    return result
