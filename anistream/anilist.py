import logging
import re

from anistream.cache import ttl_cache
from anistream.config import ANILIST_API_URL, METADATA_CACHE_MAXSIZE, METADATA_CACHE_TTL
from anistream.errors import ProviderSoftFailure
from anistream.fetch import fetch_json


logger = logging.getLogger(__name__)

MEDIA_BY_ID_QUERY = """
query ($id: Int) {
  Media(id: $id, type: ANIME) {
    id
    idMal
    title { romaji english native }
    description
    coverImage { large extraLarge }
    bannerImage
    startDate { year month day }
    endDate { year }
    status
    format
    episodes
    genres
    averageScore
    popularity
    studios { nodes { name } }
  }
}
"""


@ttl_cache(ttl_seconds=METADATA_CACHE_TTL, maxsize=METADATA_CACHE_MAXSIZE)
def _fetch_media(anilist_id, timeout=None):
    payload = {"query": MEDIA_BY_ID_QUERY, "variables": {"id": anilist_id}}
    try:
        data = fetch_json(ANILIST_API_URL, method="POST", payload=payload, timeout=timeout)
    except ProviderSoftFailure as exc:
        logger.debug("AniList lookup failed for %s: %s", anilist_id, exc)
        return None

    media = (data.get("data") or {}).get("Media") if isinstance(data, dict) else None
    if not isinstance(media, dict) or not isinstance(media.get("title"), dict):
        return None
    return media


def get_anime_metadata(anime_id, token=None, timeout=None):
    """Fetch AniList media for a numeric id; None when missing or malformed.

    Results are cached for an hour, failures are not.
    """
    try:
        anilist_id = int(str(anime_id).strip())
    except (TypeError, ValueError):
        return None

    if token is not None:
        token.raise_if_cancelled()
    media = _fetch_media(anilist_id, timeout=timeout)
    if token is not None:
        token.raise_if_cancelled()
    return media


def total_episodes(media):
    try:
        return int(media.get("episodes") or 0)
    except (TypeError, ValueError):
        return 0


def display_title(media):
    titles = media.get("title") or {}
    return titles.get("english") or titles.get("romaji") or titles.get("native") or ""


def strip_html(text):
    return re.sub(r"<[^>]*>", "", str(text or ""))


def build_anime_detail(media):
    """Shape AniList media the way the watch page expects anime details."""
    media_id = media.get("id")
    cover = media.get("coverImage") or {}
    image = cover.get("extraLarge") or cover.get("large") or media.get("bannerImage") or ""
    episode_count = total_episodes(media)
    score = media.get("averageScore")
    start_year = (media.get("startDate") or {}).get("year")
    studios = ((media.get("studios") or {}).get("nodes")) or []

    return {
        "id": str(media_id),
        "title": display_title(media),
        "image": image,
        "description": strip_html(media.get("description")),
        "releaseDate": str(start_year) if start_year else "",
        "status": media.get("status") or "RELEASING",
        "type": media.get("format") or "TV",
        "totalEpisodes": episode_count,
        "genres": media.get("genres") or [],
        "rating": f"{score / 10:.1f}" if score else "0",
        "popularity": media.get("popularity") or 0,
        "studios": [studio.get("name") for studio in studios if isinstance(studio, dict)],
        "episodes": [
            {
                "id": f"{media_id}-{number}",
                "number": number,
                "title": f"Episode {number}",
                "image": cover.get("large") or "",
                "description": "",
            }
            for number in range(1, episode_count + 1)
        ],
    }
