import logging

from anistream.config import CINETARO_API_BASE, CINETARO_DEFAULT_SEASON, VIDSTREAMING_BASE_URL
from anistream.errors import ProviderSoftFailure
from anistream.fetch import fetch_json
from anistream.filters import DEFAULT_POLICY, is_allowed
from anistream.ids import slugify_title
from anistream.payloads import source_entry_url


logger = logging.getLogger(__name__)


def cinetaro_episode_url(anilist_id, episode_number, audio_type="sub", season=CINETARO_DEFAULT_SEASON):
    return f"{CINETARO_API_BASE.rstrip('/')}/anime/{anilist_id}/{season}/{episode_number}/{audio_type}"


def pick_cinetaro_url(data, policy=DEFAULT_POLICY):
    """First filter-passing source, else the top-level url/iframe if it passes."""
    if not isinstance(data, dict):
        return None
    sources = data.get("sources")
    if not (data.get("iframe") or data.get("url") or (isinstance(sources, list) and sources)):
        return None

    if isinstance(sources, list):
        for entry in sources:
            url = source_entry_url(entry)
            if is_allowed(url, policy):
                return url

    url = data.get("url") or data.get("iframe")
    if is_allowed(url, policy):
        return url
    return None


def fetch_cinetaro_stream(anilist_id, episode_number, audio_type="sub", token=None, timeout=None, policy=DEFAULT_POLICY):
    """Query Cinetaro by AniList id; raises ProviderSoftFailure when nothing usable comes back."""
    url = cinetaro_episode_url(anilist_id, episode_number, audio_type)
    data = fetch_json(url, token=token, timeout=timeout, require_json_content_type=True)
    stream_url = pick_cinetaro_url(data, policy)
    if not stream_url:
        raise ProviderSoftFailure(f"Cinetaro {audio_type} has no usable URL for {anilist_id}/{episode_number}")
    logger.debug("Cinetaro %s stream found for %s/%s", audio_type, anilist_id, episode_number)
    return stream_url


def synthesize_vidstreaming_url(media, episode_number):
    """Best-effort embed URL from the slugified title; None when no title is known."""
    titles = media.get("title") or {}
    slug = slugify_title(titles.get("english") or titles.get("romaji") or titles.get("native") or "")
    if not slug:
        return None
    return f"{VIDSTREAMING_BASE_URL.rstrip('/')}/streaming.php?id={slug}&episode={episode_number}"
