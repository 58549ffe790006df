"""Locate a playable URL inside an episode-stream payload of unknown shape.

Each probe reads one field the providers have been seen to use and returns a
filter-passing URL or None. ``PAYLOAD_PROBES`` fixes their precedence.
"""
import logging

from anistream.filters import DEFAULT_POLICY, is_allowed, looks_like_direct_video, looks_like_video_file


logger = logging.getLogger(__name__)


def source_entry_url(entry):
    if not isinstance(entry, dict):
        return None
    return entry.get("url") or entry.get("file") or entry.get("src")


def _string_field(container, key):
    if not isinstance(container, dict):
        return None
    value = container.get(key)
    if isinstance(value, str) and value:
        return value
    return None


def _allowed(url, policy):
    return url if is_allowed(url, policy) else None


def probe_sources(payload, policy=DEFAULT_POLICY):
    sources = payload.get("sources")
    if not isinstance(sources, list) or not sources:
        return None

    valid = [entry for entry in sources if is_allowed(source_entry_url(entry), policy)]
    if not valid:
        return None

    direct = next((entry for entry in valid if looks_like_direct_video(source_entry_url(entry))), None)
    if direct is not None:
        return source_entry_url(direct)

    preferred = next((entry for entry in valid if not entry.get("isM3U8")), None) or valid[0]
    return source_entry_url(preferred)


def probe_iframe(payload, policy=DEFAULT_POLICY):
    return _allowed(_string_field(payload, "iframe"), policy)


def probe_url(payload, policy=DEFAULT_POLICY):
    return _allowed(_string_field(payload, "url"), policy)


def probe_referer(payload, policy=DEFAULT_POLICY):
    return _allowed(_string_field(payload.get("headers"), "Referer"), policy)


def probe_download(payload, policy=DEFAULT_POLICY):
    return _allowed(_string_field(payload, "download"), policy)


def probe_subtitles(payload, policy=DEFAULT_POLICY):
    # Some providers put the video URL in the subtitle track list by mistake.
    subtitles = payload.get("subtitles")
    if not isinstance(subtitles, list):
        return None
    for track in subtitles:
        url = _string_field(track, "url")
        if url and "http" in url and is_allowed(url, policy):
            return url if looks_like_video_file(url) else None
    return None


def probe_links(payload, policy=DEFAULT_POLICY):
    links = payload.get("links")
    if not isinstance(links, list):
        return None
    for link in links:
        url = _string_field(link, "url")
        if url and url.startswith("http") and is_allowed(url, policy):
            return url
    return None


def probe_data_url(payload, policy=DEFAULT_POLICY):
    return _allowed(_string_field(payload.get("data"), "url"), policy)


def probe_result_url(payload, policy=DEFAULT_POLICY):
    return _allowed(_string_field(payload.get("result"), "url"), policy)


PAYLOAD_PROBES = (
    ("sources", probe_sources),
    ("iframe", probe_iframe),
    ("url", probe_url),
    ("headers.Referer", probe_referer),
    ("download", probe_download),
    ("subtitles", probe_subtitles),
    ("links", probe_links),
    ("data.url", probe_data_url),
    ("result.url", probe_result_url),
)


def classify_payload(payload):
    """Tag the payload with the known shape it resembles."""
    if not isinstance(payload, dict):
        return "unknown"
    if isinstance(payload.get("sources"), list) and payload["sources"]:
        return "sources"
    if any(_string_field(payload, key) for key in ("iframe", "url", "download")):
        return "embed"
    if isinstance(payload.get("headers"), dict) and payload["headers"].get("Referer"):
        return "embed"
    if isinstance(payload.get("links"), list) or isinstance(payload.get("subtitles"), list):
        return "links"
    if isinstance(payload.get("data"), dict) or isinstance(payload.get("result"), dict):
        return "wrapped"
    return "unknown"


def extract_with_probe(payload, policy=DEFAULT_POLICY):
    """Return ``(probe_name, url)`` for the first probe that yields a URL."""
    if not isinstance(payload, dict):
        return None, None

    for name, probe in PAYLOAD_PROBES:
        candidate = probe(payload, policy)
        if not candidate:
            continue
        # Re-check the final answer against the filter before handing it out.
        if is_allowed(candidate, policy):
            return name, candidate
        logger.debug("Probe %s produced a URL the filter now rejects", name)
    return None, None


def extract_stream_url(payload, policy=DEFAULT_POLICY):
    _, url = extract_with_probe(payload, policy)
    return url
