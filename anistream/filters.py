import re

from anistream.config import DEFAULT_DENYLIST


DIRECT_VIDEO_PATTERN = re.compile(r"\.(mp4|webm|ogg|m3u8|mkv|avi|flv|mov|wmv)(\?|$)", re.IGNORECASE)
VIDEO_FILE_PATTERN = re.compile(r"\.(mp4|webm|m3u8)", re.IGNORECASE)
DIRECT_VIDEO_MARKERS = ("video", "stream", "cdn")


class DenylistPolicy:
    """Immutable set of domain fragments that refuse iframe embedding.

    Matching is substring containment on the lowercased URL, so CDN mirrors and
    query parameters carrying a blocked host are rejected too.
    """

    __slots__ = ("_fragments",)

    def __init__(self, fragments=DEFAULT_DENYLIST):
        cleaned = []
        for fragment in fragments or ():
            token = str(fragment or "").strip().lower()
            if token and token not in cleaned:
                cleaned.append(token)
        object.__setattr__(self, "_fragments", tuple(cleaned))

    def __setattr__(self, name, value):
        raise AttributeError("DenylistPolicy is immutable")

    @property
    def fragments(self):
        return self._fragments

    def extended(self, extra_fragments):
        return DenylistPolicy(self._fragments + tuple(extra_fragments or ()))

    def matches(self, url):
        lowered = str(url or "").lower()
        return any(fragment in lowered for fragment in self._fragments)

    def __eq__(self, other):
        if not isinstance(other, DenylistPolicy):
            return NotImplemented
        return set(self._fragments) == set(other._fragments)

    def __hash__(self):
        return hash(frozenset(self._fragments))

    def __repr__(self):
        return f"DenylistPolicy({list(self._fragments)!r})"


DEFAULT_POLICY = DenylistPolicy()


def is_allowed(url, policy=DEFAULT_POLICY):
    """Return True when ``url`` is an http(s) URL that no denylist fragment matches."""
    if not url or not isinstance(url, str):
        return False
    if not url.startswith(("http://", "https://")):
        return False
    if policy.matches(url):
        return False
    return True


def looks_like_direct_video(url):
    """Heuristic for raw media URLs, which never trip frame-embedding denial."""
    if not url or not isinstance(url, str):
        return False
    if DIRECT_VIDEO_PATTERN.search(url):
        return True
    return any(marker in url for marker in DIRECT_VIDEO_MARKERS)


def looks_like_video_file(url):
    if not url or not isinstance(url, str):
        return False
    return VIDEO_FILE_PATTERN.search(url) is not None


def is_local_media_url(url):
    return isinstance(url, str) and url.startswith(("blob:", "data:"))
