"""Client-edge playback decisions.

The server already filtered its answer, but the client is a separate
deployment, so the domain filter is applied again here before a URL reaches
either the native player or an iframe.
"""
import json
import logging
import os
import time
from threading import RLock

from anistream.config import PROGRESS_SAVE_INTERVAL
from anistream.errors import BlockedSource
from anistream.filters import DEFAULT_POLICY, is_allowed, is_local_media_url, looks_like_direct_video


logger = logging.getLogger(__name__)

LOADING = "LOADING"
PLAYABLE_DIRECT = "PLAYABLE_DIRECT"
PLAYABLE_EMBED = "PLAYABLE_EMBED"
BLOCKED = "BLOCKED"
UNAVAILABLE = "UNAVAILABLE"

TERMINAL_STATES = {BLOCKED, UNAVAILABLE}

EMBED_REJECTION_MARKERS = ("x-frame-options", "refused to display", "frame-ancestors")
# Providers known to answer embeds with a frame-denying redirect.
EMBED_REJECTING_HOSTS = ("familynonstop",)

IFRAME_ALLOW = "accelerometer; autoplay; clipboard-write; encrypted-media; gyroscope; picture-in-picture"
IFRAME_SANDBOX = "allow-scripts allow-same-origin allow-presentation"

BLOCKED_MESSAGE = "Video source is not available. The streaming provider blocks embedding. Please try a different episode."
UNAVAILABLE_MESSAGE = "Episode found but video streaming is not available yet."


def _decision(state, url="", message="", **extra):
    decision = {"state": state, "url": url, "message": message}
    decision.update(extra)
    return decision


def loading_decision():
    return _decision(LOADING)


def unavailable_decision(message=UNAVAILABLE_MESSAGE):
    return _decision(UNAVAILABLE, message=message)


def choose_playback_url(episode_data, policy=DEFAULT_POLICY):
    """Pick the URL to play from an episode response, or '' when none survives filtering."""
    sources = episode_data.get("sources")
    if not isinstance(sources, list):
        sources = []
    valid = [
        source
        for source in sources
        if isinstance(source, dict) and (is_allowed(source.get("url"), policy) or is_local_media_url(source.get("url")))
    ]
    if valid:
        direct = next((source for source in valid if looks_like_direct_video(source.get("url"))), None)
        if direct is not None:
            return direct["url"]
        best = next((source for source in valid if not source.get("isM3U8")), None) or valid[0]
        return best["url"]

    iframe = episode_data.get("iframe")
    if is_allowed(iframe, policy) or is_local_media_url(iframe):
        return iframe
    return ""


def classify_url(url, policy=DEFAULT_POLICY):
    if is_local_media_url(url):
        return PLAYABLE_DIRECT
    if not is_allowed(url, policy):
        return BLOCKED
    if looks_like_direct_video(url):
        return PLAYABLE_DIRECT
    return PLAYABLE_EMBED


def select_playback(episode_data, policy=DEFAULT_POLICY):
    """Map the resolver's episode body to a player decision."""
    if not isinstance(episode_data, dict):
        return unavailable_decision()
    if episode_data.get("error"):
        return unavailable_decision(str(episode_data["error"]))

    if not episode_data.get("sources") and not episode_data.get("iframe"):
        return unavailable_decision()

    url = choose_playback_url(episode_data, policy)
    if not url:
        return _decision(BLOCKED, message=BLOCKED_MESSAGE)

    state = classify_url(url, policy)
    title = episode_data.get("episodeTitle") or episode_data.get("title") or ""
    if state == PLAYABLE_DIRECT:
        return _decision(state, url=url, episodeTitle=title, controls=["seek", "volume", "rate"])
    if state == PLAYABLE_EMBED:
        return _decision(state, url=url, episodeTitle=title, sandbox=IFRAME_SANDBOX, allow=IFRAME_ALLOW)
    return _decision(BLOCKED, url=url, message=BLOCKED_MESSAGE)


def detect_embed_rejection(message=None, content_window_accessible=True):
    if not content_window_accessible:
        return True
    text = str(message or "").lower()
    if not text:
        return False
    return any(marker in text for marker in EMBED_REJECTION_MARKERS + EMBED_REJECTING_HOSTS)


def apply_embed_signal(decision, message=None, content_window_accessible=True):
    """Transition an embed decision to BLOCKED once the frame reports rejection."""
    if decision.get("state") != PLAYABLE_EMBED:
        return decision
    if not detect_embed_rejection(message, content_window_accessible):
        return decision
    logger.info("Embed rejected for %s", decision.get("url"))
    return _decision(BLOCKED, url=decision.get("url", ""), message="This video source doesn't allow embedding.")


def require_playable(decision):
    if decision.get("state") == BLOCKED:
        raise BlockedSource(decision.get("url"), decision.get("message"))
    return decision


def progress_key(anime_id, episode_id):
    return f"progress-{anime_id}-{episode_id}"


class ProgressStore:
    """Watch progress in whole seconds, optionally mirrored to a JSON file."""

    def __init__(self, path=None):
        self.path = path
        self._lock = RLock()
        self._values = {}
        if path and os.path.exists(path):
            try:
                with open(path, encoding="utf-8") as handle:
                    loaded = json.load(handle)
                if isinstance(loaded, dict):
                    self._values = {str(k): int(v) for k, v in loaded.items() if str(v).lstrip("-").isdigit()}
            except (OSError, ValueError) as exc:
                logger.warning("Could not read progress file %s: %s", path, exc)

    def get(self, anime_id, episode_id):
        with self._lock:
            return self._values.get(progress_key(anime_id, episode_id))

    def save(self, anime_id, episode_id, seconds):
        with self._lock:
            self._values[progress_key(anime_id, episode_id)] = int(seconds)
            self._write()

    def _write(self):
        if not self.path:
            return
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as handle:
            json.dump(self._values, handle, sort_keys=True)
        os.replace(tmp_path, self.path)

    def resume_position(self, anime_id, episode_id, duration):
        saved = self.get(anime_id, episode_id)
        if saved and 0 < saved < duration:
            return saved
        return 0


class ProgressRecorder:
    """Persist playback position at most once per ``interval`` seconds."""

    def __init__(self, store, anime_id, episode_id, interval=PROGRESS_SAVE_INTERVAL, clock=time.monotonic):
        self.store = store
        self.anime_id = anime_id
        self.episode_id = episode_id
        self.interval = interval
        self._clock = clock
        self._last_saved_at = None
        self._position = 0

    def tick(self, position):
        self._position = int(position)
        now = self._clock()
        if self._last_saved_at is not None and now - self._last_saved_at < self.interval:
            return False
        self.store.save(self.anime_id, self.episode_id, self._position)
        self._last_saved_at = now
        return True

    def flush(self):
        self.store.save(self.anime_id, self.episode_id, self._position)
        self._last_saved_at = self._clock()
