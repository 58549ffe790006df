import logging
from urllib.parse import quote

import requests

from anistream.config import COMMON_HEADERS, REQUEST_TIMEOUT
from anistream.errors import ResolutionCancelled
from anistream.filters import DEFAULT_POLICY
from anistream.playback import select_playback, unavailable_decision


logger = logging.getLogger(__name__)


class EpisodeClient:
    """Fetches resolved episodes from the service and turns them into player decisions."""

    def __init__(self, base_url, timeout=REQUEST_TIMEOUT, policy=DEFAULT_POLICY):
        self.base_url = str(base_url).rstrip("/")
        self.timeout = timeout
        self.policy = policy

    def episode_url(self, anime_id, episode_id):
        return f"{self.base_url}/episode/{quote(str(anime_id), safe='')}/{quote(str(episode_id), safe='')}"

    def fetch_episode(self, anime_id, episode_id, token=None):
        """Return ``(status_code, body)``; raises ResolutionCancelled if the token fired.

        The request runs on its own session, which the token closes on cancel so
        an in-flight fetch is torn down instead of waited out.
        """
        if token is not None:
            token.raise_if_cancelled()
        session = requests.Session()
        if token is not None:
            token.on_cancel(session.close)
        try:
            response = session.get(
                self.episode_url(anime_id, episode_id),
                headers=COMMON_HEADERS,
                timeout=self.timeout,
            )
        except Exception:
            if token is not None and token.cancelled:
                raise ResolutionCancelled() from None
            raise
        finally:
            session.close()
        # A response that arrives after cancellation is dropped, not returned.
        if token is not None:
            token.raise_if_cancelled()
        try:
            body = response.json()
        except ValueError:
            body = {}
        return response.status_code, body if isinstance(body, dict) else {}

    def load_playback(self, anime_id, episode_id, token=None):
        """Player decision for one episode, or None when the request was cancelled."""
        try:
            status, body = self.fetch_episode(anime_id, episode_id, token)
        except ResolutionCancelled:
            return None
        except requests.RequestException as exc:
            logger.error("Error fetching episode %s/%s: %s", anime_id, episode_id, exc)
            return unavailable_decision("Failed to load episode")

        if status == 404:
            return unavailable_decision(body.get("error") or "Episode not found")
        if status == 204 or not 200 <= status < 300:
            return unavailable_decision("Failed to load episode")
        return select_playback(body, self.policy)
