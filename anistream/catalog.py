import json
import logging

from anistream.config import CATALOG_PATH


logger = logging.getLogger(__name__)


class LocalCatalog:
    """Curated in-memory anime entries; a hit here short-circuits resolution."""

    def __init__(self, entries=None):
        self._entries = {}
        for entry in entries or []:
            if not isinstance(entry, dict) or not entry.get("id"):
                continue
            self._entries[str(entry["id"])] = entry

    @classmethod
    def from_file(cls, path=CATALOG_PATH):
        try:
            with open(path, encoding="utf-8") as handle:
                payload = json.load(handle)
        except FileNotFoundError:
            logger.warning("Local catalog %s not found; starting empty", path)
            return cls()
        except ValueError as exc:
            logger.error("Local catalog %s is not valid JSON: %s", path, exc)
            return cls()

        entries = payload.get("anime") if isinstance(payload, dict) else payload
        return cls(entries if isinstance(entries, list) else [])

    def __contains__(self, anime_id):
        return str(anime_id) in self._entries

    def __len__(self):
        return len(self._entries)

    def get_anime(self, anime_id):
        return self._entries.get(str(anime_id))

    def find_episode(self, anime_id, episode_id):
        anime = self.get_anime(anime_id)
        if not anime:
            return None, None
        for episode in anime.get("episodes") or []:
            if isinstance(episode, dict) and str(episode.get("id")) == str(episode_id):
                return anime, episode
        return anime, None

    def build_anime_detail(self, anime_id):
        anime = self.get_anime(anime_id)
        if not anime:
            return None
        episodes = [ep for ep in anime.get("episodes") or [] if isinstance(ep, dict)]
        return {
            "id": str(anime["id"]),
            "title": anime.get("title") or "",
            "image": anime.get("thumbnail") or "",
            "description": anime.get("description") or "",
            "releaseDate": str(anime.get("year") or ""),
            "status": "RELEASING",
            "type": str(anime.get("type") or "series").upper(),
            "totalEpisodes": len(episodes),
            "genres": anime.get("genre") or [],
            "rating": anime.get("rating") or 0,
            "episodes": [
                {
                    "id": ep.get("id"),
                    "number": ep.get("episodeNumber"),
                    "title": ep.get("title") or "",
                    "image": ep.get("thumbnail") or "",
                    "description": ep.get("description") or "",
                }
                for ep in episodes
            ],
        }
