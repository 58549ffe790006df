import logging
from urllib.parse import quote

from anistream.config import CONSUMET_PROVIDERS, SEARCH_RESULT_LIMIT
from anistream.errors import ProviderSoftFailure
from anistream.fetch import fetch_json
from anistream.ids import leading_int


logger = logging.getLogger(__name__)


def episode_number_field(episode):
    return episode.get("number") or episode.get("episodeNumber") or episode.get("episode") or 0


def episode_identifier(episode):
    if not isinstance(episode, dict):
        return None
    return episode.get("id") or episode.get("episodeId")


def _exact_match(value, target):
    return not isinstance(value, bool) and isinstance(value, int) and value == target


def _coerced_match(value, target):
    return leading_int(value) == target


def _string_match(value, target):
    return str(value) == str(target)


def match_episode(episodes, target):
    """Find the provider episode for ``target`` (1-based episode number).

    Exact equality, numeric coercion and string equality are tried as
    separate passes over the whole list, so an exact numeric match anywhere
    beats a coerced match earlier in the list. When no number matches, fall back to position: index
    ``target - 1`` first, then ``target``. The positional rule guesses at
    provider conventions and is not verified against every provider.
    """
    if not isinstance(episodes, list) or not episodes:
        return None

    numbered = [ep for ep in episodes if isinstance(ep, dict)]
    for matcher in (_exact_match, _coerced_match, _string_match):
        for episode in numbered:
            if matcher(episode_number_field(episode), target):
                return episode

    if target < 1 or len(episodes) < target:
        return None
    for index in (target - 1, target):
        if index < len(episodes) and isinstance(episodes[index], dict):
            return episodes[index]
    return None


class ConsumetProvider:
    """One Consumet-style catalog: search -> info -> watch."""

    def __init__(self, descriptor, timeout=None):
        self.descriptor = dict(descriptor)
        self.provider_id = str(self.descriptor["id"])
        self.base_url = str(self.descriptor["base_url"]).rstrip("/")
        self.timeout = timeout

    def __repr__(self):
        return f"ConsumetProvider({self.provider_id!r})"

    def _endpoint(self, name, **values):
        template = self.descriptor[name]
        path = template.format(provider=self.provider_id, **{key: quote(str(val), safe="") for key, val in values.items()})
        return f"{self.base_url}{path}"

    def search(self, title, token=None):
        data = fetch_json(self._endpoint("search", query=title), token=token, timeout=self.timeout)
        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            raise ProviderSoftFailure(f"{self.provider_id}: search for {title!r} returned no results list")

        matches = []
        for item in results[:SEARCH_RESULT_LIMIT]:
            external_id = item.get("id") if isinstance(item, dict) else None
            if external_id:
                matches.append({"provider": self.provider_id, "id": str(external_id)})
        return matches

    def get_info(self, external_id, token=None):
        data = fetch_json(self._endpoint("info", id=external_id), token=token, timeout=self.timeout)
        episodes = data.get("episodes") if isinstance(data, dict) else None
        if not isinstance(episodes, list):
            raise ProviderSoftFailure(f"{self.provider_id}: info for {external_id!r} has no episode list")
        return {"episodes": episodes}

    def get_episode_stream(self, episode_id, token=None):
        data = fetch_json(self._endpoint("watch", id=episode_id), token=token, timeout=self.timeout)
        if not isinstance(data, dict):
            raise ProviderSoftFailure(f"{self.provider_id}: stream payload for {episode_id!r} is not an object")
        return data


def build_providers(descriptors=None, timeout=None):
    if descriptors is None:
        descriptors = CONSUMET_PROVIDERS
    return [ConsumetProvider(descriptor, timeout=timeout) for descriptor in descriptors]
