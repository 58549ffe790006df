"""Episode-source resolution: local catalog, then metadata, then the provider cascade.

The cascade is a lazy generator of candidate sources. Providers are walked
one at a time (provider -> title variant -> search result) and the first
candidate produced wins; later providers are never contacted.
"""
import logging

from anistream.anilist import get_anime_metadata, total_episodes
from anistream.cancellation import ensure_token
from anistream.catalog import LocalCatalog
from anistream.config import SEARCH_RESULT_LIMIT
from anistream.errors import EpisodeNotFound, ProviderSoftFailure, ResolutionCancelled
from anistream.fallbacks import fetch_cinetaro_stream, synthesize_vidstreaming_url
from anistream.ids import build_title_variants, parse_episode_id
from anistream.payloads import extract_with_probe
from anistream.providers import build_providers, episode_identifier, match_episode
from anistream.runtime_config import build_policy, enabled_provider_descriptors, normalize_resolver_config


logger = logging.getLogger(__name__)


def build_episode_payload(episode_id, title, url, is_m3u8):
    return {
        "id": episode_id,
        "title": title,
        "episodeTitle": title,
        "iframe": url or "",
        "sources": [{"url": url, "quality": "default", "isM3U8": bool(is_m3u8)}] if url else [],
    }


def _candidate(source, url, title, is_m3u8=None):
    return {
        "source": source,
        "url": url,
        "title": title,
        "isM3U8": (".m3u8" in url) if is_m3u8 is None else is_m3u8,
    }


def _attempt(label, func, *args, **kwargs):
    """Run one provider call; soft failures become None, cancellation propagates."""
    try:
        return func(*args, **kwargs)
    except ResolutionCancelled:
        raise
    except ProviderSoftFailure as exc:
        logger.debug("%s: %s", label, exc)
    except Exception as exc:
        logger.debug("%s failed unexpectedly: %s", label, exc)
    return None


class EpisodeResolver:
    def __init__(self, catalog=None, providers=None, settings=None, metadata_lookup=None, policy=None):
        self.settings = normalize_resolver_config(settings)
        self.catalog = catalog if catalog is not None else LocalCatalog()
        self.timeout = self.settings["request_timeout"]
        if providers is None:
            providers = build_providers(enabled_provider_descriptors(self.settings), timeout=self.timeout)
        self.providers = list(providers)
        self.policy = policy if policy is not None else build_policy(self.settings)
        self.metadata_lookup = metadata_lookup or get_anime_metadata

    def resolve(self, anime_id, episode_id, token=None):
        """Return the episode response body or raise EpisodeNotFound.

        An exhausted cascade is not an error: the body comes back with empty
        ``sources`` so callers can tell "nothing playable" from "unknown".
        """
        token = ensure_token(token)
        token.raise_if_cancelled()

        _, local_episode = self.catalog.find_episode(anime_id, episode_id)
        if local_episode is not None:
            logger.info("Serving %s/%s from the local catalog", anime_id, episode_id)
            return build_episode_payload(
                local_episode.get("id"),
                local_episode.get("title"),
                local_episode.get("videoUrl"),
                False,
            )

        episode_number = parse_episode_id(anime_id, episode_id)
        if episode_number is None:
            raise EpisodeNotFound(f"{episode_id!r} does not belong to anime {anime_id!r}")

        media = self.metadata_lookup(anime_id, token=token, timeout=self.timeout)
        if not media:
            raise EpisodeNotFound(f"No metadata for anime {anime_id!r}")

        episode_count = total_episodes(media)
        if not 1 <= episode_number <= episode_count:
            raise EpisodeNotFound(f"Episode {episode_number} outside 1..{episode_count} for anime {anime_id!r}")

        candidate = next(self.iter_stream_candidates(media, episode_number, token), None)
        if candidate is None:
            logger.info("No source found for %s episode %s", anime_id, episode_number)
            return build_episode_payload(episode_id, f"Episode {episode_number}", "", False)

        logger.info("Resolved %s episode %s via %s", anime_id, episode_number, candidate["source"])
        return build_episode_payload(episode_id, candidate["title"], candidate["url"], candidate["isM3U8"])

    def iter_stream_candidates(self, media, episode_number, token=None):
        token = ensure_token(token)
        yield from self.iter_provider_candidates(build_title_variants(media.get("title")), episode_number, token)
        if self.settings["enable_cinetaro"]:
            yield from self.iter_cinetaro_candidates(media.get("id"), episode_number, token)
        if self.settings["enable_vidstreaming"]:
            yield from self.iter_synthetic_candidates(media, episode_number)

    def iter_provider_candidates(self, title_variants, episode_number, token):
        for provider in self.providers:
            provider_id = getattr(provider, "provider_id", repr(provider))
            for title in title_variants:
                results = _attempt(f"{provider_id} search {title!r}", provider.search, title, token)
                for result in (results or [])[:SEARCH_RESULT_LIMIT]:
                    candidate = self._resolve_search_result(provider, provider_id, result, episode_number, token)
                    if candidate is not None:
                        yield candidate

    def _resolve_search_result(self, provider, provider_id, result, episode_number, token):
        info = _attempt(f"{provider_id} info {result.get('id')!r}", provider.get_info, result.get("id"), token)
        if not info:
            return None

        episode = match_episode(info.get("episodes"), episode_number)
        episode_id = episode_identifier(episode)
        if not episode_id:
            return None

        payload = _attempt(f"{provider_id} watch {episode_id!r}", provider.get_episode_stream, episode_id, token)
        if not payload:
            return None

        probe, url = extract_with_probe(payload, self.policy)
        if not url:
            return None
        logger.debug("%s episode %s matched via %s", provider_id, episode_id, probe)
        return _candidate(provider_id, url, episode.get("title") or f"Episode {episode_number}")

    def iter_cinetaro_candidates(self, anilist_id, episode_number, token):
        if anilist_id is None:
            return
        for audio_type in self.settings["cinetaro_types"]:
            url = _attempt(
                f"cinetaro {audio_type}",
                fetch_cinetaro_stream,
                anilist_id,
                episode_number,
                audio_type,
                token=token,
                timeout=self.timeout,
                policy=self.policy,
            )
            if url:
                yield _candidate("cinetaro", url, f"Episode {episode_number}")

    def iter_synthetic_candidates(self, media, episode_number):
        # Last resort: unfiltered and unverified, the player may still reject it.
        url = synthesize_vidstreaming_url(media, episode_number)
        if url:
            yield _candidate("vidstreaming", url, f"Episode {episode_number}", is_m3u8=False)
