import json
import unittest
from unittest.mock import Mock, patch

import requests

from anistream.cancellation import CancellationToken
from anistream.catalog import LocalCatalog
from anistream.config import VIDSTREAMING_BASE_URL
from anistream.errors import EpisodeNotFound, ProviderSoftFailure, ResolutionCancelled
from anistream.resolver import EpisodeResolver


class MockResponse:
    def __init__(self, payload=None, status_code=200, text=None, content_type="application/json"):
        self.status_code = status_code
        self.text = text if text is not None else json.dumps(payload)
        self.headers = {"content-type": content_type}

    def json(self):
        return json.loads(self.text)


class FakeProvider:
    """Scripted provider: search/info/stream answers keyed by their argument."""

    def __init__(self, provider_id, searches=None, infos=None, streams=None, fail_with=None):
        self.provider_id = provider_id
        self.searches = searches or {}
        self.infos = infos or {}
        self.streams = streams or {}
        self.fail_with = fail_with
        self.calls = []

    def _maybe_fail(self):
        if self.fail_with is not None:
            raise self.fail_with

    def search(self, title, token=None):
        self.calls.append(("search", title))
        self._maybe_fail()
        return [{"provider": self.provider_id, "id": external_id} for external_id in self.searches.get(title, [])]

    def get_info(self, external_id, token=None):
        self.calls.append(("info", external_id))
        if external_id not in self.infos:
            raise ProviderSoftFailure("no info")
        return {"episodes": self.infos[external_id]}

    def get_episode_stream(self, episode_id, token=None):
        self.calls.append(("watch", episode_id))
        if episode_id not in self.streams:
            raise ProviderSoftFailure("no stream")
        return self.streams[episode_id]


NARUTO_CATALOG = LocalCatalog(
    [
        {
            "id": "naruto",
            "title": "Naruto",
            "episodes": [
                {"id": "ep1", "episodeNumber": 1, "title": "Enter: Naruto Uzumaki!", "videoUrl": "https://cdn.example/naruto1.mp4"}
            ],
        }
    ]
)

ONE_PIECE = {
    "id": 21,
    "title": {"english": "One Piece", "romaji": "One Piece", "native": "ワンピース"},
    "episodes": 12,
}

NO_FALLBACKS = {"enable_cinetaro": False, "enable_vidstreaming": False}


def metadata_returning(media):
    return Mock(return_value=media)


class TestLocalCatalogShortCircuit(unittest.TestCase):
    @patch("anistream.fetch.requests.post")
    @patch("anistream.fetch.requests.get")
    def test_local_episode_returned_verbatim(self, mock_get, mock_post):
        provider = FakeProvider("gogoanime")
        lookup = metadata_returning(ONE_PIECE)
        resolver = EpisodeResolver(catalog=NARUTO_CATALOG, providers=[provider], metadata_lookup=lookup)

        payload = resolver.resolve("naruto", "ep1")

        self.assertEqual(payload["iframe"], "https://cdn.example/naruto1.mp4")
        self.assertEqual(
            payload["sources"],
            [{"url": "https://cdn.example/naruto1.mp4", "quality": "default", "isM3U8": False}],
        )
        self.assertEqual(payload["episodeTitle"], "Enter: Naruto Uzumaki!")
        self.assertEqual(provider.calls, [])
        lookup.assert_not_called()
        mock_get.assert_not_called()
        mock_post.assert_not_called()

    def test_local_anime_with_unknown_episode_falls_through(self):
        lookup = metadata_returning(None)
        resolver = EpisodeResolver(catalog=NARUTO_CATALOG, providers=[], metadata_lookup=lookup)
        with self.assertRaises(EpisodeNotFound):
            resolver.resolve("naruto", "ep99")
        lookup.assert_not_called()


class TestNotFound(unittest.TestCase):
    def test_out_of_range_episode_never_contacts_providers(self):
        provider = FakeProvider("gogoanime")
        resolver = EpisodeResolver(catalog=LocalCatalog(), providers=[provider], metadata_lookup=metadata_returning(ONE_PIECE))

        with self.assertRaises(EpisodeNotFound):
            resolver.resolve("21", "21-15")
        with self.assertRaises(EpisodeNotFound):
            resolver.resolve("21", "21-0")
        self.assertEqual(provider.calls, [])

    def test_unknown_metadata_is_not_found(self):
        resolver = EpisodeResolver(catalog=LocalCatalog(), providers=[], metadata_lookup=metadata_returning(None))
        with self.assertRaises(EpisodeNotFound):
            resolver.resolve("21", "21-1")

    def test_episode_id_for_other_anime_is_not_found(self):
        lookup = metadata_returning(ONE_PIECE)
        resolver = EpisodeResolver(catalog=LocalCatalog(), providers=[], metadata_lookup=lookup)
        with self.assertRaises(EpisodeNotFound):
            resolver.resolve("21", "22-1")
        lookup.assert_not_called()


class TestProviderCascade(unittest.TestCase):
    def test_denylisted_source_moves_to_next_result(self):
        provider = FakeProvider(
            "gogoanime",
            searches={"One Piece": ["op-mirror", "op"]},
            infos={
                "op-mirror": [{"id": "op-mirror-3", "number": 3}],
                "op": [{"id": "op-3", "number": "3", "title": "Morgan versus Luffy!"}],
            },
            streams={
                "op-mirror-3": {"sources": [{"url": "https://media.good.net/ep3.mp4?mirror=familynonstop.com"}]},
                "op-3": {"sources": [{"url": "https://media.good.net/op/ep3.m3u8", "isM3U8": True}]},
            },
        )
        resolver = EpisodeResolver(
            catalog=LocalCatalog(), providers=[provider], settings=NO_FALLBACKS, metadata_lookup=metadata_returning(ONE_PIECE)
        )

        payload = resolver.resolve("21", "21-3")

        self.assertEqual(payload["id"], "21-3")
        self.assertEqual(payload["episodeTitle"], "Morgan versus Luffy!")
        self.assertEqual(payload["iframe"], "https://media.good.net/op/ep3.m3u8")
        self.assertEqual(payload["sources"][0]["isM3U8"], True)
        self.assertIn(("watch", "op-mirror-3"), provider.calls)

    def test_first_success_stops_the_cascade(self):
        winner = FakeProvider(
            "gogoanime",
            searches={"One Piece": ["op"]},
            infos={"op": [{"id": "op-1", "number": 1}]},
            streams={"op-1": {"iframe": "https://embed.good.net/e/op-1"}},
        )
        later = FakeProvider("zoro")
        resolver = EpisodeResolver(
            catalog=LocalCatalog(), providers=[winner, later], settings=NO_FALLBACKS, metadata_lookup=metadata_returning(ONE_PIECE)
        )

        payload = resolver.resolve("21", "21-1")

        self.assertEqual(payload["iframe"], "https://embed.good.net/e/op-1")
        self.assertEqual(payload["title"], "Episode 1")
        self.assertEqual(payload["sources"][0]["isM3U8"], False)
        self.assertEqual(later.calls, [])

    def test_soft_failures_and_unexpected_errors_do_not_abort(self):
        broken = FakeProvider("gogoanime", fail_with=ProviderSoftFailure("down"))
        crashing = FakeProvider("zoro", fail_with=RuntimeError("boom"))
        working = FakeProvider(
            "9anime",
            searches={"ワンピース": ["op"]},
            infos={"op": [{"episodeId": "op-ep-2", "episodeNumber": 2}]},
            streams={"op-ep-2": {"links": [{"url": "https://l.good.net/e/2"}]}},
        )
        resolver = EpisodeResolver(
            catalog=LocalCatalog(),
            providers=[broken, crashing, working],
            settings=NO_FALLBACKS,
            metadata_lookup=metadata_returning(ONE_PIECE),
        )

        payload = resolver.resolve("21", "21-2")

        self.assertEqual(payload["iframe"], "https://l.good.net/e/2")
        # Duplicate "One Piece" variants are searched once per provider.
        self.assertEqual(broken.calls, [("search", "One Piece"), ("search", "ワンピース")])

    def test_exhausted_cascade_returns_empty_sources(self):
        provider = FakeProvider("gogoanime", searches={"One Piece": ["op"]}, infos={"op": []})
        resolver = EpisodeResolver(
            catalog=LocalCatalog(), providers=[provider], settings=NO_FALLBACKS, metadata_lookup=metadata_returning(ONE_PIECE)
        )

        payload = resolver.resolve("21", "21-4")

        self.assertEqual(payload, {"id": "21-4", "title": "Episode 4", "episodeTitle": "Episode 4", "iframe": "", "sources": []})

    def test_cancellation_propagates_instead_of_soft_failing(self):
        cancelling = FakeProvider("gogoanime", fail_with=ResolutionCancelled())
        later = FakeProvider("zoro")
        resolver = EpisodeResolver(
            catalog=LocalCatalog(), providers=[cancelling, later], metadata_lookup=metadata_returning(ONE_PIECE)
        )

        with self.assertRaises(ResolutionCancelled):
            resolver.resolve("21", "21-1")
        self.assertEqual(later.calls, [])

    def test_cancelled_token_stops_before_any_work(self):
        lookup = metadata_returning(ONE_PIECE)
        resolver = EpisodeResolver(catalog=NARUTO_CATALOG, providers=[], metadata_lookup=lookup)
        token = CancellationToken()
        token.cancel()

        with self.assertRaises(ResolutionCancelled):
            resolver.resolve("naruto", "ep1", token=token)
        lookup.assert_not_called()

    @patch("anistream.fetch.requests.get")
    def test_configured_provider_order_drives_the_cascade(self, mock_get):
        mock_get.side_effect = requests.ConnectionError("offline")
        resolver = EpisodeResolver(
            catalog=NARUTO_CATALOG,
            settings=dict(NO_FALLBACKS, providers="zoro,gogoanime"),
            metadata_lookup=metadata_returning(ONE_PIECE),
        )

        self.assertEqual([p.provider_id for p in resolver.providers], ["zoro", "gogoanime"])

        resolver.resolve("21", "21-1")
        first_url = mock_get.call_args_list[0].args[0]
        self.assertIn("/zoro/", first_url)


class TestFallbacks(unittest.TestCase):
    @patch("anistream.fetch.requests.get")
    def test_html_secondary_falls_through_to_synthetic_url(self, mock_get):
        requested = []

        def side_effect(url, **kwargs):
            requested.append((url, kwargs.get("timeout")))
            if "cinetaro" in url:
                return MockResponse(text="<!DOCTYPE html><html><body>Not here</body></html>", content_type="text/html")
            raise requests.ConnectionError("provider unreachable")

        mock_get.side_effect = side_effect
        resolver = EpisodeResolver(catalog=LocalCatalog(), metadata_lookup=metadata_returning(ONE_PIECE))

        payload = resolver.resolve("21", "21-5")

        expected = f"{VIDSTREAMING_BASE_URL}/streaming.php?id=one-piece&episode=5"
        self.assertEqual(payload["iframe"], expected)
        self.assertEqual(payload["sources"], [{"url": expected, "quality": "default", "isM3U8": False}])
        cinetaro_urls = [url for url, _ in requested if "cinetaro" in url]
        self.assertEqual(len(cinetaro_urls), 2)
        self.assertTrue(cinetaro_urls[0].endswith("/anime/21/1/5/sub"))
        self.assertTrue(cinetaro_urls[1].endswith("/anime/21/1/5/dub"))
        self.assertTrue(all(timeout for _, timeout in requested))

    @patch("anistream.fetch.requests.get")
    def test_secondary_json_source_is_used(self, mock_get):
        mock_get.return_value = MockResponse(
            {"sources": [{"url": "https://familynonstop.com/x"}, {"file": "https://media.good.net/op5.m3u8"}]}
        )
        resolver = EpisodeResolver(catalog=LocalCatalog(), providers=[], metadata_lookup=metadata_returning(ONE_PIECE))

        payload = resolver.resolve("21", "21-5")

        self.assertEqual(payload["iframe"], "https://media.good.net/op5.m3u8")
        self.assertTrue(payload["sources"][0]["isM3U8"])
        self.assertEqual(mock_get.call_count, 1)

    @patch("anistream.fetch.requests.get")
    def test_secondary_with_wrong_content_type_is_skipped(self, mock_get):
        mock_get.return_value = MockResponse({"url": "https://embed.good.net/e/5"}, content_type="text/plain")
        resolver = EpisodeResolver(
            catalog=LocalCatalog(),
            providers=[],
            settings={"enable_vidstreaming": False},
            metadata_lookup=metadata_returning(ONE_PIECE),
        )

        payload = resolver.resolve("21", "21-5")

        self.assertEqual(payload["sources"], [])

    def test_synthetic_url_skipped_without_title(self):
        media = {"id": 99, "title": {"english": None, "romaji": "", "native": "!!"}, "episodes": 3}
        resolver = EpisodeResolver(
            catalog=LocalCatalog(),
            providers=[],
            settings={"enable_cinetaro": False},
            metadata_lookup=metadata_returning(media),
        )

        payload = resolver.resolve("99", "99-1")

        self.assertEqual(payload["sources"], [])
        self.assertEqual(payload["iframe"], "")


if __name__ == "__main__":
    unittest.main()
