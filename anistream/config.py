import os


# Config
# External API bases can be overridden per deployment through the environment.
ANILIST_API_URL = os.environ.get("ANILIST_API_URL", "https://graphql.anilist.co")
CONSUMET_API_BASE = os.environ.get("CONSUMET_API_BASE", "https://api.consumet.org/anime")
CINETARO_API_BASE = os.environ.get("CINETARO_API_BASE", "https://api.cinetaro.buzz")
VIDSTREAMING_BASE_URL = os.environ.get("VIDSTREAMING_BASE_URL", "https://vidstreaming.io")

COMMON_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Accept": "application/json",
}

# Consumet exposes every catalog behind the same three endpoints.
CONSUMET_PROVIDERS = [
    {
        "id": provider_id,
        "base_url": CONSUMET_API_BASE,
        "search": "/{provider}/{query}",
        "info": "/{provider}/info/{id}",
        "watch": "/{provider}/watch/{id}",
    }
    for provider_id in ("gogoanime", "zoro", "9anime", "animepahe")
]

SEARCH_RESULT_LIMIT = 5

CINETARO_AUDIO_TYPES = ["sub", "dub"]
CINETARO_DEFAULT_SEASON = 1

DEFAULT_DENYLIST = (
    "familynonstop.com",
    "familynonstop",
    "www.familynonstop.com",
    "example.com",
    "localhost",
)

REQUEST_TIMEOUT = float(os.environ.get("ANISTREAM_REQUEST_TIMEOUT", "8"))

METADATA_CACHE_TTL = int(os.environ.get("METADATA_CACHE_TTL", "3600"))
METADATA_CACHE_MAXSIZE = int(os.environ.get("METADATA_CACHE_MAXSIZE", "1024"))

CATALOG_PATH = os.environ.get(
    "ANISTREAM_CATALOG_PATH",
    os.path.join(os.path.dirname(__file__), "data", "catalog.json"),
)

PROGRESS_SAVE_INTERVAL = 10

# Upper bound on one episode resolution; the request token fires when it passes.
RESOLUTION_DEADLINE = float(os.environ.get("ANISTREAM_RESOLUTION_DEADLINE", "60"))
