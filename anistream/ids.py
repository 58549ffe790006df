import re
from urllib.parse import unquote


EXTERNAL_EPISODE_ID = re.compile(r"^(\d+)-(\d+)$")
TITLE_SUFFIX = re.compile(r"\s*(Season|S\d+|Part|Movie|OVA|ONA).*$", re.IGNORECASE)


def decode_path_id(raw_id):
    """Decode URL-encoded path ids, including double-encoded variants."""
    decoded = str(raw_id or "")
    for _ in range(2):
        next_decoded = unquote(decoded)
        if next_decoded == decoded:
            break
        decoded = next_decoded
    return decoded.strip()


def parse_episode_id(anime_id, episode_id):
    """Return the episode number encoded in ``{anime_id}-{number}``.

    None when the id has another shape or its prefix names a different anime.
    """
    match = EXTERNAL_EPISODE_ID.match(str(episode_id or ""))
    if not match:
        return None
    anime_prefix, number = match.groups()
    if anime_prefix != str(anime_id):
        return None
    return int(number)


def leading_int(value):
    """parseInt-style coercion: leading digits of a string, or None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value == value and abs(value) != float("inf") else None
    match = re.match(r"\s*([+-]?\d+)", str(value or ""))
    if match:
        return int(match.group(1))
    return None


def strip_title_suffix(title):
    if not title:
        return ""
    return TITLE_SUFFIX.sub("", str(title)).strip()


def build_title_variants(titles):
    """Ordered, de-duplicated search titles from an AniList ``title`` object."""
    titles = titles if isinstance(titles, dict) else {}
    english = titles.get("english")
    romaji = titles.get("romaji")
    candidates = [
        english,
        romaji,
        titles.get("native"),
        strip_title_suffix(english),
        strip_title_suffix(romaji),
    ]

    variants = []
    for candidate in candidates:
        token = str(candidate or "").strip()
        if not token or token in variants:
            continue
        variants.append(token)
    return variants


def slugify_title(title):
    slug = re.sub(r"[^a-z0-9]+", "-", str(title or "").lower())
    return slug.strip("-")
