import json
import logging
import os

from anistream.config import CINETARO_AUDIO_TYPES, CONSUMET_PROVIDERS, DEFAULT_DENYLIST, REQUEST_TIMEOUT
from anistream.filters import DenylistPolicy


logger = logging.getLogger(__name__)

ALLOWED_AUDIO_TYPES = {"sub", "dub"}
PROVIDER_IDS = [descriptor["id"] for descriptor in CONSUMET_PROVIDERS]

MIN_TIMEOUT = 1.0
MAX_TIMEOUT = 30.0

DEFAULT_RESOLVER_CONFIG = {
    "providers": list(PROVIDER_IDS),
    "enable_cinetaro": True,
    "enable_vidstreaming": True,
    "cinetaro_types": list(CINETARO_AUDIO_TYPES),
    "request_timeout": REQUEST_TIMEOUT,
    "denylist": [],
}


def _default_config_copy():
    return {
        "providers": list(DEFAULT_RESOLVER_CONFIG["providers"]),
        "enable_cinetaro": DEFAULT_RESOLVER_CONFIG["enable_cinetaro"],
        "enable_vidstreaming": DEFAULT_RESOLVER_CONFIG["enable_vidstreaming"],
        "cinetaro_types": list(DEFAULT_RESOLVER_CONFIG["cinetaro_types"]),
        "request_timeout": DEFAULT_RESOLVER_CONFIG["request_timeout"],
        "denylist": list(DEFAULT_RESOLVER_CONFIG["denylist"]),
    }


def _to_bool(value, default=False):
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    token = str(value).strip().lower()
    if token in {"1", "true", "yes", "on"}:
        return True
    if token in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_csv_list(value, lower=True):
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple, set)):
        items = list(value)
    else:
        return []

    normalized = []
    for item in items:
        token = str(item or "").strip()
        if lower:
            token = token.lower()
        if token and token not in normalized:
            normalized.append(token)
    return normalized


def normalize_resolver_config(raw_config):
    """Coerce a loose mapping (env strings, JSON) into resolver settings."""
    cfg = _default_config_copy()
    if not isinstance(raw_config, dict):
        return cfg

    if raw_config.get("providers") is not None:
        requested = _parse_csv_list(raw_config.get("providers"))
        cfg["providers"] = [provider_id for provider_id in requested if provider_id in PROVIDER_IDS]

    cfg["enable_cinetaro"] = _to_bool(raw_config.get("enable_cinetaro"), cfg["enable_cinetaro"])
    cfg["enable_vidstreaming"] = _to_bool(raw_config.get("enable_vidstreaming"), cfg["enable_vidstreaming"])

    audio_types = [kind for kind in _parse_csv_list(raw_config.get("cinetaro_types")) if kind in ALLOWED_AUDIO_TYPES]
    if audio_types:
        cfg["cinetaro_types"] = audio_types

    raw_timeout = raw_config.get("request_timeout")
    if raw_timeout is not None:
        try:
            cfg["request_timeout"] = max(MIN_TIMEOUT, min(float(raw_timeout), MAX_TIMEOUT))
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid request_timeout %r", raw_timeout)

    cfg["denylist"] = _parse_csv_list(raw_config.get("denylist"))
    return cfg


def load_resolver_config(environ=None):
    environ = os.environ if environ is None else environ

    raw_json = environ.get("ANISTREAM_CONFIG")
    raw = {}
    if raw_json:
        try:
            parsed = json.loads(raw_json)
            if isinstance(parsed, dict):
                raw.update(parsed)
        except ValueError as exc:
            logger.warning("Failed to parse ANISTREAM_CONFIG, using defaults: %s", exc)

    env_keys = {
        "ANISTREAM_PROVIDERS": "providers",
        "ANISTREAM_ENABLE_CINETARO": "enable_cinetaro",
        "ANISTREAM_ENABLE_VIDSTREAMING": "enable_vidstreaming",
        "ANISTREAM_CINETARO_TYPES": "cinetaro_types",
        "ANISTREAM_REQUEST_TIMEOUT": "request_timeout",
        "ANISTREAM_DENYLIST": "denylist",
    }
    for env_key, cfg_key in env_keys.items():
        if environ.get(env_key) is not None:
            raw[cfg_key] = environ[env_key]

    return normalize_resolver_config(raw)


def build_policy(cfg):
    return DenylistPolicy(DEFAULT_DENYLIST).extended(cfg.get("denylist") or [])


def enabled_provider_descriptors(cfg):
    """Descriptors for the configured providers, in the configured cascade order."""
    by_id = {descriptor["id"]: descriptor for descriptor in CONSUMET_PROVIDERS}
    return [by_id[provider_id] for provider_id in cfg.get("providers") or [] if provider_id in by_id]
