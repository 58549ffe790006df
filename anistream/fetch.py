import json
import logging

import requests

from anistream.config import COMMON_HEADERS, REQUEST_TIMEOUT
from anistream.errors import ProviderSoftFailure


logger = logging.getLogger(__name__)

JSON_CONTENT_TYPES = ("application/json", "text/json")


def looks_like_html(text):
    """Providers answer with error pages instead of JSON often enough to check first."""
    stripped = str(text or "").lstrip()
    return stripped.startswith("<")


def parse_json_body(response, require_json_content_type=False):
    if require_json_content_type:
        content_type = str(response.headers.get("content-type") or "").lower()
        if not any(kind in content_type for kind in JSON_CONTENT_TYPES):
            raise ProviderSoftFailure(f"non-JSON content type {content_type!r}")

    text = response.text
    if looks_like_html(text):
        raise ProviderSoftFailure("HTML body instead of JSON")
    try:
        return json.loads(text)
    except ValueError as exc:
        raise ProviderSoftFailure(f"invalid JSON body: {exc}") from exc


def fetch_json(url, token=None, method="GET", payload=None, timeout=None, require_json_content_type=False):
    """Request ``url`` and decode its JSON body.

    Transport errors, non-2xx statuses, HTML bodies and undecodable JSON all
    surface as ProviderSoftFailure. The token is checked on both sides of the
    call so a cancelled consumer never receives the result.
    """
    if token is not None:
        token.raise_if_cancelled()

    headers = dict(COMMON_HEADERS)
    request_timeout = timeout if timeout is not None else REQUEST_TIMEOUT
    try:
        if method == "POST":
            headers["Content-Type"] = "application/json"
            response = requests.post(url, headers=headers, data=json.dumps(payload or {}), timeout=request_timeout)
        else:
            response = requests.get(url, headers=headers, timeout=request_timeout)
    except requests.RequestException as exc:
        raise ProviderSoftFailure(f"request to {url} failed: {exc}") from exc

    if token is not None:
        token.raise_if_cancelled()

    if not 200 <= response.status_code < 300:
        raise ProviderSoftFailure(f"{url} answered HTTP {response.status_code}")

    data = parse_json_body(response, require_json_content_type=require_json_content_type)
    logger.debug("Fetched JSON from %s", url)
    return data
