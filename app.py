import logging
import os

from flask import Flask, g, jsonify

from anistream.anilist import build_anime_detail, get_anime_metadata
from anistream.cancellation import CancellationToken
from anistream.catalog import LocalCatalog
from anistream.config import RESOLUTION_DEADLINE
from anistream.errors import EpisodeNotFound, ResolutionCancelled
from anistream.ids import decode_path_id
from anistream.resolver import EpisodeResolver
from anistream.runtime_config import load_resolver_config


def create_app(resolver=None, deadline=RESOLUTION_DEADLINE):
    app = Flask(__name__)
    app.config["RESOLUTION_DEADLINE"] = deadline
    if resolver is None:
        resolver = EpisodeResolver(catalog=LocalCatalog.from_file(), settings=load_resolver_config())
    app.config["RESOLVER"] = resolver

    @app.before_request
    def open_cancellation_token():
        token = CancellationToken()
        g.cancel_token = token
        g.cancel_timer = token.cancel_after(app.config["RESOLUTION_DEADLINE"])

    @app.teardown_request
    def cancel_outstanding_work(exc=None):
        timer = g.pop("cancel_timer", None)
        if timer is not None:
            timer.cancel()
        token = g.pop("cancel_token", None)
        if token is not None:
            token.cancel()

    @app.after_request
    def after_request(response):
        response.headers.add("Access-Control-Allow-Origin", "*")
        response.headers.add("Access-Control-Allow-Headers", "*")
        response.headers.add("Access-Control-Allow-Methods", "GET,OPTIONS")
        return response

    @app.route("/anime/<anime_id>")
    @app.route("/api/anime/<anime_id>")
    def anime_detail(anime_id):
        anime_id = decode_path_id(anime_id)
        active = app.config["RESOLVER"]

        detail = active.catalog.build_anime_detail(anime_id)
        if detail is None:
            try:
                media = get_anime_metadata(anime_id, token=g.cancel_token, timeout=active.timeout)
            except ResolutionCancelled:
                return "", 204
            if media:
                detail = build_anime_detail(media)

        if detail is None:
            return jsonify({"error": "Anime not found"}), 404
        return jsonify(detail)

    @app.route("/episode/<anime_id>/<episode_id>")
    @app.route("/api/anime/<anime_id>/episode/<episode_id>")
    def episode(anime_id, episode_id):
        anime_id = decode_path_id(anime_id)
        episode_id = decode_path_id(episode_id)
        active = app.config["RESOLVER"]

        try:
            payload = active.resolve(anime_id, episode_id, token=g.cancel_token)
        except ResolutionCancelled:
            return "", 204
        except EpisodeNotFound as exc:
            app.logger.info("Episode not found: %s", exc)
            return jsonify({"error": "Episode not found"}), 404
        except Exception:
            app.logger.exception("Episode resolution failed for %s/%s", anime_id, episode_id)
            return jsonify({"error": "Episode not found"}), 404

        return jsonify(payload)

    return app


app = create_app()


if __name__ == "__main__":
    logging.basicConfig(
        level=getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # Use environment variable for port, default to 7000.
    port = int(os.environ.get("PORT", 7000))
    app.run(host="0.0.0.0", port=port)
