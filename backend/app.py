import logging
from functools import wraps

from flask import Flask, current_app, g, jsonify, request
from flask_cors import CORS

from errors import CatalogUnavailable, PromptError, UpstreamAuthError
from catalog.models import Playable
from catalog.token_provider import DEFAULT_TOKEN_TTL_SECONDS
from features.recommendation import Services, build_services
from features.saved_songs import InMemorySavedSongStore, SavedSong
from settings import load_settings

LOGGER = logging.getLogger(__name__)


def _services() -> Services:
    return current_app.extensions["noto_services"]


def _bounded_limit(raw_value, default: int) -> int:
    try:
        return max(1, min(50, int(raw_value)))
    except (TypeError, ValueError):
        return default


def require_account(view):
    """Bearer-token guard backed by the configured account verifier."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        verifier = current_app.config.get("ACCOUNT_VERIFIER")
        if verifier is None:
            return jsonify({"error": "Account service not configured"}), 503

        auth_header = request.headers.get("Authorization", "")
        parts = auth_header.split(" ", 1)
        token = parts[1].strip() if len(parts) == 2 and parts[0].lower() == "bearer" else ""
        if not token:
            return jsonify({"error": "Access token required"}), 401

        identity = verifier.verify(token)
        if identity is None:
            return jsonify({"error": "Invalid or expired token"}), 403
        if identity.banned:
            return jsonify({"error": "User account has been banned"}), 403

        g.user_id = identity.user_id
        return view(*args, **kwargs)

    return wrapper


def create_app(config: dict | None = None) -> Flask:
    app = Flask(__name__)
    app.config.update(
        {
            "NOTO_SETTINGS": None,
            "NOTO_SERVICES": None,
            "ACCOUNT_VERIFIER": None,
            "SAVED_SONG_STORE": None,
        }
    )
    if config:
        app.config.update(config)

    settings = app.config["NOTO_SETTINGS"] or load_settings()
    services = app.config["NOTO_SERVICES"] or build_services(settings)
    app.extensions["noto_services"] = services
    if app.config["SAVED_SONG_STORE"] is None:
        app.config["SAVED_SONG_STORE"] = InMemorySavedSongStore()

    CORS(app, supports_credentials=True)
    _register_routes(app)
    return app


def _register_routes(app: Flask) -> None:
    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok"})

    @app.route("/api/spotify/search", methods=["GET"])
    def spotify_search():
        query = request.args.get("q", "").strip()
        if not query:
            return jsonify({"error": "Missing query parameter"}), 400
        limit = _bounded_limit(request.args.get("limit"), 10)
        try:
            payload = _services().upstream_catalog.raw_search(query, limit)
        except CatalogUnavailable as exc:
            LOGGER.warning("Search proxy failed for %r: %s", query, exc)
            return jsonify({"error": str(exc)}), 502
        return jsonify(payload)

    @app.route("/api/spotify/audio-features/<track_id>", methods=["GET"])
    def spotify_audio_features(track_id: str):
        payload = _services().upstream_catalog.raw_audio_features(track_id)
        if payload is None:
            return jsonify({"error": "Audio features unavailable"}), 502
        return jsonify(payload)

    @app.route("/api/spotify/track/<track_id>", methods=["GET"])
    def spotify_track(track_id: str):
        payload = _services().upstream_catalog.raw_track(track_id)
        if payload is None:
            return jsonify({"error": "Track lookup failed"}), 502
        return jsonify(payload)

    @app.route("/api/spotify/token", methods=["POST"])
    def spotify_token():
        provider = _services().upstream_catalog.token_provider
        try:
            token = provider.get_token()
        except UpstreamAuthError as exc:
            return jsonify({"error": str(exc)}), 502
        cached = provider.cache.snapshot()
        expires_in = DEFAULT_TOKEN_TTL_SECONDS
        if cached is not None and cached.value == token:
            expires_in = max(0, (cached.expires_at_ms - provider.cache.now_ms()) // 1000)
        return jsonify({"access_token": token, "token_type": "Bearer", "expires_in": expires_in})

    @app.route("/api/lastfm/artist/<path:artist_name>", methods=["GET"])
    def lastfm_artist(artist_name: str):
        if not artist_name.strip():
            return jsonify({"error": "Missing artist name"}), 400
        return jsonify(_services().upstream_enrichment.raw_context(artist_name))

    @app.route("/api/recommendations", methods=["GET", "POST"])
    def recommendations():
        if request.method == "POST":
            data = request.get_json(silent=True) or {}
            prompt = str(data.get("prompt") or data.get("q") or "")
        else:
            prompt = request.args.get("q", "")
        try:
            result = _services().pipeline.recommend(prompt)
        except PromptError as exc:
            return jsonify({"error": str(exc)}), 400
        return jsonify(result.to_dict())

    @app.route("/api/preview/<track_id>", methods=["GET"])
    def preview(track_id: str):
        external_url = request.args.get("external_url", "")
        outcome = _services().previews.resolve_preview(track_id, external_url)
        if isinstance(outcome, Playable):
            return jsonify({"playable": True, "preview_url": outcome.url, "external_url": external_url})
        return jsonify({"playable": False, "preview_url": None, "external_url": outcome.external_url})

    @app.route("/api/songs/save", methods=["POST"])
    @require_account
    def save_song():
        data = request.get_json(silent=True) or {}
        track_id = str(data.get("trackId") or "").strip()
        title = str(data.get("title") or "").strip()
        artist = str(data.get("artist") or "").strip()
        if not track_id or not title or not artist:
            return jsonify({"error": "Missing required fields"}), 400

        song = SavedSong(track_id=track_id, title=title, artist=artist, album_image=data.get("albumImage") or None)
        if not app.config["SAVED_SONG_STORE"].save(g.user_id, song):
            return jsonify({"error": "Song already saved"}), 400
        return jsonify({"message": "Song saved successfully", "song": song.to_dict()})

    @app.route("/api/songs/saved", methods=["GET"])
    @require_account
    def saved_songs():
        songs = app.config["SAVED_SONG_STORE"].list(g.user_id)
        return jsonify([song.to_dict() for song in songs])

    @app.route("/api/songs/<track_id>", methods=["DELETE"])
    @require_account
    def delete_song(track_id: str):
        if not app.config["SAVED_SONG_STORE"].delete(g.user_id, track_id):
            return jsonify({"error": "Song not found"}), 404
        return jsonify({"message": "Song deleted successfully"})

    @app.route("/api/songs/check/<track_id>", methods=["GET"])
    @require_account
    def check_song(track_id: str):
        return jsonify({"isSaved": bool(app.config["SAVED_SONG_STORE"].exists(g.user_id, track_id))})

    @app.route("/api/config", methods=["GET"])
    def client_config():
        settings = _services().settings
        return jsonify(
            {
                "apiBaseUrl": settings.api_base_url or request.host_url.rstrip("/"),
                "environment": settings.environment,
            }
        )

    @app.errorhandler(404)
    def not_found(_error):
        if request.path.startswith("/api/"):
            return jsonify({"error": "API endpoint not found"}), 404
        return jsonify({"error": "Not found"}), 404


if __name__ == "__main__":
    settings = load_settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    create_app({"NOTO_SETTINGS": settings}).run(debug=settings.environment == "development", port=3001)
