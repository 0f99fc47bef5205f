from __future__ import annotations

import logging
from functools import wraps

from flask import Flask, jsonify, request

from .container import Container
from .errors import ValidationError

logger = logging.getLogger(__name__)


def create_app(container: Container) -> Flask:
    app = Flask(__name__)
    register(app, container)
    return app


def _error(message: str, status: int):
    return jsonify({"error": message}), status


def _user_id_param() -> int:
    raw = request.args.get("userId")
    if not raw:
        raise ValidationError("userId parameter is required")
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationError("userId must be an integer") from exc


def register(app: Flask, container: Container) -> None:
    reporter = container.reporter

    def json_endpoint(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            try:
                return jsonify(view(*args, **kwargs)), 200
            except ValidationError as exc:
                return _error(str(exc), 400)
            except Exception:
                logger.exception("Error in %s", view.__name__)
                return _error("Internal server error", 500)

        return wrapper

    @app.get("/health")
    def health():
        return jsonify({"status": "ok"})

    @app.get("/getLastDayStats")
    @json_endpoint
    def get_last_day_stats():
        return reporter.get_last_day_stats(_user_id_param()).to_dict()

    @app.get("/getSessionSummary")
    @json_endpoint
    def get_session_summary():
        user_id = _user_id_param()
        start_label = request.args.get("startDate") or None
        end_label = request.args.get("endDate") or None
        return reporter.get_session_summary(user_id, start_label, end_label).to_dict()

    @app.get("/getUserStats")
    @json_endpoint
    def get_user_stats():
        return reporter.get_user_stats(_user_id_param()).to_dict()

    @app.get("/getAllUsersLastDayStats")
    @json_endpoint
    def get_all_users_last_day_stats():
        return reporter.get_all_users_last_day_stats().to_dict()

    @app.get("/getAllUsersTodayStats")
    @json_endpoint
    def get_all_users_today_stats():
        return reporter.get_all_users_today_stats().to_dict()

    @app.get("/getAllUsersTimeFrameStats")
    @json_endpoint
    def get_all_users_time_frame_stats():
        start_raw = request.args.get("startDate")
        end_raw = request.args.get("endDate")
        if not start_raw or not end_raw:
            raise ValidationError("startDate and endDate parameters are required")
        return reporter.get_all_users_time_frame_stats(start_raw, end_raw).to_dict()
