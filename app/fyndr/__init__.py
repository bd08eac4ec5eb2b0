import logging
import os
from datetime import timedelta

from botocore.exceptions import BotoCoreError, ClientError
from dotenv import load_dotenv
from flask import Flask, g, request, session

from app.fyndr.auth import bp as auth_bp, load_current_user
from app.fyndr.config import load_config
from app.fyndr.db import init_db, teardown_db_session
from app.fyndr.errors import ServiceError
from app.fyndr.modules.activity.routes import bp as activity_bp
from app.fyndr.modules.analytics.routes import bp as analytics_bp
from app.fyndr.modules.archive.routes import bp as archive_bp
from app.fyndr.modules.award.routes import bp as award_bp
from app.fyndr.modules.decision_brief.routes import bp as decision_brief_bp
from app.fyndr.modules.evaluation.routes import bp as evaluation_bp
from app.fyndr.modules.executive_summary.routes import bp as executive_summary_bp
from app.fyndr.modules.exports.routes import bp as exports_bp
from app.fyndr.modules.portal.routes import bp as portal_bp, buyer_bp as responses_bp
from app.fyndr.modules.requirements.routes import bp as requirements_bp
from app.fyndr.modules.rfps.routes import bp as rfps_bp
from app.fyndr.modules.scoring.routes import bp as scoring_bp
from app.fyndr.modules.suppliers.routes import access_bp as supplier_access_bp, bp as suppliers_bp
from app.fyndr.modules.timeline.routes import bp as timeline_bp
from app.fyndr.routes import bp as routes_bp
from app.fyndr.security import ensure_csrf_token, validate_csrf
from app.fyndr.storage import S3Storage, storage_from_config

API_PREFIX = "/api"

# Endpoints that mutate without a CSRF token (login/signup, magic-link exchange).
_CSRF_EXEMPT_PREFIXES = ("auth.", "supplier_access.")

_API_BLUEPRINTS = (
    rfps_bp,
    suppliers_bp,
    portal_bp,
    responses_bp,
    scoring_bp,
    evaluation_bp,
    decision_brief_bp,
    award_bp,
    executive_summary_bp,
    requirements_bp,
    archive_bp,
    timeline_bp,
    analytics_bp,
    exports_bp,
    activity_bp,
)


def _check_storage(app: Flask) -> None:
    missing_s3 = [
        key for key in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY") if not app.config.get(key)
    ]
    if missing_s3:
        app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))
        return
    try:
        storage = storage_from_config(app.config)
        if isinstance(storage, S3Storage):
            storage._client().head_bucket(Bucket=storage.bucket)
            app.logger.info("Storage health check PASSED: S3 bucket '%s' accessible", storage.bucket)
    except (BotoCoreError, ClientError) as e:
        app.logger.error("STORAGE CONFIG ERROR: Cannot access S3 bucket: %s", e)


def create_app(config_overrides: dict | None = None) -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    if config_overrides:
        app.config.update(config_overrides)
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/health", "/healthz")):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            if (request.endpoint or "").startswith(_CSRF_EXEMPT_PREFIXES):
                return None
            if not validate_csrf(request):
                return {"error": "CSRF token missing or invalid."}, 400

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    if hasattr(os, "register_at_fork"):
        def _after_fork_child():
            engine = app.extensions.get("sqlalchemy_engine")
            if engine:
                engine.dispose()
                app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

        os.register_at_fork(after_in_child=_after_fork_child)

    if app.config.get("STORAGE_BACKEND") == "s3":
        _check_storage(app)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(supplier_access_bp)
    for blueprint in _API_BLUEPRINTS:
        app.register_blueprint(blueprint, url_prefix=API_PREFIX)

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(ServiceError)
    def _service_error(e: ServiceError):
        return e.to_dict(), e.status_code

    @app.errorhandler(400)
    def _err_400(e):
        return {"error": getattr(e, "description", None) or "Bad request"}, 400

    @app.errorhandler(401)
    def _err_401(e):
        return {"error": "Authentication required"}, 401

    @app.errorhandler(403)
    def _err_403(e):
        missing = getattr(g, "missing_permission", None)
        if missing:
            app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
            return {"error": "Forbidden", "missingPermission": missing}, 403
        return {"error": "Forbidden"}, 403

    @app.errorhandler(404)
    def _err_404(e):
        return {"error": "Not found"}, 404

    @app.errorhandler(405)
    def _err_405(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def _err_413(e):
        return {"error": "File too large. Maximum size is 50MB."}, 413

    @app.errorhandler(500)
    def _err_500(e):
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return {"error": "Internal server error"}, 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
