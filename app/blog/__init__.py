import logging

from flask import Flask, g, jsonify, request
from dotenv import load_dotenv
from werkzeug.exceptions import HTTPException

# Load every table onto Base.metadata before any blueprint imports a module model.
import app.blog.models  # noqa: F401
from app.blog.config import load_config
from app.blog.db import init_db, teardown_db_session
from app.blog.mailer import email_backend_from_config
from app.blog.routes import bp as routes_bp
from app.blog.auth import bp as auth_bp, load_current_user
from app.blog.webhooks import bp as webhooks_bp
from app.blog.admin import bp as admin_bp
from app.blog.modules.posts.routes import bp as posts_bp
from app.blog.modules.posts.admin import bp as admin_posts_bp
from app.blog.modules.categories.admin import bp as categories_bp
from app.blog.modules.subscribers.routes import bp as subscribe_bp
from app.blog.modules.subscribers.admin import bp as admin_subscribers_bp
from app.blog.modules.notifications.routes import bp as notify_bp
from app.blog.modules.notifications.admin import bp as admin_notifications_bp
from app.blog.modules.media.routes import bp as media_bp

_ERROR_MESSAGES = {
    400: "Bad request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not found",
    405: "Method not allowed",
    413: "File too large",
}


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates")
    app.config.from_mapping(load_config())

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
        if not app.config.get("AUTH_JWT_KEY"):
            raise RuntimeError("AUTH_JWT_KEY is required in production.")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        import os
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.extensions["email_backend"] = email_backend_from_config(app.config)

    # Storage health check (fail loudly on misconfiguration)
    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = []
        for key in ("S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
            if not app.config.get(key):
                missing_s3.append(key)
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/users")
    app.register_blueprint(webhooks_bp, url_prefix="/api/webhooks")
    app.register_blueprint(posts_bp, url_prefix="/api")
    app.register_blueprint(subscribe_bp, url_prefix="/api")
    app.register_blueprint(notify_bp, url_prefix="/api")
    app.register_blueprint(admin_bp, url_prefix="/api/admin")
    app.register_blueprint(admin_posts_bp, url_prefix="/api/admin")
    app.register_blueprint(categories_bp, url_prefix="/api/admin")
    app.register_blueprint(admin_subscribers_bp, url_prefix="/api/admin")
    app.register_blueprint(admin_notifications_bp, url_prefix="/api/admin")
    app.register_blueprint(media_bp)

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(HTTPException)
    def _err_http(e):  # type: ignore[no-redef]
        code = e.code or 500
        if code == 403:
            app.logger.warning(
                "Forbidden: missing_role=%s request_id=%s",
                getattr(g, "missing_role", None),
                getattr(g, "request_id", None),
            )
        if code == 413:
            return jsonify({"error": "File too large"}), 413
        return jsonify({"error": _ERROR_MESSAGES.get(code, e.name)}), code

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        # Ensure stack trace shows in the platform logs.
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 (request_id=%s, path=%s)", rid, request.path)
        return jsonify({"error": "Internal server error"}), 500

    # Startup logging
    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
