import logging

from dotenv import load_dotenv
from flask import Flask, g, request
from werkzeug.exceptions import HTTPException

from app.store.config import is_production, load_config
from app.store.db import init_db, teardown_db_session
from app.store.identity import identity_from_config
from app.store.mailer import email_sender_from_config
from app.store.modules.orders.stripe_client import payment_client_from_config
from app.store.routes import bp as routes_bp
from app.store.auth import bp as auth_bp, load_current_user
from app.store.profile import bp as profile_bp
from app.store.admin import bp as admin_bp
from app.store.modules.categories.routes import bp as categories_bp
from app.store.modules.templates.routes import bp as templates_bp
from app.store.modules.blog.routes import bp as blog_bp
from app.store.modules.orders.routes import bp as payment_bp
from app.store.utils import error_response

_UNAUTHENTICATED_PATHS = ("/health", "/healthz", "/storage/")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.json.sort_keys = False

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Production guardrails (fail fast with clear logs)
    if is_production(app.config):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
        if app.config.get("DEV_USER_ID"):
            app.logger.warning("DEV_USER_ID is set but ignored in production.")
        if not app.config.get("STRIPE_WEBHOOK_SECRET"):
            app.logger.error("STRIPE_WEBHOOK_SECRET is not set; Stripe webhooks will be rejected.")

    init_db(app)

    # External adapters; tests swap these for fakes.
    app.extensions["identity_client"] = identity_from_config(app.config)
    app.extensions["payment_client"] = payment_client_from_config(app.config)
    app.extensions["email_sender"] = email_sender_from_config(app.config)

    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [k for k in ("S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY") if not app.config.get(k)]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))
    if not app.extensions["identity_client"].configured:
        app.logger.warning("Cognito is not configured; bearer tokens will be rejected.")

    prefix = app.config["API_PREFIX"]
    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix=f"{prefix}/auth")
    app.register_blueprint(profile_bp, url_prefix=f"{prefix}/profile")
    app.register_blueprint(templates_bp, url_prefix=f"{prefix}/templates")
    app.register_blueprint(blog_bp, url_prefix=f"{prefix}/blog")
    app.register_blueprint(categories_bp, url_prefix=f"{prefix}/categories")
    app.register_blueprint(payment_bp, url_prefix=f"{prefix}/payment")
    app.register_blueprint(admin_bp, url_prefix=f"{prefix}/admin")

    @app.before_request
    def _load_user_wrapper():
        if request.path.startswith(_UNAUTHENTICATED_PATHS) or request.path == "/":
            g.current_user = None
            return None
        return load_current_user()

    @app.after_request
    def _log_request(response):
        if not request.path.startswith(("/health", "/healthz")):
            app.logger.info(
                "%s %s %s request_id=%s",
                request.method,
                request.path,
                response.status_code,
                getattr(g, "request_id", None),
            )
        rid = getattr(g, "request_id", None)
        if rid:
            response.headers["X-Request-ID"] = rid
        return response

    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):
        if e.code == 413:
            return error_response("File too large", 413)
        return error_response(e.description if e.code not in (404, 405) else e.name, e.code or 500)

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        app.logger.error("Unhandled 500 (request_id=%s)", rid, exc_info=getattr(e, "original_exception", None))
        return error_response("Internal server error", 500)

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
