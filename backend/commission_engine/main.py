import logging
import os

from dotenv import load_dotenv
from flask import Flask, jsonify
from sqlalchemy import text

logger = logging.getLogger(__name__)

# Only load from .env when DATABASE_URL is not already defined by the environment
if not os.getenv("DATABASE_URL"):
    load_dotenv()


def test_database_connection():
    """Test database connection"""
    from commission_engine.db.session import get_engine

    try:
        with get_engine().connect() as connection:
            connection.execute(text("SELECT 1"))
            return True
    except Exception as e:
        logger.error(
            "Database connection failed",
            extra={"context": {"error": str(e)}},
            exc_info=True,
        )
        return False


def create_app():
    app = Flask(__name__)

    env = os.getenv("FLASK_ENV", "development")
    is_production = env == "production"

    from commission_engine.core.logging_config import setup_logging

    setup_logging(
        app=app,
        log_level=logging.INFO if is_production else logging.DEBUG,
        enable_sql_echo=os.getenv("SQL_ECHO", "0") == "1",
        log_to_file=os.getenv("LOG_TO_FILE", "0") == "1",
        use_json_format=is_production,
    )

    from commission_engine.core.config import log_commission_config

    log_commission_config()

    from commission_engine.db.session import create_tables, get_engine

    create_tables()
    logger.info(
        "Database ready",
        extra={"context": {"driver": get_engine().dialect.name}},
    )

    from commission_engine.controllers.commission_controller import commission_bp

    app.register_blueprint(commission_bp)

    @app.route("/health")
    def health_check():
        db_status = test_database_connection()
        return jsonify(
            {
                "status": "healthy" if db_status else "unhealthy",
                "database": "connected" if db_status else "disconnected",
            }
        ), (200 if db_status else 503)

    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=int(os.getenv("PORT", "5000")))
