"""
Main entrypoint: FastAPI server for listing intake and moderation.

Env: DATABASE_URL or LISTGUARD_DB_PATH, API_HOST, API_PORT, LOG_LEVEL, etc.
(.env in the project root is loaded when present.)

Equivalent: uvicorn backend_listguard.api_server.app:app --host 0.0.0.0 --port 8000
"""

# Configure structured JSON logging before other imports that may log
from backend_listguard.listguard_logging import get_logger

logger = get_logger("main")


def main() -> None:
    """Ensure the schema, then run the API server in the main thread."""
    from backend_listguard.config import get_settings
    from backend_listguard.database import get_database

    settings = get_settings()
    db = get_database(settings.database_url)
    db.dispose()

    from backend_listguard.api_server.app import app
    import uvicorn

    logger.info("main_server_starting", host=settings.api_host, port=settings.api_port)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
