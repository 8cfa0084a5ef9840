"""Configuration settings for the laboratory case workflow engine."""

import os


def get_postgres_uri():
    """Get PostgreSQL connection URI from environment variables."""
    host = os.environ.get("DB_HOST", "localhost")
    port = 5433 if host == "localhost" else 5432
    password = os.environ.get("DB_PASSWORD", "lab_workflow_pass")
    user = os.environ.get("DB_USER", "lab_workflow_user")
    db_name = os.environ.get("DB_NAME", "lab_workflow_db")
    return f"postgresql://{user}:{password}@{host}:{port}/{db_name}"


def get_redis_host_and_port():
    """Get Redis connection details from environment variables."""
    host = os.environ.get("REDIS_HOST", "localhost")
    port = int(os.environ.get("REDIS_PORT", 6379))
    return dict(host=host, port=port)


def get_api_host_and_port():
    """Get API bind address from environment variables."""
    host = os.environ.get("API_HOST", "0.0.0.0")
    port = int(os.environ.get("API_PORT", 8000))
    return dict(host=host, port=port)


def get_case_events_channel():
    """Redis channel that receives case status change notifications."""
    return os.environ.get("CASE_EVENTS_CHANNEL", "laboratory:case-events")


def get_default_technician_capacity() -> int:
    """Concurrent case capacity used when a technician record has none."""
    return int(os.environ.get("DEFAULT_TECHNICIAN_CAPACITY", 10))
