from pydantic_settings import BaseSettings


class Config(BaseSettings):
    """Library configuration loaded from environment variables."""

    database_url: str  # e.g. mongodb://localhost:27017/app, database name is taken from the path
    debug: bool = False
    counters_collection: str = "counters"  # Collection holding one record per counter
    increment_retries: int = 3  # Attempts when two upserts race to create the same counter

    model_config = {
        "env_file": [".env"],
        "env_prefix": "DOCSEQUENCE_",
        "extra": "ignore",
    }
