# docmap/config.py
from __future__ import annotations
import os
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Mongo
    mongo_uri: str = os.getenv("MONGO_URI", "mongodb://localhost:27017/docmap")
    # used when the connection string does not name a database
    mongo_db: str = os.getenv("MONGO_DB", "docmap")

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    service_name: str = os.getenv("SERVICE_NAME", "docmap")

    model_config = SettingsConfigDict(env_file=None, extra="ignore")


settings = Settings()
