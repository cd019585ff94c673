# src/async_resource_storage/mongodb/settings.py

import os
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pydantic import BaseModel, Field, field_validator


class MongoSettings(BaseModel):
    """Connection settings for a MongoDB backed storage handler."""

    uri: str = "mongodb://localhost:27017"
    database: str
    collection: str
    server_selection_timeout_ms: int = Field(default=30000, gt=0)
    tz_aware: bool = False

    @field_validator("database", "collection")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value

    @classmethod
    def from_env(
        cls, prefix: str = "MONGO_", collection: Optional[str] = None
    ) -> "MongoSettings":
        """
        Builds settings from environment variables.

        Reads `{prefix}URI`, `{prefix}DATABASE`, `{prefix}COLLECTION` and
        `{prefix}SERVER_SELECTION_TIMEOUT_MS`. An explicit `collection`
        argument wins over the environment.
        """
        values = {
            "database": os.getenv(f"{prefix}DATABASE", ""),
            "collection": collection or os.getenv(f"{prefix}COLLECTION", ""),
        }
        uri = os.getenv(f"{prefix}URI")
        if uri:
            values["uri"] = uri
        timeout = os.getenv(f"{prefix}SERVER_SELECTION_TIMEOUT_MS")
        if timeout:
            values["server_selection_timeout_ms"] = int(timeout)
        return cls(**values)

    def create_client(self) -> AsyncIOMotorClient:
        return AsyncIOMotorClient(
            self.uri,
            serverSelectionTimeoutMS=self.server_selection_timeout_ms,
            tz_aware=self.tz_aware,
        )
