"""Pydantic models describing ghmirror settings."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


class MirrorConfig(BaseModel):
    """Remote API access settings."""

    urlbase: str = "https://api.github.com/"
    token: str | None = None
    per_page: int = Field(default=100, ge=1, le=100)
    timeout: float = Field(default=15.0, gt=0)
    # Page bound for commit listings of newly seen repositories
    commit_pages_new_repo: int = 3

    @field_validator("urlbase")
    @classmethod
    def _ensure_trailing_slash(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("urlbase cannot be empty")
        return value if value.endswith("/") else value + "/"


class MongoConfig(BaseModel):
    """Document store connection settings."""

    uri: str = "mongodb://localhost:27017"
    database: str = "github"


class AmqpConfig(BaseModel):
    """Broker connection settings."""

    host: str = "localhost"
    port: int = 5672
    username: str = "guest"
    password: str = "guest"
    virtual_host: str = "/"
    exchange: str = "github"


class PublishTarget(BaseModel):
    """How records of one collection become messages."""

    collection: str
    # Dotted path of the payload; empty means the whole record
    payload: str = ""
    routing_field: str
    routing_key_template: str

    @model_validator(mode="after")
    def _validate_template(self) -> "PublishTarget":
        if self.routing_key_template.count("%s") != 1:
            raise ValueError("routing_key_template must contain exactly one '%s'")
        if not self.routing_field:
            raise ValueError("routing_field cannot be empty")
        return self

    def routing_key(self, value: str) -> str:
        return self.routing_key_template % value


def _default_targets() -> dict[str, PublishTarget]:
    return {
        "commits": PublishTarget(
            collection="commits",
            payload="",
            routing_field="sha",
            routing_key_template="commit.%s",
        ),
        "events": PublishTarget(
            collection="events",
            payload="",
            routing_field="type",
            routing_key_template="evt.%s",
        ),
    }


class PublisherConfig(BaseModel):
    """Batching controls for the queue loader."""

    batch_size: int = Field(default=1000, ge=1)


class Settings(BaseModel):
    """Top level settings document."""

    mirror: MirrorConfig = Field(default_factory=MirrorConfig)
    mongo: MongoConfig = Field(default_factory=MongoConfig)
    amqp: AmqpConfig = Field(default_factory=AmqpConfig)
    publisher: PublisherConfig = Field(default_factory=PublisherConfig)
    targets: dict[str, PublishTarget] = Field(default_factory=_default_targets)

    @field_validator("targets", mode="before")
    @classmethod
    def _fill_collection_names(cls, value: Any) -> Any:
        if isinstance(value, dict):
            filled: dict[str, Any] = {}
            for name, target in value.items():
                if isinstance(target, dict):
                    target = {"collection": name, **target}
                filled[name] = target
            return filled
        return value

    def target(self, name: str) -> PublishTarget:
        try:
            return self.targets[name]
        except KeyError:
            raise KeyError(f"No publish target configured for collection '{name}'") from None


__all__ = [
    "AmqpConfig",
    "MirrorConfig",
    "MongoConfig",
    "PublishTarget",
    "PublisherConfig",
    "Settings",
]
