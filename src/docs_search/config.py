"""Centralized configuration for docs-search using Pydantic Settings."""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ScoringWeights(BaseModel):
    """Additive relevance weights used by the query engine.

    The defaults are empirically tuned and reproduce the published ranking
    behaviour. They are exposed as configuration rather than constants so
    deployments can experiment without patching code.
    """

    model_config = ConfigDict(frozen=True)

    title_fuzzy: float = Field(default=100.0, ge=0.0, description="Multiplier for fuzzy title scores")
    content_fuzzy: float = Field(default=30.0, ge=0.0, description="Multiplier for fuzzy content scores")
    title_typo: float = Field(default=50.0, ge=0.0, description="Weight for edit-distance title credit")
    content_typo: float = Field(default=15.0, ge=0.0, description="Weight for edit-distance content credit")
    exact_title: float = Field(default=20.0, ge=0.0, description="Token equals the whole title")
    title_substring: float = Field(default=10.0, ge=0.0, description="Token found inside the title")
    content_substring: float = Field(default=2.0, ge=0.0, description="Token found inside the content")
    page_threshold: float = Field(default=5.0, ge=0.0, description="Minimum page score kept after pass 1")
    anchor_fuzzy_threshold: float = Field(default=0.40, ge=0.0, le=1.0, description="Minimum anchor fuzzy score")
    fuzzy_acceptance: float = Field(default=0.30, ge=0.0, le=1.0, description="Minimum normalized fuzzy score")
    min_fuzzy_query_length: int = Field(default=3, ge=1, description="Shortest raw query that enables fuzzy")


class Settings(BaseSettings):
    """Strictly typed configuration loaded from ``DOCS_SEARCH_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DOCS_SEARCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Index builder
    enable: bool = Field(default=True, description="Generate the search artifact during builds")
    max_heading_level: int = Field(default=3, ge=1, le=6, description="Deepest heading level indexed as an anchor")
    artifact_path: str = Field(default="assets/search-data.json", description="Artifact location relative to root")
    root_path: str = Field(default="", description="Site root prefix used when resolving artifact and page paths")

    # Artifact boosts carried in the envelope form
    boost: float | None = Field(default=None, ge=0.0, description="Global boost applied to all categories")
    boost_title: float | None = Field(default=None, ge=0.0, description="Title boost override")
    boost_content: float | None = Field(default=None, ge=0.0, description="Content boost override")
    boost_anchor: float | None = Field(default=None, ge=0.0, description="Anchor boost override")

    # Token map
    token_map_chunk_size: int = Field(default=100, ge=1, description="Documents processed between yields")

    # Execution strategy
    worker_threshold: int = Field(default=1000, ge=0, description="Corpus size above which the worker is used")
    worker_timeout_seconds: float = Field(default=5.0, gt=0.0, description="Worker reply timeout")
    large_corpus_threshold: int = Field(
        default=10000, ge=0, description="Corpus size above which pass 1 only scores token-map candidates"
    )

    # Streaming loader
    streaming_threshold_bytes: int = Field(default=1024 * 1024, ge=1, description="Payload size for chunked decode")
    streaming_yield_bytes: int = Field(default=100 * 1024, ge=1, description="Buffered text between yields")
    http_timeout: float = Field(default=30.0, gt=0.0, description="HTTP request timeout in seconds")

    # Queries
    default_limit: int = Field(default=10, ge=1, description="Result cap when callers pass no limit")
    scoring: ScoringWeights = Field(default_factory=ScoringWeights)

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")

    @model_validator(mode="after")
    def _check_thresholds(self) -> "Settings":
        if self.streaming_yield_bytes > self.streaming_threshold_bytes:
            raise ValueError("streaming_yield_bytes must not exceed streaming_threshold_bytes")
        return self

    def get_title_boost(self) -> float:
        """Effective title boost (falls back to ``boost`` then 100)."""
        return self._resolve_boost(self.boost_title, 100.0)

    def get_content_boost(self) -> float:
        """Effective content boost (falls back to ``boost`` then 30)."""
        return self._resolve_boost(self.boost_content, 30.0)

    def get_anchor_boost(self) -> float:
        """Effective anchor boost (falls back to ``boost`` then 10)."""
        return self._resolve_boost(self.boost_anchor, 10.0)

    def _resolve_boost(self, override: float | None, default: float) -> float:
        if override is not None:
            return override
        if self.boost is not None:
            return self.boost
        return default

    def get_artifact_candidates(self) -> list[str]:
        """Ordered artifact locations: the root-relative path, then the site-root fallback."""
        primary = f"{self.root_path}{self.artifact_path}"
        fallback = "/" + self.artifact_path.lstrip("/")
        if primary.lstrip("/") == fallback.lstrip("/"):
            return [primary]
        return [primary, fallback]

