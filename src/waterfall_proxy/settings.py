from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    HOST: str = Field(description="Interface the API server binds to", default="0.0.0.0")
    PORT: int = Field(description="Port the API server listens on", default=8000)
    LOG_LEVEL: str = Field(description="Root logging level", default="INFO")
    HEADER_TTL_S: float = Field(
        description="Seconds a parsed waterfall header stays fresh in the cache", default=300.0, gt=0
    )
    HEADER_TIMEOUT_S: float = Field(description="Deadline for waterfall header requests", default=5.0, gt=0)
    DATA_TIMEOUT_S: float = Field(
        description="Deadline for waterfall data requests (runs every tick)", default=3.0, gt=0
    )
    STATUS_TIMEOUT_S: float = Field(description="Deadline for station reachability probes", default=5.0, gt=0)
    TICK_INTERVAL_S: float = Field(
        description="Interval between waterfall lines in a stream session (~30 lines/sec)", default=0.033, gt=0
    )
    WATERFALL_BINS: int = Field(description="Frequency bins per waterfall line", default=512, gt=0)
    DEFAULT_MIN_HZ: int = Field(description="Default window start when a client omits it", default=7_000_000)
    DEFAULT_MAX_HZ: int = Field(description="Default window end when a client omits it", default=7_300_000)
    STATIONS_FILE: str | None = Field(
        description="Path to a JSON list of station records", default=None
    )
    MONGO_URI: str | None = Field(
        description="MongoDB URI holding station records (takes precedence over STATIONS_FILE)", default=None
    )
    MONGO_DATABASE: str = Field(description="MongoDB database holding station records", default="websdr_atlas")
    MONGO_COLLECTION: str = Field(description="MongoDB collection holding station records", default="stations")
    ENABLE_MCP: bool = Field(description="Expose HTTP tools over MCP at /llm", default=True)
    model_config = SettingsConfigDict(
        env_prefix="", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


config = Settings()
