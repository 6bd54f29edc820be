from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CanConfig(BaseModel):
    channel: str = "can0"
    interface: str = "socketcan"
    bitrate: int = 250000


class BatchConfig(BaseModel):
    tick_ms: float = Field(default=500.0, gt=0)
    max_batch_size: int = Field(default=200, ge=1)
    flush_interval_ms: float = Field(default=3000.0, ge=0)
    # None keeps the queue unbounded
    max_queue_size: int | None = Field(default=None, ge=1)


class SinkConfig(BaseModel):
    base_url: str = "http://localhost:5000"
    readings_path: str = "/api/telemetry/readings"
    timeout_s: float = Field(default=5.0, gt=0)
    max_workers: int = Field(default=8, ge=1)


class SimulationConfig(BaseModel):
    log_file: Path | None = None
    rate_hz: float = Field(default=10.0, gt=0)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "structured"
    log_to_file: bool = False
    log_file: Path = Path("logs/j1939_collector.log")


class MetricsConfig(BaseModel):
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 9091


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="J1939_", env_nested_delimiter="__")

    device_id: str = "ENG001"
    mapping_file: Path | None = None

    can: CanConfig = Field(default_factory=CanConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    sink: SinkConfig = Field(default_factory=SinkConfig)
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)


def get_settings() -> Settings:
    return Settings()
