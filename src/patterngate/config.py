"""
Configuration management for PatternGate.
"""

import json
import os
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, model_validator

from .exceptions import ConfigurationError


class EngineConfig(BaseModel):
    """Snapshot store and recomputation settings."""

    recompute_interval_seconds: float = Field(default=5.0, gt=0.0, le=3600.0)
    recompute_on_update: bool = Field(default=True)
    retention_hours: float = Field(default=24.0, gt=0.0)
    horizon_hours: Optional[float] = Field(default=None, gt=0.0)


class GateConfig(BaseModel):
    """Trade gate and sizing parameters."""

    min_confidence: float = Field(default=0.6, ge=0.0, le=1.0)
    high_confidence_pct: int = Field(default=75, ge=0, le=100)
    high_allocation: float = Field(default=0.75, gt=0.0, le=1.0)
    base_allocation: float = Field(default=0.50, gt=0.0, le=1.0)
    default_lot_size: int = Field(default=50, ge=1)

    # Contract premium estimate when the market context supplies none
    premium_atr_multiple: float = Field(default=3.0, gt=0.0)
    premium_atr_fallback_pct: float = Field(default=0.004, gt=0.0)
    premium_floor_pct: float = Field(default=0.008, gt=0.0)
    min_contract_stop: float = Field(default=0.5, gt=0.0)

    @model_validator(mode="after")
    def check_allocations(self) -> "GateConfig":
        if self.base_allocation > self.high_allocation:
            raise ValueError("base_allocation must not exceed high_allocation")
        return self


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO")
    file_path: str = Field(default="./logs/patterngate.log")
    max_size: str = Field(default="10MB")
    backup_count: int = Field(default=5)


class Config(BaseModel):
    """Main configuration class."""

    engine: EngineConfig = Field(default_factory=EngineConfig)
    gate: GateConfig = Field(default_factory=GateConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def load_from_env(cls, env_file: Optional[str] = None) -> "Config":
        """Load configuration from environment variables."""
        if env_file:
            load_dotenv(env_file)
        else:
            # Try to load from .env file in current directory
            env_path = Path(".env")
            if env_path.exists():
                load_dotenv(env_path)

        try:
            horizon = os.getenv("PATTERNGATE_HORIZON_HOURS")
            engine = EngineConfig(
                recompute_interval_seconds=float(os.getenv("PATTERNGATE_RECOMPUTE_INTERVAL", "5.0")),
                recompute_on_update=os.getenv("PATTERNGATE_RECOMPUTE_ON_UPDATE", "true").lower() == "true",
                retention_hours=float(os.getenv("PATTERNGATE_RETENTION_HOURS", "24")),
                horizon_hours=float(horizon) if horizon else None,
            )

            gate = GateConfig(
                min_confidence=float(os.getenv("PATTERNGATE_MIN_CONFIDENCE", "0.6")),
                high_confidence_pct=int(os.getenv("PATTERNGATE_HIGH_CONFIDENCE_PCT", "75")),
                high_allocation=float(os.getenv("PATTERNGATE_HIGH_ALLOCATION", "0.75")),
                base_allocation=float(os.getenv("PATTERNGATE_BASE_ALLOCATION", "0.50")),
                default_lot_size=int(os.getenv("PATTERNGATE_DEFAULT_LOT_SIZE", "50")),
            )

            logging = LoggingConfig(
                level=os.getenv("LOG_LEVEL", "INFO"),
                file_path=os.getenv("LOG_FILE_PATH", "./logs/patterngate.log"),
                max_size=os.getenv("LOG_MAX_SIZE", "10MB"),
                backup_count=int(os.getenv("LOG_BACKUP_COUNT", "5"))
            )
        except (ValueError, ValidationError) as e:
            raise ConfigurationError(f"Invalid environment configuration: {e}") from e

        return cls(engine=engine, gate=gate, logging=logging)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "Config":
        """Load configuration from a JSON file; missing sections keep defaults."""
        config_path = Path(path)
        try:
            with open(config_path, "r") as f:
                data = json.load(f)
            return cls.model_validate(data)
        except FileNotFoundError as e:
            raise ConfigurationError(f"Configuration file not found: {config_path}") from e
        except (json.JSONDecodeError, ValidationError) as e:
            raise ConfigurationError(f"Invalid configuration in {config_path}: {e}") from e
