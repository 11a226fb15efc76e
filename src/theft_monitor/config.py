import os
import re
from collections import Counter
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from theft_monitor.models import MeterRole


def _substitute_env_vars(value: str) -> str:
    """Replace ${ENV_VAR} patterns with environment variable values."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        env_val = os.environ.get(var_name)
        if env_val is None:
            raise ValueError(f"Environment variable {var_name!r} is not set")
        return env_val

    return re.sub(r"\$\{([^}]+)}", replacer, value)


def _walk_and_substitute(obj: object) -> object:
    """Recursively substitute env vars in all string values."""
    if isinstance(obj, str):
        return _substitute_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _walk_and_substitute(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_walk_and_substitute(item) for item in obj]
    return obj


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 5000


class DatabaseConfig(BaseModel):
    url: str = "sqlite:///theft_monitor.db"
    echo: bool = False


class SimulationConfig(BaseModel):
    reading_interval: float = 5.0
    short_log_interval: float = 60.0
    long_log_interval: float = 300.0
    voltage: float = 220.0
    branch_power: tuple[int, int] = (50, 300)
    sink_power: tuple[int, int] = (50, 200)
    tolerance_percent: float = 5.0
    seed: int | None = None

    @field_validator("reading_interval", "short_log_interval", "long_log_interval", "voltage")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("branch_power", "sink_power")
    @classmethod
    def validate_range(cls, v: tuple[int, int]) -> tuple[int, int]:
        low, high = v
        if low < 0 or low > high:
            raise ValueError("power range must be [low, high] with 0 <= low <= high")
        return v


class MeterDefinition(BaseModel):
    id: str
    name: str
    role: MeterRole
    owner: str | None = None


def _default_meters() -> list[MeterDefinition]:
    return [
        MeterDefinition(id="A-001", name="Street Input", role=MeterRole.SOURCE),
        MeterDefinition(id="A-002", name="Syed Hassan", role=MeterRole.BRANCH),
        MeterDefinition(id="A-003", name="Orangzaib", role=MeterRole.BRANCH),
        MeterDefinition(id="A-004", name="Maliha Bibi", role=MeterRole.BRANCH),
        MeterDefinition(id="A-005", name="To Next Street", role=MeterRole.SINK),
    ]


class AppConfig(BaseModel):
    server: ServerConfig = Field(default_factory=ServerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    meters: list[MeterDefinition] = Field(default_factory=_default_meters)

    @model_validator(mode="after")
    def validate_network(self) -> "AppConfig":
        roles = Counter(m.role for m in self.meters)
        if roles[MeterRole.SOURCE] != 1 or roles[MeterRole.SINK] != 1:
            raise ValueError("meters must define exactly one source and exactly one sink")
        ids = Counter(m.id for m in self.meters)
        dupes = sorted(i for i, n in ids.items() if n > 1)
        if dupes:
            raise ValueError(f"duplicate meter ids: {', '.join(dupes)}")
        return self


def load_config(path: str | Path) -> AppConfig:
    """Load and validate configuration from a YAML file.

    A missing file yields the default configuration.
    """
    path = Path(path)
    if not path.exists():
        return AppConfig()

    with path.open() as f:
        raw = yaml.safe_load(f)

    if raw is None:
        raw = {}

    raw = _walk_and_substitute(raw)
    return AppConfig.model_validate(raw)
