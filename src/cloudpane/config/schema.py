"""Pydantic configuration models for cloudpane."""

from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field


class UIConfig(BaseModel):
    """Dashboard layout and polling."""

    sidebar_visible: bool = True
    refresh_interval: float = Field(default=30.0, gt=0)  # seconds between module ticks
    default_view: Literal["home", "overview"] = "home"


class GatewayConfig(BaseModel):
    """Admission control and retry for outbound calls."""

    rate: float = Field(default=10.0, gt=0)
    capacity: float = Field(default=20.0, ge=1)
    max_attempts: int = Field(default=4, ge=1)
    base_delay: float = Field(default=0.1, ge=0)
    multiplier: float = Field(default=2.0, ge=1)
    max_delay: float = Field(default=5.0, ge=0)
    jitter: float = Field(default=0.0, ge=0)
    timeout: Optional[float] = Field(default=30.0, gt=0)


class CacheConfig(BaseModel):
    """Response cache lifetimes in seconds."""

    default_ttl: float = Field(default=60.0, gt=0)
    overview_ttl: float = Field(default=900.0, gt=0)


class ModulesConfig(BaseModel):
    """Which modules to register. An empty list means all of them."""

    enabled: list[str] = Field(default_factory=list)

    def is_enabled(self, key: str) -> bool:
        return not self.enabled or key in self.enabled


class LoggingConfig(BaseModel):
    """Where the TUI writes its log (it owns the terminal while running)."""

    file: Path = Field(
        default_factory=lambda: Path.home() / ".config" / "cloudpane" / "debug.log"
    )


class CloudpaneConfig(BaseModel):
    """Root configuration model."""

    project: Optional[str] = None
    region: str = "us-central1"
    zone: Optional[str] = None
    debug: bool = False
    ui: UIConfig = Field(default_factory=UIConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    modules: ModulesConfig = Field(default_factory=ModulesConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
