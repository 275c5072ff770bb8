"""Engine configuration."""

from typing import Optional

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class EngineConfig(BaseSettings):
    """Configuration for the resolution engine and card event machine."""
    
    model_config = ConfigDict(
        env_prefix="RAILFLOW_",
        env_file=".env",
        extra="ignore",  # Ignore extra fields from .env
    )
    
    # Collaborators
    collaborator_timeout_seconds: float = 2.0
    rail_service_host: str = "127.0.0.1"
    rail_service_port: int = 8011
    history_lookback_days: int = 30
    
    # Risk thresholds (amount strictly above => level)
    medium_risk_above: float = 50.0
    high_risk_above: float = 500.0
    
    # Card events
    default_currency: str = "MYR"
    event_timeout_seconds: Optional[float] = 300.0
    
    # Observed behaviour keeps zero-balance rails out of top-up
    allow_zero_balance_top_up: bool = False
    
    # Audit ledger (None = in-memory)
    ledger_path: Optional[str] = None
    
    # API server
    host: str = "127.0.0.1"
    port: int = 8010


config = EngineConfig()
