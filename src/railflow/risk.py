"""Risk policy - injected assessment of a payment request."""

from abc import ABC, abstractmethod
from decimal import Decimal
from enum import Enum
from typing import Optional

from railflow.config import EngineConfig, config as default_config
from railflow.rails.models import PaymentRequest


class RiskLevel(str, Enum):
    """Risk of a payment request."""
    
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RiskPolicy(ABC):
    """Pure function of the request; no I/O."""
    
    @abstractmethod
    def assess(self, request: PaymentRequest) -> RiskLevel:
        pass


class ThresholdRiskPolicy(RiskPolicy):
    """
    Amount-based risk bands.
    
    Above `high_above` always needs confirmation; above `medium_above`
    exceeds the auto-approve ceiling.
    """
    
    def __init__(
        self,
        medium_above: Optional[Decimal] = None,
        high_above: Optional[Decimal] = None,
        config: Optional[EngineConfig] = None,
    ):
        cfg = config or default_config
        self.medium_above = Decimal(str(medium_above if medium_above is not None else cfg.medium_risk_above))
        self.high_above = Decimal(str(high_above if high_above is not None else cfg.high_risk_above))
        if self.medium_above > self.high_above:
            raise ValueError("medium_above must not exceed high_above")
    
    def assess(self, request: PaymentRequest) -> RiskLevel:
        if request.amount > self.high_above:
            return RiskLevel.HIGH
        if request.amount > self.medium_above:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW


class FixedRiskPolicy(RiskPolicy):
    """Always returns the same level."""
    
    def __init__(self, level: RiskLevel = RiskLevel.LOW):
        self.level = level
    
    def assess(self, request: PaymentRequest) -> RiskLevel:
        return self.level
