"""
Auto-Scaler capability consumed by the scheduled monitoring jobs.

The scheduler treats the scaler as opaque: it only inspects the shape of the
returned objects to decide whether to push a notification.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Protocol

SCALE_UP = 'scale_up'
SCALE_DOWN = 'scale_down'
NO_ACTION = 'no_action'


@dataclass(frozen=True)
class ScalingDecision:
    action: str
    reason: str
    confidence: float
    current_instances: Optional[int] = None
    target_instances: Optional[int] = None
    timestamp: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Prediction:
    predicted_cpu: float
    current_instances: int
    recommended_instances: int
    confidence: float
    reason: str
    timestamp: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class LoadBalancerStatus:
    healthy: int
    unhealthy: int
    total: int
    unhealthy_instances: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AutoScaler(Protocol):
    async def evaluate_scaling(self) -> ScalingDecision:
        ...

    async def predictive_scaling(self) -> Optional[Prediction]:
        ...

    async def manage_load_balancer(self) -> LoadBalancerStatus:
        ...


__all__ = [
    'SCALE_UP',
    'SCALE_DOWN',
    'NO_ACTION',
    'ScalingDecision',
    'Prediction',
    'LoadBalancerStatus',
    'AutoScaler',
]
