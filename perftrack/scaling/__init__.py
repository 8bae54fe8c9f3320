from perftrack.scaling.autoscaler import ScalingPolicy, StoreBackedAutoScaler
from perftrack.scaling.interfaces import (
    NO_ACTION,
    SCALE_DOWN,
    SCALE_UP,
    AutoScaler,
    LoadBalancerStatus,
    Prediction,
    ScalingDecision,
)

__all__ = [
    'ScalingPolicy',
    'StoreBackedAutoScaler',
    'NO_ACTION',
    'SCALE_DOWN',
    'SCALE_UP',
    'AutoScaler',
    'LoadBalancerStatus',
    'Prediction',
    'ScalingDecision',
]
