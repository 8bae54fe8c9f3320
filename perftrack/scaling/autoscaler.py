"""
Store-backed threshold auto-scaler.

Decisions are derived from the metrics_timeline samples written by the
system-metrics job. The current instance count is kept in scaling:instances and
every applied decision is appended to scaling_history. Load balancer health is
read from the lb:instances hash, which maps instance ids to "healthy" or
"unhealthy" and is maintained by the deployment tooling.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import structlog

from perftrack.cache.client import StoreClient
from perftrack.monitoring.store import now_ms
from perftrack.scaling.interfaces import (
    NO_ACTION,
    SCALE_DOWN,
    SCALE_UP,
    LoadBalancerStatus,
    Prediction,
    ScalingDecision,
)

logger = structlog.get_logger(__name__)

INSTANCES_KEY = 'scaling:instances'
HISTORY_KEY = 'scaling_history'
LOAD_BALANCER_KEY = 'lb:instances'
METRICS_TIMELINE_KEY = 'metrics_timeline'


@dataclass
class ScalingPolicy:
    """High/low water marks; CPU and memory in percent, response time in ms."""

    min_instances: int = 2
    max_instances: int = 10

    cpu_scale_up: float = 70.0
    cpu_scale_down: float = 30.0
    memory_scale_up: float = 80.0
    memory_scale_down: float = 40.0
    response_time_scale_up_ms: float = 1000.0
    response_time_scale_down_ms: float = 300.0

    trend_window: int = 10
    lookahead_periods: int = 5
    history_size: int = 100


class StoreBackedAutoScaler:
    def __init__(self, store: StoreClient, policy: Optional[ScalingPolicy] = None):
        self.store = store
        self.policy = policy or ScalingPolicy()

    async def _recent_samples(self, count: int) -> List[Dict[str, Any]]:
        """Most recent metrics_timeline samples, oldest first."""
        members = await self.store.zrevrange(METRICS_TIMELINE_KEY, 0, count - 1)
        return [json.loads(member) for member in reversed(members)]

    async def current_instances(self) -> int:
        value = await self.store.get(INSTANCES_KEY)
        return int(value) if value is not None else self.policy.min_instances

    async def _apply(self, target: int, record: Dict[str, Any]) -> None:
        await self.store.set(INSTANCES_KEY, target)
        pipe = self.store.pipeline()
        pipe.lpush(HISTORY_KEY, json.dumps(record))
        pipe.ltrim(HISTORY_KEY, 0, self.policy.history_size - 1)
        await pipe.execute()

    async def evaluate_scaling(self) -> ScalingDecision:
        policy = self.policy
        samples = await self._recent_samples(1)
        current = await self.current_instances()

        if not samples:
            return ScalingDecision(
                action=NO_ACTION,
                reason='No system metrics available',
                confidence=0.0,
                current_instances=current,
                target_instances=current,
                timestamp=now_ms(),
            )

        latest = samples[-1]
        readings = [
            ('cpu', float(latest.get('cpu', 0)), policy.cpu_scale_up, policy.cpu_scale_down),
            ('memory', float(latest.get('memory', 0)), policy.memory_scale_up, policy.memory_scale_down),
            ('response_time', float(latest.get('response_time', 0)),
             policy.response_time_scale_up_ms, policy.response_time_scale_down_ms),
        ]

        breaches = [f"{name} = {value} (threshold: {high})" for name, value, high, _ in readings if value > high]
        all_low = all(value < low for _, value, _, low in readings)

        action, target = NO_ACTION, current
        if breaches and current < policy.max_instances:
            action, target = SCALE_UP, current + 1
            reason = '; '.join(breaches)
            confidence = 0.5 + 0.25 * (len(breaches) - 1)
        elif breaches:
            reason = f"At maximum instances ({policy.max_instances}): {'; '.join(breaches)}"
            confidence = 1.0
        elif all_low and current > policy.min_instances:
            action, target = SCALE_DOWN, current - 1
            reason = 'All metrics below scale-down thresholds'
            headroom = [1 - value / low for _, value, _, low in readings if low > 0]
            confidence = sum(headroom) / len(headroom) if headroom else 0.5
        else:
            reason = 'Metrics within normal range'
            confidence = 1.0

        decision = ScalingDecision(
            action=action,
            reason=reason,
            confidence=round(min(max(confidence, 0.0), 1.0), 2),
            current_instances=current,
            target_instances=target,
            timestamp=now_ms(),
        )

        if action != NO_ACTION:
            await self._apply(target, decision.to_dict())
            logger.info(
                "Scaling decision applied",
                action=action,
                current_instances=current,
                target_instances=target,
                confidence=decision.confidence
            )

        return decision

    async def predictive_scaling(self) -> Optional[Prediction]:
        """
        Extrapolate the CPU trend over the recent samples and adjust capacity
        one step ahead of the thresholds (80% of the scale-up mark, 120% of the
        scale-down mark).
        """
        policy = self.policy
        samples = await self._recent_samples(policy.trend_window)
        if len(samples) < 3:
            return None

        cpu_values = [float(sample.get('cpu', 0)) for sample in samples]
        trend = (cpu_values[-1] - cpu_values[0]) / (len(cpu_values) - 1)
        predicted = cpu_values[-1] + trend * policy.lookahead_periods

        current = await self.current_instances()
        if predicted > policy.cpu_scale_up * 0.8 and current < policy.max_instances:
            recommended = current + 1
        elif predicted < policy.cpu_scale_down * 1.2 and current > policy.min_instances:
            recommended = current - 1
        else:
            return None

        prediction = Prediction(
            predicted_cpu=round(predicted, 2),
            current_instances=current,
            recommended_instances=recommended,
            confidence=round(min(1.0, len(samples) / policy.trend_window), 2),
            reason=f"Predictive scaling: predicted cpu = {predicted:.2f}",
            timestamp=now_ms(),
        )

        await self._apply(recommended, prediction.to_dict())
        logger.info(
            "Predictive scaling applied",
            predicted_cpu=prediction.predicted_cpu,
            current_instances=current,
            recommended_instances=recommended
        )
        return prediction

    async def manage_load_balancer(self) -> LoadBalancerStatus:
        instances = await self.store.hgetall(LOAD_BALANCER_KEY)
        unhealthy = sorted(
            instance_id for instance_id, state in instances.items() if state != 'healthy'
        )
        return LoadBalancerStatus(
            healthy=len(instances) - len(unhealthy),
            unhealthy=len(unhealthy),
            total=len(instances),
            unhealthy_instances=unhealthy,
        )


__all__ = [
    'ScalingPolicy',
    'StoreBackedAutoScaler',
]
