# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus Metrics Exporter

Exports staking pool metrics in Prometheus format.

Metrics:
- Operations applied / rejected, by type and error code
- Operation latency
- Per-asset pool totals (total staked, custody balance, stakes by status)
- Saturation events on the aggregate counter
"""

from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry

# Create registry for metrics
metrics_registry = CollectorRegistry()

# ═══════════════════════════════════════════════════════════════════
# OPERATION METRICS
# ═══════════════════════════════════════════════════════════════════

operations_total = Counter(
    'stakepool_operations_total',
    'Total number of committed operations',
    ['op_type'],
    registry=metrics_registry
)

operations_rejected_total = Counter(
    'stakepool_operations_rejected_total',
    'Total number of rejected operations',
    ['op_type', 'error'],
    registry=metrics_registry
)

operation_duration_seconds = Histogram(
    'stakepool_operation_duration_seconds',
    'Time to validate and commit an operation',
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0],
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# POOL METRICS
# ═══════════════════════════════════════════════════════════════════

total_staked = Gauge(
    'stakepool_total_staked',
    'Aggregate amount currently staked in the pool',
    ['asset_id'],
    registry=metrics_registry
)

custody_balance = Gauge(
    'stakepool_custody_balance',
    'Balance of the pool custody account',
    ['asset_id'],
    registry=metrics_registry
)

stakes_by_status = Gauge(
    'stakepool_stakes',
    'Number of stake records by status',
    ['asset_id', 'status'],
    registry=metrics_registry
)

saturation_events_total = Counter(
    'stakepool_saturation_events_total',
    'Times the aggregate counter was clamped instead of wrapping',
    ['asset_id', 'direction'],
    registry=metrics_registry
)


# ═══════════════════════════════════════════════════════════════════
# HELPER FUNCTIONS
# ═══════════════════════════════════════════════════════════════════

def record_operation(op_type, duration: float):
    operations_total.labels(op_type=op_type.value).inc()
    operation_duration_seconds.observe(duration)


def record_rejection(op_type, error_code: str):
    operations_rejected_total.labels(op_type=op_type.value, error=error_code).inc()


def record_saturation(asset_id: str, direction: str):
    saturation_events_total.labels(asset_id=asset_id, direction=direction).inc()


def update_pool_metrics(pool, custody: int):
    total_staked.labels(asset_id=pool.asset_id).set(pool.total_staked)
    custody_balance.labels(asset_id=pool.asset_id).set(custody)


def update_metrics(service):
    """
    Refresh all pool gauges from storage.
    Called when metrics are scraped. Only updates Gauges.

    Args:
        service: StakingService instance
    """
    from ...protocol.types.common import StakeStatus

    for pool in service.list_pools():
        update_pool_metrics(pool, service.balance_of_account(pool.custody_account))

        counts = {status: 0 for status in StakeStatus}
        for stake in service.list_stakes(asset_id=pool.asset_id):
            counts[stake.status] += 1
        for status, count in counts.items():
            stakes_by_status.labels(asset_id=pool.asset_id, status=status.value).set(count)
