"""
Prometheus-compatible metrics for observability.

Tracks the booking workflow:
- Slot claims (by outcome)
- Fan-out notifications (sent, skipped as duplicate, failed)
- Side-effect failures (payment link, team chat)
- Proposal sweeps

Usage:
    from src.lib.metrics import get_metrics_collector

    metrics = get_metrics_collector()
    metrics.increment_slot_claims(outcome="claimed")
    metrics.increment_notifications(status="sent")

    # Export for Prometheus
    prometheus_output = metrics.export_prometheus()
"""

from typing import Dict, Tuple
from threading import Lock


class MetricsCollector:
    """
    Prometheus-style metrics collector.

    Counters:
    - slot_claims_total: Claim attempts (labels: outcome)
    - booking_notifications_total: Push notifications (labels: status)
    - side_effect_failures_total: Best-effort side effects that failed (labels: effect)
    - proposal_sweeps_total: Sweep results (labels: action)

    Thread-safe for concurrent increments.
    """

    _HELP = {
        "slot_claims_total": "Slot claim attempts by outcome",
        "booking_notifications_total": "Booking push notifications by status",
        "side_effect_failures_total": "Failed best-effort side effects by effect",
        "proposal_sweeps_total": "Proposals handled by the sweeper by action",
    }

    def __init__(self):
        self._lock = Lock()

        # Counters: key = (metric_name, labels_tuple), value = count
        self._counters: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], int] = {}

    def _get_counter_key(self, metric_name: str, labels: Dict[str, str]) -> Tuple[str, Tuple[Tuple[str, str], ...]]:
        """Generate unique key for counter with sorted labels."""
        return (metric_name, tuple(sorted(labels.items())))

    def _increment(self, metric_name: str, labels: Dict[str, str], amount: int = 1):
        """Thread-safe increment of counter."""
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + amount

    def get_value(self, metric_name: str, **labels: str) -> int:
        """Get current value of counter."""
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            return self._counters.get(key, 0)

    def increment_slot_claims(self, outcome: str, amount: int = 1):
        """
        Increment slot claim counter.

        Args:
            outcome: claimed, already_claimed, rejected
        """
        self._increment("slot_claims_total", {"outcome": outcome.lower()}, amount)

    def increment_notifications(self, status: str, amount: int = 1):
        """Increment push notification counter (sent, skipped_duplicate, failed)."""
        if amount:
            self._increment("booking_notifications_total", {"status": status.lower()}, amount)

    def increment_side_effect_failures(self, effect: str, amount: int = 1):
        """Increment failed side effect counter (payment_link, team_chat)."""
        self._increment("side_effect_failures_total", {"effect": effect.lower()}, amount)

    def increment_sweeps(self, action: str, amount: int = 1):
        """Increment sweeper counter (expired_notified, claim_repaired)."""
        if amount:
            self._increment("proposal_sweeps_total", {"action": action.lower()}, amount)

    def export_prometheus(self) -> str:
        """
        Export all metrics in Prometheus text format.

        Returns:
            Prometheus-compatible text output
        """
        output_lines = []

        metrics_by_name: Dict[str, list] = {}
        with self._lock:
            for (metric_name, labels_tuple), value in self._counters.items():
                metrics_by_name.setdefault(metric_name, []).append((dict(labels_tuple), value))

        for metric_name in sorted(metrics_by_name.keys()):
            help_text = self._HELP.get(metric_name, metric_name)
            output_lines.append(f"# HELP {metric_name} {help_text}")
            output_lines.append(f"# TYPE {metric_name} counter")

            for labels_dict, value in sorted(metrics_by_name[metric_name], key=lambda x: str(x[0])):
                labels_str = ",".join([f'{k}="{v}"' for k, v in sorted(labels_dict.items())])
                output_lines.append(f"{metric_name}{{{labels_str}}} {value}")

            output_lines.append("")

        return "\n".join(output_lines)

    def reset(self):
        """Clear all counters (tests only)."""
        with self._lock:
            self._counters.clear()


# Global metrics collector
_metrics_collector = MetricsCollector()


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector instance."""
    return _metrics_collector
