"""Telemetry port for pipeline counters and distributions."""

from typing import Any, Protocol


class TelemetryPort(Protocol):
    """Port for telemetry. Implementations must never raise into the caller."""

    def incr(self, name: str, tags: dict[str, Any] | None = None) -> None:
        """Increment a counter metric."""
        ...

    def observe(self, name: str, value: float, tags: dict[str, Any] | None = None) -> None:
        """Observe a value for histogram/summary metric."""
        ...


class NullTelemetry:
    """Telemetry sink that drops everything (tests, telemetry disabled)."""

    def incr(self, name: str, tags: dict[str, Any] | None = None) -> None:
        return None

    def observe(self, name: str, value: float, tags: dict[str, Any] | None = None) -> None:
        return None
