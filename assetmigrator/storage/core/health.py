"""
Connection probe infrastructure for storage providers.

Provides a uniform result object for connectivity tests so that batch
diagnostics can keep going past a single unreachable provider.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from assetmigrator.storage.interfaces.provider import StorageProvider


class HealthStatus(Enum):
    """Provider health status."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"  # Reachable but slow or partially failing
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass
class ConnectionTestResult:
    """
    Result of a provider connection test.

    Attributes:
        success: Whether the provider answered a listing request
        message: Human-readable status message
        response_time_seconds: Time taken by the probe
        details: Provider-specific details (bucket, region, ...)
        exception: Exception captured when the probe failed
        checked_at: Timestamp of the probe
    """

    success: bool
    message: str
    response_time_seconds: float = 0.0
    details: dict[str, Any] = field(default_factory=dict)
    exception: BaseException | None = None
    checked_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def ok(
        cls,
        message: str = "Connection successful",
        details: dict[str, Any] | None = None,
        response_time_seconds: float = 0.0,
    ) -> "ConnectionTestResult":
        return cls(
            success=True,
            message=message,
            details=details or {},
            response_time_seconds=response_time_seconds,
        )

    @classmethod
    def failure(
        cls,
        message: str,
        exception: BaseException | None = None,
        details: dict[str, Any] | None = None,
        response_time_seconds: float = 0.0,
    ) -> "ConnectionTestResult":
        return cls(
            success=False,
            message=message,
            exception=exception,
            details=details or {},
            response_time_seconds=response_time_seconds,
        )

    @property
    def status(self) -> HealthStatus:
        """Map the probe outcome onto a health status."""
        if not self.success:
            return HealthStatus.UNHEALTHY
        if self.response_time_seconds > 5.0:
            return HealthStatus.DEGRADED
        return HealthStatus.HEALTHY

    def formatted(self) -> str:
        """One block of text suitable for console output."""
        output = ("✓ " if self.success else "✗ ") + self.message
        output += f" ({self.response_time_seconds:.2f}s)"
        for key, value in self.details.items():
            output += f"\n  {key}: {value}"
        if self.exception is not None:
            output += f"\n  Error: {self.exception}"
        return output

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for reports."""
        return {
            "success": self.success,
            "status": self.status.value,
            "message": self.message,
            "response_time_seconds": round(self.response_time_seconds, 3),
            "details": self.details,
            "error": str(self.exception) if self.exception else None,
            "checked_at": self.checked_at.isoformat(),
        }


async def probe_connection(
    provider: "StorageProvider",
    timeout_seconds: float = 10.0,
) -> ConnectionTestResult:
    """
    Probe a provider with timeout protection.

    Never raises: timeouts and unexpected exceptions are captured
    into a failed result.

    Args:
        provider: The provider to probe
        timeout_seconds: Maximum time to wait

    Returns:
        ConnectionTestResult (failed if timed out)
    """
    start = time.perf_counter()

    try:
        return await asyncio.wait_for(
            provider.test_connection(),
            timeout=timeout_seconds,
        )
    except asyncio.TimeoutError as e:
        return ConnectionTestResult.failure(
            f"Connection test timed out after {timeout_seconds}s",
            exception=e,
            details={"provider": provider.name},
            response_time_seconds=time.perf_counter() - start,
        )
    except Exception as e:
        return ConnectionTestResult.failure(
            f"Connection test failed: {e}",
            exception=e,
            details={"provider": provider.name, "error_type": type(e).__name__},
            response_time_seconds=time.perf_counter() - start,
        )
