"""
Orderbook Service Health Check Utilities
========================================

Aggregates component checks into a single healthy flag plus a
per-component breakdown.
"""

import time
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

HealthCheck = Callable[[], Awaitable[Dict[str, Any]]]


class OrderbookHealthChecker:
    """Orderbook Service specific health checker"""

    def __init__(self, service_name: str = "orderbook_service") -> None:
        self.service_name = service_name
        self.checks: Dict[str, HealthCheck] = {}
        self.start_time = time.time()

    def add_check(self, name: str, check_func: HealthCheck) -> None:
        """Add a health check coroutine function"""
        self.checks[name] = check_func

    async def run_checks(self, names: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """Run the named checks (all by default); a raising check counts as unhealthy"""
        selected = list(names) if names is not None else list(self.checks)
        results: Dict[str, Dict[str, Any]] = {}
        check_start_time = time.time()

        for name in selected:
            individual_start = time.time()
            try:
                result = await self.checks[name]()
            except Exception as e:
                result = {"status": "error", "error": str(e)}
            result["duration_ms"] = round((time.time() - individual_start) * 1000, 2)
            results[name] = result

        healthy = all(r.get("status") == "healthy" for r in results.values())
        return {
            "service": self.service_name,
            "healthy": healthy,
            "status": "healthy" if healthy else "unhealthy",
            "components": results,
            "duration_ms": round((time.time() - check_start_time) * 1000, 2),
            "uptime_seconds": round(time.time() - self.start_time, 2),
            "timestamp": time.time(),
        }


def component_status(ok: bool, **details: Any) -> Dict[str, Any]:
    return {"status": "healthy" if ok else "unhealthy", **details}
