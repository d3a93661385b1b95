"""
Health checks following the Health Check Response Format for HTTP APIs
draft and Kubernetes probe conventions (live / ready / startup).

Service-specific dependencies are plugged in with register_check; memory
is always checked.
"""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from typing import Any, Callable, Dict, List, Tuple
import os
import time
from datetime import datetime
from enum import Enum
import psutil
import logging

logger = logging.getLogger(__name__)

CheckFn = Callable[[], Dict[str, Any]]

def _now() -> str:
    return datetime.utcnow().isoformat() + "Z"

class HealthStatus(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    WARN = "warn"

def check_result(status_val: HealthStatus, component_type: str, **fields: Any) -> Dict[str, Any]:
    """Build one entry of the "checks" object"""
    return {"status": status_val, "componentType": component_type, "time": _now(), **fields}

class ServiceHealth:
    """Health, readiness, startup and metrics endpoints for one service"""

    def __init__(self, service_name: str, version: str = "1.0.0"):
        self.service_name = service_name
        self.version = version
        self.start_time = time.time()
        self.checks_performed = 0
        self.last_check_time = None
        self._readiness: List[Tuple[str, CheckFn]] = []
        self._startup: List[Tuple[str, CheckFn]] = []
        self._metrics: List[Callable[[], Dict[str, Any]]] = []

    def register_check(self, name: str, fn: CheckFn, startup: bool = False) -> None:
        (self._startup if startup else self._readiness).append((name, fn))

    def register_metrics(self, fn: Callable[[], Dict[str, Any]]) -> None:
        self._metrics.append(fn)

    def create_health_router(self) -> APIRouter:
        router = APIRouter(tags=["health"])

        @router.get("/health", status_code=status.HTTP_200_OK)
        async def health_check() -> Dict[str, Any]:
            """Liveness probe for load balancers"""
            return {
                "status": HealthStatus.PASS,
                "service": self.service_name,
                "version": self.version,
                "releaseId": os.getenv("RELEASE_ID", "unknown"),
                "timestamp": _now()
            }

        @router.get("/health/live", status_code=status.HTTP_200_OK)
        async def liveness() -> Dict[str, Any]:
            return {"status": "alive"}

        @router.get("/health/ready")
        async def readiness() -> JSONResponse:
            checks = self.perform_readiness_checks()
            overall_status = self.calculate_overall_status(checks)
            status_code = status.HTTP_200_OK if overall_status != HealthStatus.FAIL else status.HTTP_503_SERVICE_UNAVAILABLE

            return JSONResponse(status_code=status_code, content={
                "status": overall_status,
                "version": self.version,
                "releaseId": os.getenv("RELEASE_ID", "unknown"),
                "checks": checks,
                "serviceId": self.service_name,
                "description": f"{self.service_name} service",
                "timestamp": _now()
            })

        @router.get("/health/startup")
        async def startup() -> Any:
            checks = self._run(self._startup)
            if self.calculate_overall_status(checks) == HealthStatus.FAIL:
                return JSONResponse(
                    status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                    content={"status": "starting", "checks": checks}
                )
            return {"status": "started", "checks": checks}

        @router.get("/metrics")
        async def metrics() -> Dict[str, Any]:
            process = psutil.Process()
            memory = process.memory_info()
            body = {
                "service": self.service_name,
                "version": self.version,
                "uptime_seconds": time.time() - self.start_time,
                "checks_performed": self.checks_performed,
                "timestamp": _now(),
                "system": {
                    "memory_rss_bytes": memory.rss,
                    "memory_vms_bytes": memory.vms,
                    "num_threads": process.num_threads()
                }
            }
            for fn in self._metrics:
                body.update(fn())
            return body

        return router

    def perform_readiness_checks(self) -> Dict[str, Dict[str, Any]]:
        self.checks_performed += 1
        self.last_check_time = time.time()
        checks = self._run(self._readiness)
        checks["system:memory"] = self._check_memory()
        return checks

    def _run(self, registered: List[Tuple[str, CheckFn]]) -> Dict[str, Dict[str, Any]]:
        checks = {}
        for name, fn in registered:
            try:
                checks[name] = fn()
            except Exception as e:
                logger.error(f"Health check {name} failed: {e}")
                checks[name] = check_result(HealthStatus.FAIL, "component", output=str(e))
        return checks

    def _check_memory(self) -> Dict[str, Any]:
        try:
            available_mb = psutil.virtual_memory().available / (1024 ** 2)
        except Exception as e:
            return check_result(HealthStatus.WARN, "system", output=str(e))

        if available_mb < 100:
            status_val = HealthStatus.FAIL
        elif available_mb < 500:
            status_val = HealthStatus.WARN
        else:
            status_val = HealthStatus.PASS
        return check_result(status_val, "system", observedValue=f"{available_mb:.2f}", observedUnit="MB")

    @staticmethod
    def calculate_overall_status(checks: Dict[str, Dict[str, Any]]) -> HealthStatus:
        statuses = [check.get("status", HealthStatus.PASS) for check in checks.values()]
        if HealthStatus.FAIL in statuses:
            return HealthStatus.FAIL
        if HealthStatus.WARN in statuses:
            return HealthStatus.WARN
        return HealthStatus.PASS
