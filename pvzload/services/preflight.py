"""
Preflight

Health check del servicio objetivo antes de generar carga. Sus requests
no se registran en las métricas de la corrida.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

import httpx

from pvzload.utils.errors import PreflightError
from pvzload.utils.logger import get_logger

logger = get_logger(__name__)


class HealthStatus(str, Enum):
    """Estados posibles de salud."""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNREACHABLE = "unreachable"


@dataclass
class TargetHealth:
    """Resultado del health check del servicio objetivo."""
    url: str
    status: HealthStatus
    status_code: int = 0
    message: str = ""
    latency_ms: float = 0.0
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY

    def to_dict(self) -> Dict[str, Any]:
        """Convierte a diccionario."""
        return {
            "url": self.url,
            "status": self.status.value,
            "status_code": self.status_code,
            "message": self.message,
            "latency_ms": round(self.latency_ms, 2),
            "checked_at": self.checked_at.isoformat(),
        }


async def check_target_health(client: httpx.AsyncClient, path: str = "/healthz") -> TargetHealth:
    """
    Consulta el endpoint de salud del servicio.

    Args:
        client: Cliente httpx con base_url del servicio
        path: Ruta del health check

    Returns:
        TargetHealth; nunca lanza por errores de transporte
    """
    url = str(client.base_url.join(path))
    started = time.perf_counter()
    try:
        response = await client.get(path)
    except httpx.TransportError as e:
        return TargetHealth(
            url=url,
            status=HealthStatus.UNREACHABLE,
            message=f"{type(e).__name__}: {e}",
            latency_ms=(time.perf_counter() - started) * 1000,
        )

    latency_ms = (time.perf_counter() - started) * 1000
    healthy = 200 <= response.status_code < 300
    return TargetHealth(
        url=url,
        status=HealthStatus.HEALTHY if healthy else HealthStatus.UNHEALTHY,
        status_code=response.status_code,
        message=response.text[:200],
        latency_ms=latency_ms,
    )


async def run_preflight(
    client: httpx.AsyncClient,
    path: str = "/healthz",
    required: bool = False
) -> TargetHealth:
    """
    Ejecuta el preflight y loggea el resultado.

    Raises:
        PreflightError: Si required y el servicio no está sano
    """
    health = await check_target_health(client, path)

    if health.healthy:
        logger.info(f"Preflight OK: {health.url} ({health.latency_ms:.1f}ms)")
        return health

    message = (
        f"Preflight falló: {health.url} -> {health.status.value} "
        f"(status={health.status_code}) {health.message}"
    )
    if required:
        logger.error(message)
        raise PreflightError(message, status_code=health.status_code)

    logger.warning(f"{message}. Se continúa porque el preflight no es obligatorio")
    return health
