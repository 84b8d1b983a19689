"""
Pytest Configuration and Fixtures

Configuración global de pytest y fixtures compartidos.
"""

import json
import os
import sys
import uuid
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

import httpx
import pytest

# Agregar el directorio raíz al path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================

def pytest_configure(config):
    """Configuración de pytest."""
    # Establecer entorno de test
    os.environ["ENVIRONMENT"] = "development"
    os.environ["BASE_URL"] = "http://pvz.test"
    os.environ["LOG_TO_FILE"] = "false"
    os.environ["LOG_LEVEL"] = "DEBUG"
    os.environ["PREFLIGHT_ENABLED"] = "false"


# ============================================================================
# FAKE PVZ SERVICE
# ============================================================================

class FakePVZService:
    """
    Servicio PVZ en memoria para httpx.MockTransport.

    Responde como el servicio real en el camino feliz y permite forzar
    status, errores de transporte o logins sin token por ruta.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.status_overrides: Dict[Tuple[str, str], int] = {}
        self.transport_errors: Set[Tuple[str, str]] = set()
        self.omit_jwt_for: Set[str] = set()
        self.pvzs: Dict[str, dict] = {}

    # ------------------------------------------------------------------
    # Inspección
    # ------------------------------------------------------------------

    def calls(self, method: Optional[str] = None, path: Optional[str] = None) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if (method is None or r.method == method)
            and (path is None or r.url.path == path)
        ]

    def sequence(self) -> List[Tuple[str, str]]:
        return [(r.method, r.url.path) for r in self.requests]

    # ------------------------------------------------------------------
    # Handler
    # ------------------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)

        if key in self.transport_errors:
            raise httpx.ConnectError("connection refused", request=request)

        if key in self.status_overrides:
            return httpx.Response(self.status_overrides[key], json={"message": "forced error"})

        body = json.loads(request.content) if request.content else {}

        if key == ("POST", "/dummyLogin"):
            role = body.get("role")
            if role in self.omit_jwt_for:
                return httpx.Response(200, json={})
            return httpx.Response(200, json={"jwt": f"token-{role}"})

        if key == ("POST", "/pvz"):
            pvz = {
                "id": str(uuid.uuid4()),
                "city": body.get("city"),
                "registrationDate": "2024-05-08T12:00:00.000Z",
            }
            self.pvzs[pvz["id"]] = pvz
            return httpx.Response(201, json=pvz)

        if key == ("POST", "/receptions"):
            return httpx.Response(201, json={
                "id": str(uuid.uuid4()),
                "pvzId": body.get("pvzId"),
                "status": "in_progress",
            })

        if key == ("POST", "/products"):
            return httpx.Response(201, json={
                "id": str(uuid.uuid4()),
                "type": body.get("type"),
            })

        if key == ("GET", "/pvz"):
            return httpx.Response(200, json=list(self.pvzs.values())[:10])

        if key == ("GET", "/healthz"):
            return httpx.Response(200, text="ok")

        return httpx.Response(404, json={"message": "not found"})


@pytest.fixture
def pvz_service() -> FakePVZService:
    """Servicio PVZ falso y limpio para cada test."""
    return FakePVZService()


@pytest.fixture
def mock_transport(pvz_service) -> httpx.MockTransport:
    """Transporte httpx que responde con el servicio falso."""
    return httpx.MockTransport(pvz_service.handler)


# ============================================================================
# ENGINE FIXTURES
# ============================================================================

@pytest.fixture
def run_options():
    """Opciones cortas para tests."""
    from pvzload.core.options import RunOptions

    return RunOptions.build(
        stages=[("1s", 2)],
        graceful_ramp_down="1s",
        graceful_stop="1s",
        thresholds={
            "http_req_duration": ["p(95)<1000"],
            "checks": ["rate>0.99"],
        },
        base_url="http://pvz.test",
        scheduler_tick=0.05,
    )


@pytest.fixture
def aggregator():
    """Agregador vacío."""
    from pvzload.metrics.aggregator import MetricsAggregator

    return MetricsAggregator()


@pytest.fixture
def sleep_calls():
    """Lista donde el sleep falso registra las pausas pedidas."""
    return []


@pytest.fixture
def fake_sleep(sleep_calls):
    """Sleep que no espera: registra la pausa y cede el loop."""
    import asyncio

    async def _sleep(seconds: float) -> None:
        sleep_calls.append(seconds)
        await asyncio.sleep(0)

    return _sleep
