"""
Tests de integración del escenario PVZ contra el servicio falso.

Cada test ejecuta una iteración con ScenarioExecutor sobre
httpx.MockTransport, con reloj y random inyectados.
"""

import json
import random
from datetime import datetime, timezone

import pytest

from pvzload.core.models import IterationOutcome
from pvzload.core.options import RunOptions
from pvzload.engine.executor import ScenarioExecutor
from pvzload.engine.scenario import HttpStep, Scenario
from pvzload.scenarios.pvz_flow import (
    PVZFlowConfig,
    build_pvz_scenario,
    to_iso_utc,
    CHECK_PVZ_CREATED,
    CHECK_RECEPTION_OPENED,
    CHECK_PRODUCT_ADDED,
    CHECK_PVZ_LIST,
    TAG_PRODUCT_CREATE,
    TAG_PVZ_CREATE,
    GROUP_RECEPTION,
)
from pvzload.services.http_client import LoadHTTPClient
from pvzload.utils.errors import ConfigurationError


FIXED_NOW = datetime(2024, 5, 8, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def flow_config():
    return PVZFlowConfig(clock=lambda: FIXED_NOW, rng=random.Random(42))


@pytest.fixture
def options():
    return RunOptions.build(stages=[("1s", 1)], base_url="http://pvz.test")


async def run_one_iteration(options, transport, aggregator, sleep, config):
    scenario = build_pvz_scenario(config)
    async with LoadHTTPClient(options, transport=transport) as client:
        executor = ScenarioExecutor(scenario, client, aggregator, sleep=sleep)
        return await executor.run_iteration(vu_id=1, iteration=0)


class TestScenarioDefinition:
    """Tests de la definición del escenario."""

    def test_tags_en_orden(self):
        scenario = build_pvz_scenario()
        assert scenario.request_names == (
            "/dummyLogin (moderator)",
            "/pvz (create)",
            "/dummyLogin (employee)",
            "/receptions (create)",
            "/products (create)",
            "/pvz (filtered get)",
        )
        assert scenario.slots == ("moderator_token", "pvz_id", "employee_token")

    def test_slot_no_declarado(self):
        with pytest.raises(ConfigurationError):
            Scenario(
                name="roto",
                slots=(),
                steps=(HttpStep(name="x", method="GET", path="/", auth="token"),),
            )

    def test_iso_utc(self):
        assert to_iso_utc(FIXED_NOW) == "2024-05-08T12:00:00.000Z"
        assert to_iso_utc(datetime(2024, 5, 1, 9, 30, 15, 123456)) == "2024-05-01T09:30:15.123Z"


class TestHappyPath:
    """Camino feliz: la iteración completa."""

    @pytest.mark.asyncio
    async def test_secuencia_de_requests(
        self, options, mock_transport, pvz_service, aggregator, fake_sleep, sleep_calls, flow_config
    ):
        outcome = await run_one_iteration(options, mock_transport, aggregator, fake_sleep, flow_config)

        assert outcome == IterationOutcome.COMPLETE
        assert pvz_service.sequence() == (
            [("POST", "/dummyLogin"), ("POST", "/pvz"), ("POST", "/dummyLogin"), ("POST", "/receptions")]
            + [("POST", "/products")] * 5
            + [("GET", "/pvz")]
        )
        assert sleep_calls == [0.1] * 5 + [1.0]

    @pytest.mark.asyncio
    async def test_tokens_y_payloads(
        self, options, mock_transport, pvz_service, aggregator, fake_sleep, flow_config
    ):
        await run_one_iteration(options, mock_transport, aggregator, fake_sleep, flow_config)

        login, create, employee_login, reception, product = pvz_service.requests[:5]
        assert json.loads(login.content) == {"role": "moderator"}
        assert json.loads(employee_login.content) == {"role": "employee"}
        assert "Authorization" not in login.headers

        assert create.headers["Authorization"] == "Bearer token-moderator"
        assert create.headers["Content-Type"] == "application/json"
        assert json.loads(create.content) == {"city": "Москва"}

        pvz_id = next(iter(pvz_service.pvzs))
        assert reception.headers["Authorization"] == "Bearer token-employee"
        assert json.loads(reception.content) == {"pvzId": pvz_id}
        assert json.loads(product.content) == {"pvzId": pvz_id, "type": "одежда"}

    @pytest.mark.asyncio
    async def test_lectura_filtrada(
        self, options, mock_transport, pvz_service, aggregator, fake_sleep, flow_config
    ):
        await run_one_iteration(options, mock_transport, aggregator, fake_sleep, flow_config)

        read = pvz_service.calls("GET", "/pvz")[0]
        params = read.url.params
        assert int(params["page"]) == random.Random(42).randint(1, 10)
        assert params["limit"] == "10"
        assert params["startDate"] == "2024-05-01T12:00:00.000Z"
        assert params["endDate"] == "2024-05-08T12:00:00.000Z"
        assert read.headers["Authorization"] == "Bearer token-employee"

    @pytest.mark.asyncio
    async def test_metricas_de_la_iteracion(
        self, options, mock_transport, aggregator, fake_sleep, flow_config
    ):
        await run_one_iteration(options, mock_transport, aggregator, fake_sleep, flow_config)

        result = aggregator.build_result()
        assert result.http_reqs == 10
        assert result.http_req_failed == 0
        assert result.checks_rate == 1.0
        assert result.checks[CHECK_PRODUCT_ADDED].passes == 5
        assert result.endpoints[TAG_PRODUCT_CREATE].requests == 5
        assert result.iterations["complete"] == 1
        assert aggregator.metric_value("http_reqs", "count", tag=("group", GROUP_RECEPTION)) == 6.0


class TestShortCircuit:
    """Cortes del flujo por fallos del servicio."""

    @pytest.mark.asyncio
    async def test_pvz_no_creado_termina_la_iteracion(
        self, options, mock_transport, pvz_service, aggregator, fake_sleep, sleep_calls, flow_config
    ):
        """Si /pvz no devuelve 201 no hay requests de recepción ni de productos."""
        pvz_service.status_overrides[("POST", "/pvz")] = 500

        outcome = await run_one_iteration(options, mock_transport, aggregator, fake_sleep, flow_config)

        assert outcome == IterationOutcome.INCOMPLETE
        assert pvz_service.sequence() == [("POST", "/dummyLogin"), ("POST", "/pvz")]
        assert pvz_service.calls(path="/receptions") == []
        assert pvz_service.calls(path="/products") == []
        assert sleep_calls == []

        result = aggregator.build_result()
        assert result.checks[CHECK_PVZ_CREATED].fails == 1
        assert result.endpoints[TAG_PVZ_CREATE].failed == 1
        assert result.iterations["incomplete"] == 1

    @pytest.mark.asyncio
    async def test_recepcion_fallida_salta_productos_pero_lee(
        self, options, mock_transport, pvz_service, aggregator, fake_sleep, sleep_calls, flow_config
    ):
        """Sin recepción se saltan los productos; la lectura filtrada se ejecuta."""
        pvz_service.status_overrides[("POST", "/receptions")] = 400

        outcome = await run_one_iteration(options, mock_transport, aggregator, fake_sleep, flow_config)

        assert outcome == IterationOutcome.COMPLETE
        assert pvz_service.calls(path="/products") == []
        assert len(pvz_service.calls("GET", "/pvz")) == 1
        assert sleep_calls == [1.0]

        result = aggregator.build_result()
        assert result.checks[CHECK_RECEPTION_OPENED].fails == 1
        assert result.checks[CHECK_PVZ_LIST].passes == 1
        assert CHECK_PRODUCT_ADDED not in result.checks

    @pytest.mark.asyncio
    async def test_login_sin_token(
        self, options, mock_transport, pvz_service, aggregator, fake_sleep, flow_config
    ):
        """Sin jwt del moderador la iteración termina incompleta por dependencia."""
        pvz_service.omit_jwt_for.add("moderator")

        outcome = await run_one_iteration(options, mock_transport, aggregator, fake_sleep, flow_config)

        assert outcome == IterationOutcome.INCOMPLETE
        assert pvz_service.sequence() == [("POST", "/dummyLogin")]
        assert aggregator.errors.get_counts() == {"DEPENDENCY": 1}
        result = aggregator.build_result()
        assert result.http_req_failed == 0
        assert result.checks_fails == 0

    @pytest.mark.asyncio
    async def test_error_de_transporte(
        self, options, mock_transport, pvz_service, aggregator, fake_sleep, flow_config
    ):
        """Un fallo de conexión registra status 0, checks fallidos e iteración fallida."""
        pvz_service.transport_errors.add(("POST", "/products"))

        outcome = await run_one_iteration(options, mock_transport, aggregator, fake_sleep, flow_config)

        assert outcome == IterationOutcome.FAILED
        assert len(pvz_service.calls(path="/products")) == 1
        assert pvz_service.calls("GET", "/pvz") == []

        result = aggregator.build_result()
        assert result.endpoints[TAG_PRODUCT_CREATE].failed == 1
        assert result.checks[CHECK_PRODUCT_ADDED].fails == 1
        assert result.iterations["failed"] == 1
        counts = aggregator.errors.get_counts()
        assert counts["TRANSPORT"] == 1
        assert counts["CHECK"] == 1


class TestConfigurableFlow:
    """El flujo respeta la configuración."""

    @pytest.mark.asyncio
    async def test_cantidad_y_tipo_de_productos(
        self, options, mock_transport, pvz_service, aggregator, fake_sleep
    ):
        config = PVZFlowConfig(
            products_per_reception=2,
            product_type="обувь",
            city="Казань",
            iteration_think_time=0,
            clock=lambda: FIXED_NOW,
            rng=random.Random(1),
        )

        await run_one_iteration(options, mock_transport, aggregator, fake_sleep, config)

        products = pvz_service.calls(path="/products")
        assert len(products) == 2
        assert all(json.loads(p.content)["type"] == "обувь" for p in products)
        assert json.loads(pvz_service.calls("POST", "/pvz")[0].content) == {"city": "Казань"}
