"""
Tests para el agregador de métricas.
"""

import asyncio
import random
import threading

import pytest

from pvzload.core.models import IterationOutcome
from pvzload.metrics.aggregator import MetricsAggregator, TrendSeries, percentile, trend_value
from pvzload.metrics.thresholds import parse_thresholds
from pvzload.utils.errors import DependencyMissing, TransportError
from tests.factories import RequestSampleFactory, CheckResultFactory


class TestPercentile:
    """Tests para percentile y trend_value."""

    def test_interpolacion_lineal(self):
        data = [10.0, 20.0, 30.0, 40.0]
        assert percentile(data, 50) == pytest.approx(25.0)
        assert percentile(data, 0) == 10.0
        assert percentile(data, 100) == 40.0
        assert percentile(data, 95) == pytest.approx(38.5)

    def test_no_depende_del_orden(self):
        assert percentile([40.0, 10.0, 30.0, 20.0], 50) == pytest.approx(25.0)

    def test_serie_vacia(self):
        """Series vacías agregan a 0.0."""
        assert percentile([], 95) == 0.0
        for aggregation in ("avg", "min", "med", "max", "p"):
            assert trend_value([], aggregation, 95) == 0.0

    def test_trend_value(self):
        data = [10.0, 20.0, 60.0]
        assert trend_value(data, "avg") == pytest.approx(30.0)
        assert trend_value(data, "min") == 10.0
        assert trend_value(data, "max") == 60.0
        assert trend_value(data, "med") == 20.0


class TestTrendSeries:
    """Tests para TrendSeries: memoria acotada por serie."""

    def test_exacta_bajo_el_limite(self):
        series = TrendSeries(max_samples=10)
        for value in (40.0, 10.0, 30.0, 20.0):
            series.add(value)

        assert len(series) == 4
        assert series.value("p", 95) == pytest.approx(38.5)
        assert series.value("med") == pytest.approx(25.0)
        assert series.value("avg") == pytest.approx(25.0)

    def test_acotada_sobre_el_limite(self):
        """count, avg, min y max siguen exactos; el reservorio no crece."""
        series = TrendSeries(max_samples=500, rng=random.Random(7))
        for value in range(10000):
            series.add(float(value))

        assert len(series) == 500
        assert series.count == 10000
        assert series.min == 0.0
        assert series.max == 9999.0
        assert series.value("avg") == pytest.approx(4999.5)
        assert 3500.0 < series.value("med") < 6500.0
        assert series.value("p", 95) > 8000.0

    def test_orden_reutilizado_hasta_nueva_muestra(self):
        series = TrendSeries(max_samples=10)
        series.add(5.0)
        first = series.sorted_samples()

        assert series.sorted_samples() is first
        series.add(1.0)
        assert series.sorted_samples() == [1.0, 5.0]

    def test_limite_invalido(self):
        with pytest.raises(ValueError):
            TrendSeries(max_samples=0)

    def test_agregacion_desconocida(self):
        with pytest.raises(ValueError):
            TrendSeries().value("sum")

    def test_aggregator_respeta_el_limite(self):
        aggregator = MetricsAggregator(max_samples=100, rng=random.Random(1))
        for value in range(1000):
            aggregator.record_request(
                RequestSampleFactory.build(name="/pvz (create)", duration_ms=float(value))
            )

        result = aggregator.build_result()

        assert result.http_req_duration.count == 1000
        assert result.http_req_duration.max == 999.0
        assert result.endpoints["/pvz (create)"].duration.min == 0.0
        assert len(aggregator._durations) == 100
        assert all(len(series) <= 100 for series in aggregator._durations_by_tag.values())


class TestRecording:
    """Tests para el registro de muestras."""

    def test_requests_y_fallos(self, aggregator):
        aggregator.record_request(RequestSampleFactory(duration_ms=10.0))
        aggregator.record_request(RequestSampleFactory(duration_ms=30.0, server_error=True))
        aggregator.record_request(RequestSampleFactory(duration_ms=20.0, transport_error=True))

        assert aggregator.total_requests == 3
        assert aggregator.metric_value("http_reqs", "count") == 3.0
        assert aggregator.metric_value("http_req_failed", "rate") == pytest.approx(2 / 3)
        assert aggregator.metric_value("http_req_duration", "avg") == pytest.approx(20.0)

    def test_status_4xx_cuenta_como_fallido(self, aggregator):
        aggregator.record_request(RequestSampleFactory(status=400))
        aggregator.record_request(RequestSampleFactory(status=201))
        assert aggregator.metric_value("http_req_failed", "rate") == pytest.approx(0.5)

    def test_por_tag(self, aggregator):
        aggregator.record_request(RequestSampleFactory(name="/pvz (create)", duration_ms=50.0))
        aggregator.record_request(RequestSampleFactory(filtered_read=True, duration_ms=10.0))

        assert aggregator.metric_value(
            "http_req_duration", "max", tag=("name", "/pvz (create)")
        ) == 50.0
        assert aggregator.metric_value(
            "http_req_duration", "max", tag=("group", "Read PVZ Data with Filters")
        ) == 10.0
        assert aggregator.metric_value("http_reqs", "count", tag=("name", "inexistente")) == 0.0

    def test_checks(self, aggregator):
        aggregator.record_checks([
            CheckResultFactory(name="a", passed=True),
            CheckResultFactory(name="a", passed=False),
            CheckResultFactory(name="b", passed=True, group="g"),
        ])

        assert aggregator.metric_value("checks", "rate") == pytest.approx(2 / 3)
        assert aggregator.metric_value("checks", "rate", tag=("check", "a")) == pytest.approx(0.5)
        assert aggregator.metric_value("checks", "rate", tag=("group", "g")) == 1.0

    def test_rates_vacios(self, aggregator):
        assert aggregator.metric_value("checks", "rate") == 0.0
        assert aggregator.metric_value("http_req_failed", "rate") == 0.0
        assert aggregator.metric_value("http_req_duration", "p", percentile_value=95) == 0.0

    def test_iteraciones(self, aggregator):
        aggregator.record_iteration(IterationOutcome.COMPLETE, 100.0)
        aggregator.record_iteration(IterationOutcome.COMPLETE, 300.0)
        aggregator.record_iteration(IterationOutcome.INCOMPLETE, 20.0)
        aggregator.record_iteration(IterationOutcome.CANCELLED, 5.0)

        assert aggregator.iteration_count() == 4
        assert aggregator.metric_value("iterations", "count") == 4.0
        assert aggregator.metric_value("iterations_complete", "count") == 2.0
        assert aggregator.metric_value("iterations_cancelled", "count") == 1.0
        assert aggregator.metric_value("iteration_duration", "max") == 300.0

    def test_vus(self, aggregator):
        for vus in (1, 5, 3):
            aggregator.record_vus(vus)
        assert aggregator.metric_value("vus", "value") == 3.0
        assert aggregator.metric_value("vus_max", "value") == 5.0

    def test_errores_por_categoria(self, aggregator):
        aggregator.record_error(DependencyMissing("falta pvz_id", slot="pvz_id"))
        aggregator.record_error(TransportError("timeout"))
        aggregator.record_error(TransportError("timeout"))

        assert aggregator.errors.get_counts() == {"DEPENDENCY": 1, "TRANSPORT": 2}

    def test_metrica_desconocida(self, aggregator):
        with pytest.raises(KeyError):
            aggregator.metric_value("latencia", "avg")


class TestConcurrency:
    """Tests de concurrencia: no se pierden actualizaciones."""

    def test_muchos_hilos(self, aggregator):
        threads_count = 8
        per_thread = 1000

        def worker():
            for _ in range(per_thread):
                aggregator.record_request(RequestSampleFactory.build(duration_ms=1.0))
                aggregator.record_checks([CheckResultFactory.build(name="ok", passed=True)])

        threads = [threading.Thread(target=worker) for _ in range(threads_count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        total = threads_count * per_thread
        assert aggregator.total_requests == total
        assert aggregator.metric_value("http_reqs", "count") == float(total)
        result = aggregator.build_result()
        assert result.checks_passes == total
        assert result.checks["ok"].passes == total

    @pytest.mark.asyncio
    async def test_muchas_tareas(self, aggregator):
        async def vu():
            for _ in range(200):
                aggregator.record_iteration(IterationOutcome.COMPLETE, 1.0)
                await asyncio.sleep(0)

        await asyncio.gather(*(vu() for _ in range(50)))

        assert aggregator.iteration_count(IterationOutcome.COMPLETE) == 50 * 200


class TestBuildResult:
    """Tests para build_result."""

    def test_thresholds_independientes(self, aggregator):
        """p95 = 120ms falla 'p(95)<100' y los demás thresholds pasan."""
        for _ in range(100):
            aggregator.record_request(RequestSampleFactory(duration_ms=120.0))
        aggregator.record_checks([CheckResultFactory(name="ok", passed=True) for _ in range(100)])

        thresholds = parse_thresholds({
            "http_req_duration": ["p(95)<100"],
            "checks": ["rate>0.9999"],
            "http_req_failed": ["rate<0.01"],
        })
        result = aggregator.build_result(thresholds)

        assert [r.passed for r in result.thresholds] == [False, True, True]
        assert result.thresholds[0].actual == pytest.approx(120.0)
        assert result.passed is False
        assert len(result.failed_thresholds) == 1

    def test_sin_thresholds_pasa(self, aggregator):
        assert aggregator.build_result().passed is True

    def test_resultado_inmutable(self, aggregator):
        aggregator.record_request(RequestSampleFactory(name="/pvz (create)"))
        result = aggregator.build_result()

        with pytest.raises(TypeError):
            result.endpoints["otro"] = None
        with pytest.raises(Exception):
            result.http_reqs = 10

    def test_resumen_por_endpoint(self, aggregator):
        aggregator.record_request(RequestSampleFactory(name="/pvz (create)", duration_ms=10.0))
        aggregator.record_request(RequestSampleFactory(name="/pvz (create)", duration_ms=30.0, server_error=True))
        aggregator.record_request(RequestSampleFactory(filtered_read=True, duration_ms=5.0))

        result = aggregator.build_result()

        assert set(result.endpoints) == {"/pvz (create)", "/pvz (filtered get)"}
        create = result.endpoints["/pvz (create)"]
        assert create.requests == 2
        assert create.failed == 1
        assert create.failed_rate == pytest.approx(0.5)
        assert create.duration.avg == pytest.approx(20.0)
        assert result.http_req_failed_rate == pytest.approx(1 / 3)

    def test_to_dict(self, aggregator):
        aggregator.start()
        aggregator.record_request(RequestSampleFactory())
        aggregator.stop()
        result = aggregator.build_result(parse_thresholds({"http_reqs": "count>0"}))

        data = result.to_dict()

        assert data["passed"] is True
        assert data["metrics"]["http_reqs"]["count"] == 1
        assert data["thresholds"]["http_reqs: count>0"]["ok"] is True

    def test_tags_de_la_corrida(self, aggregator):
        result = aggregator.build_result(tags=("smoke", "quick"))

        assert result.tags == ("smoke", "quick")
        assert result.to_dict()["tags"] == ["smoke", "quick"]
