"""
Tests para configuración: settings, perfiles de carga y opciones de corrida.
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from config.settings import Settings
from config.environments import Environment, get_config, DevelopmentConfig, ProductionConfig
from config.load_profiles import PROFILES, DEFAULT_THRESHOLDS, get_profile
from pvzload.core.options import RunOptions, Stage, parse_duration
from pvzload.utils.errors import ConfigurationError, ThresholdSyntaxError


class TestSettings:
    """Tests para Settings."""

    def test_valores_por_defecto(self):
        """Verifica los valores por defecto del escenario."""
        s = Settings(_env_file=None)
        assert s.PVZ_CITY == "Москва"
        assert s.PRODUCT_TYPE == "одежда"
        assert s.PRODUCTS_PER_RECEPTION == 5
        assert s.ITERATION_THINK_TIME_SECONDS == 1.0

    def test_base_url_desde_entorno(self, monkeypatch):
        """BASE_URL se toma de la variable de entorno."""
        monkeypatch.setenv("BASE_URL", "http://pvz.local:9000/")
        s = Settings(_env_file=None)
        assert s.BASE_URL == "http://pvz.local:9000"

    def test_base_url_invalida(self):
        """Rechaza esquemas que no son http(s)."""
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None, BASE_URL="ftp://pvz.local")

    def test_ciudad_no_soportada(self):
        """Solo ciudades conocidas por el servicio."""
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None, PVZ_CITY="Bogota")

    def test_tipo_producto_no_soportado(self):
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None, PRODUCT_TYPE="joyas")

    def test_timeout_debe_ser_positivo(self):
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None, REQUEST_TIMEOUT_SECONDS=0)

    def test_log_level_del_entorno(self, monkeypatch):
        """Sin LOG_LEVEL explícito se usa el del entorno."""
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        s = Settings(_env_file=None, ENVIRONMENT=Environment.PRODUCTION)
        assert s.get_log_level() == "WARNING"
        assert s.is_production()

    def test_perfil_del_entorno(self, monkeypatch):
        monkeypatch.delenv("LOAD_PROFILE", raising=False)
        s = Settings(_env_file=None, ENVIRONMENT=Environment.STAGING)
        assert s.get_load_profile() == "load"
        assert s.is_preflight_required() is True
        s = Settings(_env_file=None, ENVIRONMENT=Environment.DEVELOPMENT)
        assert s.get_load_profile() == "default"


class TestEnvironments:
    """Tests para configuración por entorno."""

    def test_get_config(self):
        assert get_config(Environment.DEVELOPMENT) is DevelopmentConfig
        assert get_config(Environment.PRODUCTION) is ProductionConfig
        assert get_config("desconocido") is DevelopmentConfig

    def test_formato_de_log_del_entorno(self, monkeypatch):
        monkeypatch.delenv("LOG_FORMAT", raising=False)
        assert Settings(_env_file=None, ENVIRONMENT=Environment.PRODUCTION).get_log_format() == "json"
        assert Settings(_env_file=None, ENVIRONMENT=Environment.DEVELOPMENT).get_log_format() == "console"
        assert Settings(_env_file=None, LOG_FORMAT="json").get_log_format() == "json"

    def test_preflight_explicito_gana(self, monkeypatch):
        monkeypatch.delenv("PREFLIGHT_REQUIRED", raising=False)
        s = Settings(_env_file=None, ENVIRONMENT=Environment.PRODUCTION, PREFLIGHT_REQUIRED=False)
        assert s.is_preflight_required() is False


class TestLoadProfiles:
    """Tests para perfiles de carga."""

    def test_perfil_default_igual_al_original(self):
        """El perfil default replica la rampa original."""
        profile = get_profile("default")
        assert profile.start_vus == 50
        assert profile.stages == (("30s", 1000), ("1m", 1000), ("10s", 0))
        assert profile.graceful_ramp_down == "30s"
        assert profile.thresholds == DEFAULT_THRESHOLDS

    def test_perfil_desconocido(self):
        """Lista los perfiles disponibles en el error."""
        with pytest.raises(ValueError, match="Disponibles"):
            get_profile("inexistente")

    @pytest.mark.parametrize("name", list(PROFILES))
    def test_todos_los_perfiles_son_validos(self, name):
        """Cada perfil construye opciones válidas."""
        options = RunOptions.from_profile(get_profile(name))
        assert options.stages
        assert options.thresholds


class TestParseDuration:
    """Tests para duraciones estilo k6."""

    @pytest.mark.parametrize("value,expected", [
        ("30s", 30.0),
        ("1m", 60.0),
        ("1m30s", 90.0),
        ("500ms", 0.5),
        ("1h", 3600.0),
        ("0s", 0.0),
        ("15", 15.0),
        (2.5, 2.5),
    ])
    def test_formatos_validos(self, value, expected):
        assert parse_duration(value) == pytest.approx(expected)

    @pytest.mark.parametrize("value", ["", "abc", "10x", "1m abc", "-5s", -1, None, True])
    def test_formatos_invalidos(self, value):
        with pytest.raises(ConfigurationError):
            parse_duration(value)


class TestRunOptions:
    """Tests para RunOptions."""

    def test_build_convierte_valores(self):
        options = RunOptions.build(
            stages=[("30s", 1000), {"duration": "1m", "target": 1000}, Stage(10, 0)],
            start_vus=50,
            graceful_ramp_down="30s",
            thresholds={"http_req_duration": "p(95)<100"},
        )
        assert options.stages == (Stage(30, 1000), Stage(60, 1000), Stage(10, 0))
        assert options.graceful_ramp_down == 30.0
        assert options.total_duration == 100.0
        assert options.max_target == 1000
        assert options.thresholds[0].metric == "http_req_duration"

    def test_opciones_inmutables(self):
        options = RunOptions.build(stages=[("1s", 1)])
        with pytest.raises(Exception):
            options.start_vus = 10

    def test_stage_negativo(self):
        with pytest.raises(ConfigurationError):
            Stage(duration=10, target=-1)
        with pytest.raises(ConfigurationError):
            Stage(duration=-1, target=10)

    def test_sin_etapas(self):
        with pytest.raises(ConfigurationError):
            RunOptions.build(stages=[])

    def test_threshold_invalido_antes_de_correr(self):
        """Un threshold mal escrito falla al construir las opciones."""
        with pytest.raises(ThresholdSyntaxError):
            RunOptions.build(stages=[("1s", 1)], thresholds={"checks": ["p(95)<100"]})

    def test_base_url_invalida(self):
        with pytest.raises(ConfigurationError):
            RunOptions.build(stages=[("1s", 1)], base_url="pvz.local")
