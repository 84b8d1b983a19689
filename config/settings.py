"""
Configuración centralizada del sistema

Carga variables de entorno y proporciona acceso a configuración
en todo el proyecto.

Uso:
    from config.settings import get_settings

    settings = get_settings()
    base_url = settings.BASE_URL
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings
from pydantic import field_validator

from config.constants import PVZCity, ProductType, ENDPOINT_HEALTHZ
from config.environments import Environment, get_config


class Settings(BaseSettings):
    """
    Configuración del generador de carga con soporte multi-entorno.

    Todas las configuraciones se cargan desde variables de entorno
    o archivo .env, con valores por defecto sensatos para desarrollo.
    """

    # =========================================================================
    # ENTORNO
    # =========================================================================
    ENVIRONMENT: Environment = Environment.DEVELOPMENT

    # =========================================================================
    # SERVICIO OBJETIVO
    # =========================================================================
    BASE_URL: str = "http://localhost:8080"
    REQUEST_TIMEOUT_SECONDS: float = 60.0  # Igual que el timeout por defecto de k6
    HTTP_MAX_CONNECTIONS: Optional[int] = None  # None = sin límite

    # =========================================================================
    # EJECUCIÓN
    # =========================================================================
    LOAD_PROFILE: Optional[str] = None  # None = el del entorno
    SCHEDULER_TICK_SECONDS: float = 0.1

    # =========================================================================
    # ESCENARIO PVZ
    # =========================================================================
    PVZ_CITY: str = PVZCity.MOSCOW.value
    PRODUCT_TYPE: str = ProductType.CLOTHING.value
    PRODUCTS_PER_RECEPTION: int = 5
    PRODUCT_THINK_TIME_SECONDS: float = 0.1
    ITERATION_THINK_TIME_SECONDS: float = 1.0
    READ_PAGE_MAX: int = 10
    READ_LIMIT: int = 10
    READ_WINDOW_DAYS: int = 7

    # =========================================================================
    # PREFLIGHT
    # =========================================================================
    PREFLIGHT_ENABLED: bool = True
    PREFLIGHT_REQUIRED: Optional[bool] = None  # None = el del entorno
    PREFLIGHT_PATH: str = ENDPOINT_HEALTHZ

    # =========================================================================
    # REPORTES
    # =========================================================================
    SUMMARY_EXPORT_PATH: Optional[str] = None

    # =========================================================================
    # LOGGING
    # =========================================================================
    LOG_LEVEL: Optional[str] = None  # None = el del entorno
    LOG_FORMAT: Optional[str] = None  # json o console; None = el del entorno
    LOG_DIR: str = "logs"
    LOG_TO_FILE: bool = True

    @field_validator("BASE_URL")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Valida el esquema y elimina la barra final"""
        if not v.startswith(("http://", "https://")):
            raise ValueError("BASE_URL debe comenzar con http:// o https://")
        return v.rstrip("/")

    @field_validator("REQUEST_TIMEOUT_SECONDS", "SCHEDULER_TICK_SECONDS")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("El valor debe ser positivo")
        return v

    @field_validator("PVZ_CITY")
    @classmethod
    def validate_city(cls, v: str) -> str:
        """Solo ciudades aceptadas por el servicio"""
        allowed = [c.value for c in PVZCity]
        if v not in allowed:
            raise ValueError(f"Ciudad no soportada: {v}. Permitidas: {allowed}")
        return v

    @field_validator("PRODUCT_TYPE")
    @classmethod
    def validate_product_type(cls, v: str) -> str:
        allowed = [t.value for t in ProductType]
        if v not in allowed:
            raise ValueError(f"Tipo de producto no soportado: {v}. Permitidos: {allowed}")
        return v

    @field_validator("PRODUCTS_PER_RECEPTION", "READ_PAGE_MAX", "READ_LIMIT")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("El valor no puede ser negativo")
        return v

    def get_log_level(self) -> str:
        """Nivel de log explícito o el del entorno."""
        return self.LOG_LEVEL or get_config(self.ENVIRONMENT).LOG_LEVEL

    def get_load_profile(self) -> str:
        """Perfil de carga explícito o el del entorno."""
        return self.LOAD_PROFILE or get_config(self.ENVIRONMENT).LOAD_PROFILE

    def get_log_format(self) -> str:
        return self.LOG_FORMAT or get_config(self.ENVIRONMENT).LOG_FORMAT

    def is_preflight_required(self) -> bool:
        """Preflight obligatorio explícito o el del entorno."""
        if self.PREFLIGHT_REQUIRED is not None:
            return self.PREFLIGHT_REQUIRED
        return get_config(self.ENVIRONMENT).PREFLIGHT_REQUIRED

    def is_production(self) -> bool:
        """Verifica si está en producción."""
        return self.ENVIRONMENT == Environment.PRODUCTION

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Obtiene la instancia única de configuración.

    Se crea en el primer uso, no al importar el módulo.

    Raises:
        pydantic.ValidationError: Si algún valor es inválido
    """
    return Settings()
