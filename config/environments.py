"""
Configuración Multi-Entorno

Valores por defecto de la corrida según el entorno desde el que se
lanza la carga: development, staging o production.
"""

from enum import Enum
from typing import Dict, Type


class Environment(str, Enum):
    """Entornos disponibles"""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class BaseConfig:
    """Valores compartidos por todos los entornos"""
    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "console"

    # Corrida: el perfil default es la rampa completa 50 → 1000 VUs
    LOAD_PROFILE: str = "default"
    PREFLIGHT_REQUIRED: bool = False


class DevelopmentConfig(BaseConfig):
    """Desarrollo: servicio local, logs detallados"""
    LOG_LEVEL: str = "DEBUG"


class StagingConfig(BaseConfig):
    """Staging: carga nominal contra un entorno compartido"""
    LOAD_PROFILE: str = "load"
    PREFLIGHT_REQUIRED: bool = True


class ProductionConfig(BaseConfig):
    """
    Producción: perfil completo y logs para agregadores.

    Con miles de VUs solo se loggean advertencias y errores, en JSON.
    """
    LOG_LEVEL: str = "WARNING"
    LOG_FORMAT: str = "json"
    PREFLIGHT_REQUIRED: bool = True


_CONFIGS: Dict[Environment, Type[BaseConfig]] = {
    Environment.DEVELOPMENT: DevelopmentConfig,
    Environment.STAGING: StagingConfig,
    Environment.PRODUCTION: ProductionConfig,
}


def get_config(env: Environment) -> Type[BaseConfig]:
    """Clase de configuración del entorno; development si no se reconoce."""
    return _CONFIGS.get(env, DevelopmentConfig)
