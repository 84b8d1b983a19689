"""
Constantes del sistema

Define valores del servicio PVZ que no cambian durante la ejecución.
"""

from enum import Enum


class UserRole(str, Enum):
    """Roles aceptados por /dummyLogin"""
    MODERATOR = "moderator"
    EMPLOYEE = "employee"


class PVZCity(str, Enum):
    """Ciudades donde se pueden registrar PVZ"""
    MOSCOW = "Москва"
    SAINT_PETERSBURG = "Санкт-Петербург"
    KAZAN = "Казань"


class ProductType(str, Enum):
    """Tipos de producto aceptados en una recepción"""
    ELECTRONICS = "электроника"
    CLOTHING = "одежда"
    FOOTWEAR = "обувь"


# ============================================================================
# ENDPOINTS
# ============================================================================

ENDPOINT_DUMMY_LOGIN = "/dummyLogin"
ENDPOINT_PVZ = "/pvz"
ENDPOINT_RECEPTIONS = "/receptions"
ENDPOINT_PRODUCTS = "/products"
ENDPOINT_HEALTHZ = "/healthz"


# Códigos de salida del proceso
EXIT_PASS = 0
EXIT_THRESHOLD_BREACH = 1
EXIT_SCRIPT_ERROR = 2
