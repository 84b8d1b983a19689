# ==============================================================================
# Load Profiles
# ==============================================================================
#
# Perfiles de carga predefinidos (etapas de rampa + thresholds).
# Las duraciones usan el formato de k6: "30s", "1m", "1m30s", "500ms".
#
# ==============================================================================
"""
Perfiles de carga.

Define las etapas de rampa, usuarios iniciales y thresholds de cada perfil.
"""

from dataclasses import dataclass, field
from typing import Dict, Tuple


# ==============================================================================
# THRESHOLDS - Umbrales por defecto
# ==============================================================================

# {métrica: (expresión, ...)}
DEFAULT_THRESHOLDS: Dict[str, Tuple[str, ...]] = {
    "http_req_duration": ("p(95)<100",),
    "checks": ("rate>0.9999",),
}


# ==============================================================================
# LOAD PROFILES - Perfiles de carga
# ==============================================================================

@dataclass(frozen=True)
class LoadProfile:
    """Configuración de un perfil de carga."""
    name: str
    description: str
    stages: Tuple[Tuple[str, int], ...]  # (duración, usuarios objetivo)
    start_vus: int = 0
    graceful_ramp_down: str = "30s"
    graceful_stop: str = "30s"
    thresholds: Dict[str, Tuple[str, ...]] = field(
        default_factory=lambda: dict(DEFAULT_THRESHOLDS)
    )
    tags: Tuple[str, ...] = ()


PROFILES: Dict[str, LoadProfile] = {
    "default": LoadProfile(
        name="Ramping VUs",
        description="Rampa a 1000 usuarios, meseta de 1 minuto y bajada",
        start_vus=50,
        stages=(
            ("30s", 1000),  # Subir a 1000 VUs
            ("1m", 1000),   # Mantener 1000 VUs durante 1 minuto
            ("10s", 0),     # Bajar
        ),
        graceful_ramp_down="30s",
        tags=("load", "ramp"),
    ),
    "smoke": LoadProfile(
        name="Smoke Test",
        description="Verificación básica de que el flujo completo funciona",
        start_vus=1,
        stages=(("30s", 1),),
        graceful_ramp_down="5s",
        thresholds={
            "http_req_duration": ("p(95)<500",),
            "checks": ("rate>0.99",),
        },
        tags=("smoke", "quick"),
    ),
    "load": LoadProfile(
        name="Load Test",
        description="Carga normal esperada en producción",
        stages=(
            ("1m", 100),
            ("5m", 100),
            ("30s", 0),
        ),
        tags=("load", "normal"),
    ),
    "stress": LoadProfile(
        name="Stress Test",
        description="Encontrar límites del servicio",
        stages=(
            ("2m", 500),
            ("5m", 1500),
            ("2m", 3000),
            ("1m", 0),
        ),
        thresholds={
            "http_req_duration": ("p(95)<300", "p(99)<1000"),
            "http_req_failed": ("rate<0.01",),
            "checks": ("rate>0.99",),
        },
        tags=("stress", "limits"),
    ),
    "spike": LoadProfile(
        name="Spike Test",
        description="Simular picos súbitos de tráfico",
        start_vus=10,
        stages=(
            ("10s", 10),
            ("5s", 1500),
            ("1m", 1500),
            ("5s", 10),
            ("30s", 10),
        ),
        graceful_ramp_down="10s",
        tags=("spike", "burst"),
    ),
    "soak": LoadProfile(
        name="Soak Test",
        description="Prueba prolongada para detectar degradación",
        stages=(
            ("2m", 300),
            ("1h", 300),
            ("2m", 0),
        ),
        tags=("soak", "endurance"),
    ),
}


# ==============================================================================
# HELPER FUNCTIONS
# ==============================================================================

def get_profile(name: str) -> LoadProfile:
    """Obtiene un perfil por nombre."""
    if name not in PROFILES:
        raise ValueError(f"Perfil '{name}' no encontrado. Disponibles: {list(PROFILES.keys())}")
    return PROFILES[name]
