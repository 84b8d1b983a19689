"""
PVZ Load Generator

Generador de carga para la API de PVZ (puntos de recogida): usuarios
virtuales con rampas, escenario declarativo, checks, métricas y thresholds.
"""

__version__ = "1.0.0"
