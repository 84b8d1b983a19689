"""
Factories para Tests

Proporciona factories para crear muestras de prueba de forma limpia y reutilizable.
Sigue el patrón Factory de factory-boy para testing.

Uso:
    from tests.factories import RequestSampleFactory, CheckResultFactory

    # Crear instancia con valores por defecto
    sample = RequestSampleFactory()

    # Crear con valores personalizados
    sample = RequestSampleFactory(status=500, duration_ms=120.0)

    # Crear múltiples instancias
    checks = CheckResultFactory.build_batch(5, passed=False)
"""

from tests.factories.samples import RequestSampleFactory, CheckResultFactory

__all__ = [
    "RequestSampleFactory",
    "CheckResultFactory",
]
