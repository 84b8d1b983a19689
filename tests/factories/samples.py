"""
Factories para muestras de la corrida

RequestSample y CheckResult son dataclasses inmutables; las factories
solo los construyen (no hay persistencia).
"""

import random

import factory
from factory import LazyAttribute, Sequence

from pvzload.core.models import CheckResult, RequestSample


class RequestSampleFactory(factory.Factory):
    """
    Factory para muestras de request.

    Ejemplos:
        # Request exitoso
        sample = RequestSampleFactory()

        # Request fallido por el servidor
        sample = RequestSampleFactory(server_error=True)

        # Timeout
        sample = RequestSampleFactory(transport_error=True)
    """

    class Meta:
        model = RequestSample

    name = "/pvz (create)"
    method = "POST"
    url = "/pvz"
    status = 201
    duration_ms = LazyAttribute(lambda _: float(random.randint(5, 80)))
    group = None
    error = None
    timestamp = Sequence(lambda n: 1_700_000_000.0 + n)

    class Params:
        """
        Variantes comunes de muestras.
        """

        # Respuesta 5xx
        server_error = factory.Trait(status=500)

        # Sin respuesta
        transport_error = factory.Trait(status=0, error="ConnectError")

        # Lectura filtrada
        filtered_read = factory.Trait(
            name="/pvz (filtered get)",
            method="GET",
            group="Read PVZ Data with Filters",
            status=200,
        )


class CheckResultFactory(factory.Factory):
    """Factory para resultados de checks."""

    class Meta:
        model = CheckResult

    name = Sequence(lambda n: f"check {n}")
    passed = True
    group = None
