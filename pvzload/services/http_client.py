"""
Cliente HTTP de carga

Envuelve un único httpx.AsyncClient compartido por todos los VUs:
- Pool de conexiones con límite configurable
- Timeout por request
- Medición de duración de cada request (RequestSample): desde el envío
  de los headers hasta el final del body, sin la espera de conexión del
  pool ni el connect/TLS, igual que http_req_duration de k6
- Conversión de errores de transporte a TransportError

No reintenta ni abre circuitos: cada request es una muestra, y un
reintento ocultaría el fallo en las métricas.

Uso:
    async with LoadHTTPClient(options) as client:
        sample, response = await client.request(
            "POST", "/pvz", name="/pvz (create)", json={"city": "Москва"}
        )
"""

import time
from typing import Any, Dict, Optional, Tuple

import httpx

from pvzload.core.models import RequestSample
from pvzload.core.options import RunOptions
from pvzload.utils.errors import ErrorContext, wrap_transport_error
from pvzload.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_HEADERS = {"Content-Type": "application/json"}


class RequestTimer:
    """
    Callback del extension "trace" de httpcore.

    Marca el inicio del envío y el final de la lectura del body. Si el
    transporte no emite eventos de trace (httpx.MockTransport) la
    duración es el tiempo total de la llamada.
    """

    def __init__(self):
        self.started = time.perf_counter()
        self.sent: Optional[float] = None
        self.received: Optional[float] = None

    async def __call__(self, event_name: str, info: Dict[str, Any]) -> None:
        if event_name.endswith("send_request_headers.started") and self.sent is None:
            self.sent = time.perf_counter()
        elif event_name.endswith("receive_response_body.complete"):
            self.received = time.perf_counter()

    def duration_ms(self) -> float:
        if self.sent is not None and self.received is not None:
            return (self.received - self.sent) * 1000
        return (time.perf_counter() - self.started) * 1000


class LoadHTTPClient:
    """
    Cliente HTTP compartido por los usuarios virtuales.

    No guarda estado del escenario (tokens, ids): todo lo que varía por
    iteración llega como argumento.
    """

    def __init__(
        self,
        options: RunOptions,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Inicializa el cliente.

        Args:
            options: Opciones de la corrida (base_url, timeout, conexiones)
            transport: Transporte alternativo (httpx.MockTransport en tests)
        """
        self.options = options
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def open(self) -> None:
        """Crea el pool de conexiones."""
        if self._client is not None:
            return
        limits = httpx.Limits(
            max_connections=self.options.max_connections,
            max_keepalive_connections=self.options.max_connections,
        )
        self._client = httpx.AsyncClient(
            base_url=self.options.base_url,
            timeout=self.options.request_timeout,
            limits=limits,
            headers=DEFAULT_HEADERS,
            transport=self._transport,
        )
        logger.debug(
            f"Cliente HTTP abierto: base_url={self.options.base_url}, "
            f"timeout={self.options.request_timeout}s"
        )

    async def aclose(self) -> None:
        """Cierra el pool de conexiones."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "LoadHTTPClient":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
        return False

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("LoadHTTPClient no está abierto; usar 'async with' u open()")
        return self._client

    async def request(
        self,
        method: str,
        path: str,
        name: str,
        group: Optional[str] = None,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        context: Optional[ErrorContext] = None
    ) -> Tuple[RequestSample, httpx.Response]:
        """
        Ejecuta un request y mide su duración.

        Args:
            method: Método HTTP
            path: Ruta relativa a base_url
            name: Tag del request para atribuir métricas
            group: Grupo al que pertenece el paso
            json: Body JSON
            params: Query params
            headers: Headers adicionales (Authorization)
            context: Contexto para el error si falla el transporte

        Returns:
            (muestra, respuesta)

        Raises:
            TransportError: Timeout o fallo de conexión; lleva una
                muestra con status 0
        """
        timer = RequestTimer()
        try:
            response = await self.client.request(
                method,
                path,
                json=json,
                params=params,
                headers=headers,
                extensions={"trace": timer},
            )
        except httpx.TransportError as e:
            duration_ms = timer.duration_ms()
            sample = RequestSample(
                name=name,
                method=method,
                url=path,
                status=0,
                duration_ms=duration_ms,
                group=group,
                error=type(e).__name__,
            )
            logger.debug(f"{method} {path} falló tras {duration_ms:.1f}ms: {type(e).__name__}")
            raise wrap_transport_error(e, step=name, sample=sample, context=context) from e

        duration_ms = timer.duration_ms()
        sample = RequestSample(
            name=name,
            method=method,
            url=path,
            status=response.status_code,
            duration_ms=duration_ms,
            group=group,
        )
        return sample, response
