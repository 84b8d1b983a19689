"""
Escenario PVZ

Flujo de cada iteración:
1. Login como moderador y creación de un PVZ propio del VU
2. Login como empleado
3. Grupo "Reception and Products Workload": abrir una recepción y
   agregar productos
4. Grupo "Read PVZ Data with Filters": listado paginado filtrado por
   fechas de los últimos días
5. Pausa entre iteraciones

Sin PVZ no hay nada que recibir: si la creación no devuelve 201 la
iteración termina. Si la recepción no se abre se saltan los productos,
pero la lectura filtrada se ejecuta igual.
"""

import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from config.constants import (
    ENDPOINT_DUMMY_LOGIN,
    ENDPOINT_PRODUCTS,
    ENDPOINT_PVZ,
    ENDPOINT_RECEPTIONS,
    PVZCity,
    ProductType,
    UserRole,
)
from pvzload.core.context import IterationContext
from pvzload.engine.checks import status_is
from pvzload.engine.scenario import Abort, Group, HttpStep, Repeat, Scenario, SleepStep


# ============================================================================
# NOMBRES (tags, grupos, checks)
# ============================================================================

SCENARIO_NAME = "pvz_flow"

TAG_MODERATOR_LOGIN = "/dummyLogin (moderator)"
TAG_PVZ_CREATE = "/pvz (create)"
TAG_EMPLOYEE_LOGIN = "/dummyLogin (employee)"
TAG_RECEPTION_CREATE = "/receptions (create)"
TAG_PRODUCT_CREATE = "/products (create)"
TAG_PVZ_FILTERED_GET = "/pvz (filtered get)"

GROUP_RECEPTION = "Reception and Products Workload"
GROUP_READ = "Read PVZ Data with Filters"

CHECK_MODERATOR_LOGIN = "moderator login successful"
CHECK_PVZ_CREATED = "per-VU PVZ created"
CHECK_EMPLOYEE_LOGIN = "employee login successful"
CHECK_RECEPTION_OPENED = "reception opened"
CHECK_PRODUCT_ADDED = "product added"
CHECK_PVZ_LIST = "get pvz list with filters successful"

SLOT_MODERATOR_TOKEN = "moderator_token"
SLOT_PVZ_ID = "pvz_id"
SLOT_EMPLOYEE_TOKEN = "employee_token"


def to_iso_utc(moment: datetime) -> str:
    """ISO-8601 en UTC con milisegundos y sufijo Z (2024-05-01T10:00:00.000Z)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PVZFlowConfig:
    """Parámetros del escenario PVZ."""
    city: str = PVZCity.MOSCOW.value
    product_type: str = ProductType.CLOTHING.value
    products_per_reception: int = 5
    product_think_time: float = 0.1
    iteration_think_time: float = 1.0
    read_page_max: int = 10
    read_limit: int = 10
    read_window_days: int = 7
    clock: Callable[[], datetime] = _utc_now
    rng: random.Random = field(default_factory=random.Random)

    @classmethod
    def from_settings(cls, settings, **overrides) -> "PVZFlowConfig":
        """Crea la configuración desde config.settings."""
        values: Dict[str, Any] = dict(
            city=settings.PVZ_CITY,
            product_type=settings.PRODUCT_TYPE,
            products_per_reception=settings.PRODUCTS_PER_RECEPTION,
            product_think_time=settings.PRODUCT_THINK_TIME_SECONDS,
            iteration_think_time=settings.ITERATION_THINK_TIME_SECONDS,
            read_page_max=settings.READ_PAGE_MAX,
            read_limit=settings.READ_LIMIT,
            read_window_days=settings.READ_WINDOW_DAYS,
        )
        values.update(overrides)
        return cls(**values)


def _read_params(config: PVZFlowConfig) -> Callable[[IterationContext], Dict[str, Any]]:
    def build(ctx: IterationContext) -> Dict[str, Any]:
        end = config.clock()
        start = end - timedelta(days=config.read_window_days)
        return {
            "page": config.rng.randint(1, max(config.read_page_max, 1)),
            "limit": config.read_limit,
            "startDate": to_iso_utc(start),
            "endDate": to_iso_utc(end),
        }
    return build


def build_pvz_scenario(config: Optional[PVZFlowConfig] = None) -> Scenario:
    """
    Construye el escenario PVZ.

    Args:
        config: Parámetros; por defecto los valores estándar

    Returns:
        Scenario listo para el executor
    """
    config = config or PVZFlowConfig()

    def pvz_id(ctx: IterationContext) -> Any:
        return ctx.get(SLOT_PVZ_ID)

    return Scenario(
        name=SCENARIO_NAME,
        slots=(SLOT_MODERATOR_TOKEN, SLOT_PVZ_ID, SLOT_EMPLOYEE_TOKEN),
        steps=(
            HttpStep(
                name=TAG_MODERATOR_LOGIN,
                method="POST",
                path=ENDPOINT_DUMMY_LOGIN,
                json={"role": UserRole.MODERATOR.value},
                extract={SLOT_MODERATOR_TOKEN: "jwt"},
                checks=(status_is(CHECK_MODERATOR_LOGIN, 200),),
            ),
            HttpStep(
                name=TAG_PVZ_CREATE,
                method="POST",
                path=ENDPOINT_PVZ,
                json={"city": config.city},
                auth=SLOT_MODERATOR_TOKEN,
                extract={SLOT_PVZ_ID: "id"},
                checks=(status_is(CHECK_PVZ_CREATED, 201),),
                expect_status=201,
                on_unexpected=Abort.ITERATION,
            ),
            HttpStep(
                name=TAG_EMPLOYEE_LOGIN,
                method="POST",
                path=ENDPOINT_DUMMY_LOGIN,
                json={"role": UserRole.EMPLOYEE.value},
                extract={SLOT_EMPLOYEE_TOKEN: "jwt"},
                checks=(status_is(CHECK_EMPLOYEE_LOGIN, 200),),
            ),
            Group(
                name=GROUP_RECEPTION,
                steps=(
                    HttpStep(
                        name=TAG_RECEPTION_CREATE,
                        method="POST",
                        path=ENDPOINT_RECEPTIONS,
                        json={"pvzId": pvz_id},
                        auth=SLOT_EMPLOYEE_TOKEN,
                        requires=(SLOT_PVZ_ID,),
                        checks=(status_is(CHECK_RECEPTION_OPENED, 201),),
                        expect_status=201,
                        on_unexpected=Abort.GROUP,
                    ),
                    Repeat(
                        times=config.products_per_reception,
                        steps=(
                            HttpStep(
                                name=TAG_PRODUCT_CREATE,
                                method="POST",
                                path=ENDPOINT_PRODUCTS,
                                json={"pvzId": pvz_id, "type": config.product_type},
                                auth=SLOT_EMPLOYEE_TOKEN,
                                requires=(SLOT_PVZ_ID,),
                                checks=(status_is(CHECK_PRODUCT_ADDED, 201),),
                            ),
                            SleepStep(seconds=config.product_think_time),
                        ),
                    ),
                ),
            ),
            Group(
                name=GROUP_READ,
                steps=(
                    HttpStep(
                        name=TAG_PVZ_FILTERED_GET,
                        method="GET",
                        path=ENDPOINT_PVZ,
                        params=_read_params(config),
                        auth=SLOT_EMPLOYEE_TOKEN,
                        checks=(status_is(CHECK_PVZ_LIST, 200),),
                    ),
                ),
            ),
            SleepStep(seconds=config.iteration_think_time),
        ),
    )
