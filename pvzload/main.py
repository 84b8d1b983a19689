"""
PVZ Load Generator - CLI

Uso:
    pvz-load                              # Perfil del entorno (LOAD_PROFILE)
    pvz-load --profile smoke              # Perfil específico
    pvz-load --base-url http://pvz:8080   # Otro servicio
    pvz-load --summary-export out.json    # Exportar resumen JSON
    pvz-load --list-profiles

Códigos de salida:
    0 - todos los thresholds se cumplieron
    1 - al menos un threshold falló
    2 - la corrida no se pudo ejecutar (configuración, preflight, exportación, error)
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from pydantic import ValidationError

from config.constants import EXIT_SCRIPT_ERROR
from config.load_profiles import PROFILES, get_profile
from config.settings import Settings, get_settings
from pvzload.core.options import RunOptions
from pvzload.metrics.report import exit_code_for, render_summary, write_summary_json
from pvzload.runner import LoadTestRunner
from pvzload.scenarios.pvz_flow import PVZFlowConfig, build_pvz_scenario
from pvzload.utils.errors import ConfigurationError
from pvzload.utils.logger import configure_from_settings, get_logger, log_exception

logger = get_logger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parsea los argumentos de la línea de comandos."""
    parser = argparse.ArgumentParser(
        description="Generador de carga para la API de PVZ",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument(
        "--profile", "-p",
        type=str,
        default=None,
        help=f"Perfil de carga ({', '.join(PROFILES)}); default: LOAD_PROFILE o el del entorno",
    )

    parser.add_argument(
        "--base-url",
        type=str,
        default=None,
        help="URL del servicio (default: variable BASE_URL)",
    )

    parser.add_argument(
        "--summary-export",
        type=str,
        default=None,
        help="Archivo JSON donde exportar el resumen",
    )

    parser.add_argument(
        "--no-preflight",
        action="store_true",
        help="No consultar el health check antes de la corrida",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Nivel de log (DEBUG, INFO, WARNING, ERROR)",
    )

    parser.add_argument(
        "--list-profiles",
        action="store_true",
        help="Lista los perfiles disponibles y sale",
    )

    return parser.parse_args(argv)


def print_profiles() -> None:
    """Imprime los perfiles de carga disponibles."""
    print("Perfiles de carga disponibles:")
    print("-" * 60)
    for key, profile in PROFILES.items():
        stages = ", ".join(f"{duration}→{target}" for duration, target in profile.stages)
        print(f"  {key:<10}{profile.name} (start {profile.start_vus}): {stages}")
        print(f"  {'':<10}{profile.description}")


def load_settings() -> Settings:
    """
    Carga la configuración del entorno.

    Raises:
        ConfigurationError: Alguna variable de entorno es inválida
    """
    try:
        return get_settings()
    except ValidationError as e:
        errors = e.errors()
        fields = [str(error["loc"][0]) for error in errors if error.get("loc")]
        details = "; ".join(
            f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error['msg']}"
            for error in errors
        )
        raise ConfigurationError(
            f"Configuración inválida: {details}",
            field=fields[0] if fields else None,
        ) from e


def build_options(
    profile_name: str,
    base_url: Optional[str] = None,
    settings: Optional[Settings] = None
) -> RunOptions:
    """
    Construye las opciones de la corrida a partir del perfil y settings.

    Raises:
        ConfigurationError: Perfil desconocido u opciones inválidas
    """
    settings = settings or load_settings()
    try:
        profile = get_profile(profile_name)
    except ValueError as e:
        raise ConfigurationError(str(e), field="profile") from e

    return RunOptions.from_profile(
        profile,
        base_url=(base_url or settings.BASE_URL).rstrip("/"),
        request_timeout=settings.REQUEST_TIMEOUT_SECONDS,
        max_connections=settings.HTTP_MAX_CONNECTIONS,
        scheduler_tick=settings.SCHEDULER_TICK_SECONDS,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Punto de entrada principal."""
    args = parse_args(argv)

    if args.list_profiles:
        print_profiles()
        return 0

    try:
        settings = load_settings()
        if args.log_level:
            configure_from_settings(force=True, log_level=args.log_level)

        profile_name = args.profile or settings.get_load_profile()
        options = build_options(profile_name, args.base_url, settings)
        scenario = build_pvz_scenario(PVZFlowConfig.from_settings(settings))
        runner = LoadTestRunner(
            options,
            scenario,
            preflight=settings.PREFLIGHT_ENABLED and not args.no_preflight,
            preflight_path=settings.PREFLIGHT_PATH,
            preflight_required=settings.is_preflight_required(),
        )
        logger.info(f"Perfil '{profile_name}' contra {options.base_url}")
        result = asyncio.run(runner.run())

    except ConfigurationError as e:
        logger.error(f"{e.category.value}: {e.message}")
        return EXIT_SCRIPT_ERROR

    except KeyboardInterrupt:
        logger.warning("Corrida interrumpida por el usuario")
        return EXIT_SCRIPT_ERROR

    except Exception as e:
        log_exception(logger, "La corrida no se pudo ejecutar", e)
        return EXIT_SCRIPT_ERROR

    print(render_summary(result))

    export_path = args.summary_export or settings.SUMMARY_EXPORT_PATH
    if export_path:
        try:
            write_summary_json(result, export_path)
        except OSError as e:
            logger.error(f"No se pudo exportar el resumen a {export_path}: {e}")
            return EXIT_SCRIPT_ERROR

    return exit_code_for(result)


if __name__ == "__main__":
    sys.exit(main())
