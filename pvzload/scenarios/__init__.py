"""Escenarios contra la API de PVZ."""

from pvzload.scenarios.pvz_flow import PVZFlowConfig, build_pvz_scenario

__all__ = ["PVZFlowConfig", "build_pvz_scenario"]
