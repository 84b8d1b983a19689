"""Configuración: settings, entornos, perfiles de carga y constantes."""
