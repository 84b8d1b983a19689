"""
Engine

Definición de escenarios, checks, ejecutor de iteraciones y scheduler
de usuarios virtuales.
"""
