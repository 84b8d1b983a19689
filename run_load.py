"""
Script de inicio del generador de carga

Ejecuta la corrida desde la raíz del proyecto.
"""

import sys
from pathlib import Path

# Agregar el directorio actual al path
sys.path.insert(0, str(Path(__file__).parent))

# Importar y ejecutar el CLI
from pvzload.main import main

if __name__ == '__main__':
    sys.exit(main())
