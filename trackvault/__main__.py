"""
Allows running trackvault as a module, e.g. `python -m trackvault list`.

The Typer application lives in `trackvault.cli`.
"""

from .cli import app

if __name__ == "__main__":
    app(prog_name="trackvault")
