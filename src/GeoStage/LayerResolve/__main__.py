"""Allow ``python -m GeoStage.LayerResolve``."""

from .cli import app

if __name__ == "__main__":
    app()
