"""ASGI entry point: ``uvicorn webextract.main:app``."""

from .config import load_config
from .factory import create_app

app = create_app(load_config())


if __name__ == "__main__":
    import uvicorn
    config = load_config()
    uvicorn.run(app, **config.get_uvicorn_config())
