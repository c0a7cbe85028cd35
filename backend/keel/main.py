from fastapi import FastAPI

from .core.errors import register_error_handlers
from .core.logging import setup_logging
from .routers import imports

setup_logging()

app = FastAPI(title="Keel Admin API")

register_error_handlers(app)

app.include_router(imports.router)


@app.get("/health")
def health():
    return {"status": "ok"}
