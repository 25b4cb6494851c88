"""Entrypoint for running the finanzas FastAPI backend locally."""
from __future__ import annotations

import uvicorn

from finanzas.config import getenv_with_default


if __name__ == "__main__":
    uvicorn.run(
        "finanzas.api:app",
        host=getenv_with_default("FINANZAS_HOST", "127.0.0.1"),
        port=int(getenv_with_default("FINANZAS_PORT", "8000")),
        reload=True,
    )
