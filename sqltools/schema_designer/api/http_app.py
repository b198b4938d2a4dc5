"""
FastAPI transport for the schema designer tools.

Usage:
    app = create_app(registry)
    uvicorn.run(app, host=settings.host, port=settings.port)

Invariants:
    - The registry is injected; the app never creates sessions on its own
    - One tool instance per app, sharing the registry and telemetry sink
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .._version import __version__
from ..session.registry import DocumentRegistry
from ..session.telemetry import LoggingTelemetrySink, TelemetrySink
from ..tools.dab_tool import DabTool
from ..tools.schema_designer_tool import SchemaDesignerTool
from .routes import router


def create_app(
    registry: DocumentRegistry,
    telemetry: TelemetrySink | None = None,
    cors_origins: list[str] | None = None,
) -> FastAPI:
    """Create the tool transport app.

    Args:
        registry: Document registry shared by both tools
        telemetry: Telemetry sink (defaults to logging)
        cors_origins: Allowed CORS origins (none by default)

    Returns:
        FastAPI application
    """
    telemetry = telemetry if telemetry is not None else LoggingTelemetrySink()

    app = FastAPI(
        title="Schema Designer Tools",
        description="Versioned read and edit tools for schema designer sessions.",
        version=__version__,
    )
    app.state.registry = registry
    app.state.schema_tool = SchemaDesignerTool(registry, telemetry)
    app.state.dab_tool = DabTool(registry, telemetry)

    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(router)

    @app.get("/health")
    async def health():
        return {"status": "healthy", "service": "schema-designer-tools"}

    return app
