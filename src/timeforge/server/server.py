from __future__ import annotations

import logging
import os

from fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse

from timeforge.server.server_runtime import ServerRuntime
from timeforge.server.server_tools_timefilter import register_timefilter_tools
from timeforge.shared.config import TimeFilterConfig

logging.basicConfig(
    level=getattr(logging, os.getenv("TIMEFORGE_LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

mcp = FastMCP(name="timeforge")
runtime = ServerRuntime(TimeFilterConfig.from_env())

register_timefilter_tools(mcp, runtime)


def main() -> None:
    """Entry point for launching the MCP server."""

    logger.info("🚀 Starting TimeForge MCP server")

    runtime.initialize_critical_components()

    transport = os.getenv("MCP_TRANSPORT", "stdio").lower()
    if transport == "sse":
        import uvicorn

        host = os.getenv("MCP_HOST", "0.0.0.0")
        port = int(os.getenv("MCP_PORT", "8080"))

        # Mount FastMCP at root so /messages/ and other endpoints work correctly
        app = mcp.http_app(path="/", transport="sse")

        @app.route("/health", methods=["GET"])
        async def healthcheck(_: Request) -> JSONResponse:
            """Lightweight endpoint used for container health checks."""

            return JSONResponse({"status": "ok", "ready": runtime.server_ready})

        logger.info("🌐 Running MCP server on http://%s:%s", host, port)
        logger.info("📡 SSE endpoint available at /sse")
        uvicorn.run(app, host=host, port=port)
    else:
        logger.info("📡 Running MCP server in STDIO mode")
        mcp.run()


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    main()
