"""modplan MCP server.

Exposes the module-hours planning operations over a school workbook: full
recompute, annual targets, exception ledger entries, planning range,
enabled weekdays, dialog state, and the cumulative-hours report.
"""
from __future__ import annotations

import argparse
import logging
import os
from typing import Any

from mcp.server.fastmcp import FastMCP

from . import service
from .config import ServerConfig, load_env, log_level, runtime_config, server_config
from .context import PlanContext

logger = logging.getLogger(__name__)

_SERVER_CONFIG = server_config()

mcp = FastMCP(
    "modplan",
    host=_SERVER_CONFIG.host,
    port=_SERVER_CONFIG.port,
    instructions=(
        "Module-learning hour planner for an elementary school workbook. "
        "Allocates 15-minute sessions to school days per grade, folds in manual "
        "corrections, and writes cumulative totals back into the workbook. "
        "Every editing tool finishes with a full, repeatable recompute."
    ),
)

_ENV_FILE: str | None = None


def _context() -> PlanContext:
    load_env(_ENV_FILE or os.getenv("MODPLAN_ENV_FILE"))
    return PlanContext.from_config(runtime_config())


@mcp.tool()
def sync_module_hours(base_date: str | None = None) -> dict[str, Any]:
    """Recompute the module plan and cumulative display.

    base_date defaults to the current or next Saturday (YYYY-MM-DD).
    """
    return service.sync_module_hours(_context(), base_date).to_dict()


@mcp.tool()
def refresh_module_planning() -> str:
    """Recompute at the default base date and return a summary message."""
    return service.refresh_module_planning(_context())


@mcp.tool()
def save_annual_targets(
    fiscal_year: int,
    targets: list[dict[str, Any]],
    base_date: str | None = None,
) -> str:
    """Replace the six per-grade targets of a fiscal year, then recompute.

    Each target: {"grade": 1..6, "mode": "annual"|"monthly", "annual_units": n,
    "monthly_units": {"4": n, ..., "3": n}, "note": ""}. Units are 45-minute hours.
    """
    return service.save_annual_targets(_context(), fiscal_year, targets, base_date)


@mcp.tool()
def add_module_exception(
    date: str,
    grade: int,
    delta_sessions: int,
    reason: str = "",
    note: str = "",
    base_date: str | None = None,
) -> str:
    """Append a signed correction in 15-minute sessions for one date and grade, then recompute."""
    return service.add_module_exception(_context(), date, grade, delta_sessions, reason, note, base_date)


@mcp.tool()
def save_planning_range(start_date: str, end_date: str) -> str:
    """Store the planning period (YYYY-MM-DD, inclusive) and recompute."""
    return service.save_planning_range(_context(), start_date, end_date)


@mcp.tool()
def save_enabled_weekdays(weekdays: list[int]) -> str:
    """Store the enabled weekdays (1=Mon .. 5=Fri) and recompute."""
    return service.save_enabled_weekdays(_context(), weekdays)


@mcp.tool()
def get_planning_state() -> dict[str, Any]:
    """Current base date, targets, planning range, weekdays and recent exceptions."""
    ctx = _context()
    state = service.get_planning_state(ctx)
    ctx.save()
    return state


@mcp.tool()
def calculate_cumulative_hours(end_date: str | None = None) -> str:
    """Count lesson and event hours up to the current or next Saturday and resync module hours."""
    return service.calculate_cumulative_hours(_context(), end_date)


# -- Server entrypoints --

def build_http_app(cfg: ServerConfig):
    """Streamable-HTTP app with ``/health`` and, when a key is configured, bearer auth."""
    from starlette.middleware.base import BaseHTTPMiddleware
    from starlette.responses import JSONResponse, PlainTextResponse
    from starlette.routing import Route

    expected = f"Bearer {cfg.api_key}"

    class BearerAuth(BaseHTTPMiddleware):
        async def dispatch(self, request, call_next):
            if request.url.path != "/health" and request.headers.get("authorization", "") != expected:
                return JSONResponse({"error": "unauthorized"}, status_code=401)
            return await call_next(request)

    app = mcp.streamable_http_app()
    if cfg.api_key:
        app.add_middleware(BearerAuth)
    else:
        logger.warning("MCP_API_KEY is not set; HTTP transport is unauthenticated")
    app.routes.append(Route("/health", lambda r: PlainTextResponse("ok")))
    return app


def http_server_config(cfg: ServerConfig):
    import uvicorn

    return uvicorn.Config(build_http_app(cfg), host=cfg.host, port=cfg.port, log_level=log_level().lower())


async def _run_http() -> None:
    import uvicorn

    cfg = server_config()
    logger.info("Serving modplan over HTTP on %s:%d", cfg.host, cfg.port)
    await uvicorn.Server(http_server_config(cfg)).serve()


def main() -> None:
    global _ENV_FILE

    parser = argparse.ArgumentParser(description="Run modplan MCP server")
    parser.add_argument("--env-file", default=None, help="Path to .env file")
    parser.add_argument(
        "--transport",
        default=None,
        choices=["stdio", "sse", "streamable-http"],
        help="MCP transport (default: streamable-http when PORT is set, else stdio)",
    )
    args = parser.parse_args()
    _ENV_FILE = args.env_file

    load_env(_ENV_FILE or os.getenv("MODPLAN_ENV_FILE"))
    logging.basicConfig(
        level=log_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    transport = args.transport
    if transport is None:
        transport = "streamable-http" if os.getenv("PORT") else "stdio"

    if transport == "streamable-http":
        import anyio
        anyio.run(_run_http)
    else:
        mcp.run(transport=transport)


if __name__ == "__main__":
    main()
