"""Part Alternatives MCP Server - find substitute electronic components."""

import json
import logging
import math
import re
import time
from collections import deque
from contextlib import asynccontextmanager
from typing import Any

from fastmcp import FastMCP
from mcp.types import ToolAnnotations
from starlette.datastructures import UploadFile
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from . import __version__
from .aggregator import build_aggregator
from .batch import BatchOrchestrator, InvalidBatchError
from .config import (
    GOOGLE_API_KEY,
    GOOGLE_CX,
    HTTP_PORT,
    LOG_LEVEL,
    MAX_PART_NUMBER_LENGTH,
    MAX_UPLOAD_BYTES,
    OPENAI_API_KEY,
    QUIET_PATHS,
    RATE_LIMIT_MAX_TRACKED_IPS,
    RATE_LIMIT_REQUESTS,
    RATE_LIMIT_WINDOW_SECONDS,
    ConfigurationError,
)
from .crossref import TICrossReferenceClient
from .export import EXPORT_FILENAME, XLSX_CONTENT_TYPE, UploadError, build_workbook, read_part_numbers
from .render import comparison_html
from .synthesis import AlternativesSynthesizer

logger = logging.getLogger(__name__)

_PART_LIST_SEPARATOR = re.compile(r"[,;\n]+")


@asynccontextmanager
async def lifespan(app):
    """Report which upstream credentials are configured.

    Clients are built per request, so there is nothing to open or close here.
    """
    if not (GOOGLE_API_KEY and GOOGLE_CX):
        logger.warning("GOOGLE_API_KEY / GOOGLE_CX not set; lookups will run without web evidence")
    if not OPENAI_API_KEY:
        logger.warning("OPENAI_API_KEY not set; lookups will fail until it is configured")
    yield


# Create MCP server
mcp = FastMCP(
    name="partalts",
    instructions="Find substitute electronic components for a manufacturer part number. Use find_alternatives for a detailed single-part analysis, bulk_find_alternatives for up to 10 parts at once (short list per part), ti_cross_reference to see only TI's own cross-reference matches, and compare_parts for a side-by-side comparison of two parts.",
    lifespan=lifespan,
)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding-window request limit per client IP.

    Each lookup can drive a browser session and a model call, so the limit
    applies to /mcp and the JSON routes alike. Paths in QUIET_PATHS are
    never limited.
    """

    def __init__(
        self,
        app,
        max_requests: int = RATE_LIMIT_REQUESTS,
        window_seconds: int = RATE_LIMIT_WINDOW_SECONDS,
        max_tracked_ips: int = RATE_LIMIT_MAX_TRACKED_IPS,
    ):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.max_tracked_ips = max_tracked_ips
        self.request_times: dict[str, deque[float]] = {}
        self._last_sweep = time.monotonic()

    def _get_client_ip(self, request) -> str:
        """Client IP; behind a proxy, the last X-Forwarded-For hop is the one it added."""
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            hops = [ip.strip() for ip in forwarded.split(",") if ip.strip()]
            if hops:
                return hops[-1]
        return request.client.host if request.client else "unknown"

    def _prune(self, times: deque[float], now: float) -> None:
        while times and times[0] <= now - self.window_seconds:
            times.popleft()

    def _sweep(self, now: float) -> None:
        for ip in list(self.request_times):
            times = self.request_times[ip]
            self._prune(times, now)
            if not times:
                del self.request_times[ip]
        self._last_sweep = now

    def _check_rate_limit(self, client_ip: str, now: float | None = None) -> bool:
        """Record a request from client_ip; True if it must be rejected."""
        now = time.monotonic() if now is None else now
        if now - self._last_sweep > self.window_seconds:
            self._sweep(now)

        times = self.request_times.get(client_ip)
        if times is None:
            if len(self.request_times) >= self.max_tracked_ips:
                self._sweep(now)
                if len(self.request_times) >= self.max_tracked_ips:
                    return True
            self.request_times[client_ip] = deque([now])
            return False

        self._prune(times, now)
        if len(times) >= self.max_requests:
            return True
        times.append(now)
        return False

    def _retry_after(self, client_ip: str, now: float) -> int:
        """Seconds until the oldest request in the window expires."""
        times = self.request_times.get(client_ip)
        if not times:
            return self.window_seconds
        return max(1, math.ceil(times[0] + self.window_seconds - now))

    async def dispatch(self, request, call_next):
        if request.url.path in QUIET_PATHS:
            return await call_next(request)

        client_ip = self._get_client_ip(request)
        if self._check_rate_limit(client_ip):
            retry_after = self._retry_after(client_ip, time.monotonic())
            logger.warning(f"Rate limit exceeded for {client_ip} on {request.url.path}")
            return JSONResponse(
                status_code=429,
                content={"error": "Rate limit exceeded", "retry_after": retry_after},
                headers={"Retry-After": str(retry_after)},
            )
        return await call_next(request)


def _parse_part_list(value: list[str] | str | None) -> list[str] | None:
    """Normalize the part_numbers tool argument.

    MCP clients send a list, a JSON-encoded list, or a pasted
    comma/newline separated string ("LM317, NE555").
    """
    if value is None or isinstance(value, list):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    if text.startswith(("[", "{")):
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            logger.debug(f"Failed to parse part list as JSON: {text[:100]!r}")
            return None
        return parsed if isinstance(parsed, list) else None
    return [part.strip() for part in _PART_LIST_SEPARATOR.split(text) if part.strip()] or None


def _check_part_number(part_number: Any, field: str = "Part number") -> str | None:
    """Return an error message for an unusable part number, else None."""
    if not isinstance(part_number, str) or not part_number.strip():
        return f"{field} is required"
    if len(part_number) > MAX_PART_NUMBER_LENGTH:
        return f"{field} too long (max {MAX_PART_NUMBER_LENGTH} characters)"
    return None


# Operations shared by MCP tools and HTTP routes

async def run_lookup(part_number: str) -> dict:
    aggregator = build_aggregator()
    try:
        result = await aggregator.lookup(part_number.strip())
    finally:
        await aggregator.close()
    return result.to_dict()


async def run_batch(part_numbers: Any) -> dict:
    aggregator = build_aggregator()
    try:
        summary = await BatchOrchestrator(aggregator).run(part_numbers)
    finally:
        await aggregator.close()
    return summary.to_dict()


async def run_cross_reference(part_number: str) -> dict:
    part_number = part_number.strip()
    alternatives = await TICrossReferenceClient().find_alternatives(part_number)
    return {
        "partNumber": part_number,
        "alternatives": [alt.to_dict() for alt in alternatives],
        "count": len(alternatives),
    }


async def run_compare(part_a: str, part_b: str) -> dict:
    synthesizer = AlternativesSynthesizer()
    try:
        raw = await synthesizer.compare(part_a.strip(), part_b.strip())
    finally:
        await synthesizer.close()
    return {"html": comparison_html(raw), "raw": raw}


# Tools

@mcp.tool(
    annotations=ToolAnnotations(
        title="Find Alternative Parts",
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=False,
        openWorldHint=True,
    )
)
async def find_alternatives(part_number: str) -> dict:
    """Find and rank 3 substitute components for a manufacturer part number.

    Gathers datasheet/distributor search results and TI cross-reference matches,
    then asks the model for a verified, ranked analysis (package match first,
    then function, lifecycle, availability, price). Alternatives are from a
    different manufacturer than the original.

    Args:
        part_number: Manufacturer part number (e.g., "LM317", "NE555P", "CDCLVC1102")

    Returns:
        alternatives: Analysis rendered as HTML
        raw: Same analysis as markdown
        searchResults: Web evidence used (title, link, snippet)
        tiAlternatives: TI cross-reference matches (partNumber, matchType, href, title)
    """
    error = _check_part_number(part_number)
    if error:
        return {"error": error}

    try:
        return await run_lookup(part_number)
    except ConfigurationError as e:
        return {"error": str(e)}
    except Exception as e:
        logger.error(f"Alternatives lookup failed: {type(e).__name__}: {e}")
        return {"error": f"Alternatives lookup failed: {e}"}


@mcp.tool(
    annotations=ToolAnnotations(
        title="Bulk Find Alternatives",
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=False,
        openWorldHint=True,
    )
)
async def bulk_find_alternatives(part_numbers: list[str] | str) -> dict:
    """Find up to 3 alternatives for each of up to 10 part numbers.

    Parts are processed one after another. Every input part gets a result row
    in the same order; a failure on one part doesn't stop the others.

    Args:
        part_numbers: 1-10 manufacturer part numbers, e.g. ["LM317", "NE555"] or "LM317, NE555"

    Returns:
        results: One row per part (originalPart, tiAlternatives[0..1], aiAlternatives[0..3], status, error?)
        errors: Parts whose pipeline failed (partNumber, error)
        totalProcessed, successCount, errorCount
    """
    parsed = _parse_part_list(part_numbers)
    try:
        return await run_batch(parsed)
    except InvalidBatchError as e:
        return {"error": str(e)}


@mcp.tool(
    annotations=ToolAnnotations(
        title="TI Cross-Reference",
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=True,
    )
)
async def ti_cross_reference(part_number: str) -> dict:
    """Look up a part on TI's cross-reference tool only (no model call).

    Slow (renders the page in a headless browser). Returns an empty list when
    TI lists no alternatives or the page can't be read.

    Args:
        part_number: Manufacturer part number from any vendor

    Returns:
        partNumber, alternatives (partNumber, matchType, href, title), count
    """
    error = _check_part_number(part_number)
    if error:
        return {"error": error}
    return await run_cross_reference(part_number)


@mcp.tool(
    annotations=ToolAnnotations(
        title="Compare Two Parts",
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=False,
        openWorldHint=True,
    )
)
async def compare_parts(part_a: str, part_b: str) -> dict:
    """Side-by-side comparison of two components (specs, registers, package/pinout, drop-in score).

    Args:
        part_a: First part number
        part_b: Second part number

    Returns:
        html: Comparison rendered as HTML
        raw: Same comparison as markdown
    """
    error = _check_part_number(part_a, "partA") or _check_part_number(part_b, "partB")
    if error:
        return {"error": error}
    try:
        return await run_compare(part_a, part_b)
    except ConfigurationError as e:
        return {"error": str(e)}
    except Exception as e:
        logger.error(f"Part comparison failed: {type(e).__name__}: {e}")
        return {"error": f"Part comparison failed: {e}"}


# HTTP routes

async def _json_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {}
    return body if isinstance(body, dict) else {}


async def health(request):
    return JSONResponse({
        "status": "healthy",
        "service": "partalts-mcp",
        "version": __version__,
    })


async def alternatives_endpoint(request: Request):
    body = await _json_body(request)
    part_number = body.get("partNumber")
    error = _check_part_number(part_number)
    if error:
        return JSONResponse({"error": error}, status_code=400)

    try:
        return JSONResponse(await run_lookup(part_number))
    except Exception as e:
        logger.error(f"POST /api/alternatives failed: {type(e).__name__}: {e}")
        return JSONResponse({"error": str(e) or "Server error"}, status_code=500)


async def bulk_process_endpoint(request: Request):
    body = await _json_body(request)
    try:
        return JSONResponse(await run_batch(body.get("partNumbers")))
    except InvalidBatchError as e:
        return JSONResponse({"error": str(e)}, status_code=400)


async def bulk_upload_endpoint(request: Request):
    form = await request.form()
    try:
        upload = form.get("file")
        if not isinstance(upload, UploadFile):
            return JSONResponse({"error": "No file uploaded"}, status_code=400)
        content = await upload.read(MAX_UPLOAD_BYTES + 1)
        if len(content) > MAX_UPLOAD_BYTES:
            return JSONResponse({"error": "File too large (max 5MB)"}, status_code=400)
        parts = read_part_numbers(upload.filename or "", content)
    except UploadError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    finally:
        await form.close()

    return JSONResponse({"success": True, "partNumbers": parts, "count": len(parts)})


async def bulk_export_endpoint(request: Request):
    fmt = request.path_params["format"]
    if fmt != "excel":
        return JSONResponse({"error": 'Unsupported format. Use "excel".'}, status_code=400)

    if request.method == "POST":
        results = (await _json_body(request)).get("results")
    else:
        raw = request.query_params.get("results")
        try:
            results = json.loads(raw) if raw else None
        except json.JSONDecodeError:
            return JSONResponse({"error": "Results must be valid JSON"}, status_code=400)

    if not isinstance(results, list) or not all(isinstance(r, dict) for r in results):
        return JSONResponse({"error": "Results data is required"}, status_code=400)

    return Response(
        build_workbook(results),
        media_type=XLSX_CONTENT_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'},
    )


async def compare_endpoint(request: Request):
    body = await _json_body(request)
    part_a, part_b = body.get("partA"), body.get("partB")
    if _check_part_number(part_a) or _check_part_number(part_b):
        return JSONResponse({"error": "Both partA and partB are required"}, status_code=400)

    try:
        result = await run_compare(part_a, part_b)
    except Exception as e:
        logger.error(f"POST /api/compare failed: {type(e).__name__}: {e}")
        return JSONResponse({"error": str(e) or "Server error"}, status_code=500)
    return JSONResponse({"html": result["html"]})


async def cross_reference_endpoint(request: Request):
    part_number = request.path_params["part_number"]
    result = await run_cross_reference(part_number)
    result["timestamp"] = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
    return JSONResponse(result)


# Create ASGI app
def create_app():
    """Create the ASGI application."""
    middleware = [
        Middleware(RateLimitMiddleware, max_requests=RATE_LIMIT_REQUESTS),
    ]

    app = mcp.http_app(
        path="/mcp",
        middleware=middleware,
        transport="streamable-http",
        stateless_http=True,
    )

    app.routes.extend([
        Route("/health", health),
        Route("/api/alternatives", alternatives_endpoint, methods=["POST"]),
        Route("/api/bulk-process", bulk_process_endpoint, methods=["POST"]),
        Route("/api/bulk-upload", bulk_upload_endpoint, methods=["POST"]),
        Route("/api/bulk-export/{format}", bulk_export_endpoint, methods=["GET", "POST"]),
        Route("/api/compare", compare_endpoint, methods=["POST"]),
        Route("/test-ti/{part_number}", cross_reference_endpoint),
    ])

    return app


app = create_app()


class _QuietPathsFilter(logging.Filter):
    """Drop uvicorn access-log lines for QUIET_PATHS.

    uvicorn logs access lines with args (client, method, path, http_version, status).
    """

    def __init__(self, paths: tuple[str, ...] = QUIET_PATHS):
        super().__init__()
        self.paths = paths

    def filter(self, record: logging.LogRecord) -> bool:
        args = record.args
        if isinstance(args, tuple) and len(args) >= 3 and isinstance(args[2], str):
            return args[2].split("?", 1)[0] not in self.paths
        return True


def main():
    """Run the server."""
    import uvicorn

    logging.basicConfig(
        level=LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("uvicorn.access").addFilter(_QuietPathsFilter())

    uvicorn.run(
        "partalts_mcp.server:app",
        host="0.0.0.0",
        port=HTTP_PORT,
        lifespan="on",
    )


if __name__ == "__main__":
    main()
