"""
Log viewer API.

Serves the in-memory buffers filled by InMemoryLogHandler, so provider
switches, failed calls and health transitions can be followed without
access to the log files. Categories are the ones of LOG_MODULES plus
"other"; "all" reads the combined buffer.
"""
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from ...logging_config import LOG_MODULES, InMemoryLogHandler, get_available_modules

router = APIRouter(prefix="/logs", tags=["Logs"])

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


# =============================================================================
# SCHEMAS
# =============================================================================

class LogCounts(BaseModel):
    total: int = 0
    errors: int = 0
    warnings: int = 0


class LogCategory(BaseModel):
    """One log category and the logger name prefixes routed to it."""
    logger_prefixes: List[str]
    counts: LogCounts


class LogsOverviewResponse(BaseModel):
    modules: List[str]
    categories: Dict[str, LogCategory]
    totals: LogCounts


class LogEntry(BaseModel):
    timestamp: str
    level: str
    logger: str
    module: str
    message: str
    filename: Optional[str] = None
    lineno: Optional[int] = None
    exception: Optional[str] = None


class LogPage(BaseModel):
    """A page of entries, newest first. total is the match count before paging."""
    module: str
    total: int
    offset: int
    limit: int
    entries: List[LogEntry]


# =============================================================================
# DEPENDENCIES
# =============================================================================

def log_module(module: str) -> str:
    available = get_available_modules()
    if module not in available:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown log module '{module}'. Expected one of: {', '.join(available)}"
        )
    return module


def log_level(
    level: Optional[str] = Query(None, description="Only entries of this level (case-insensitive)")
) -> Optional[str]:
    if level is None:
        return None
    if level.upper() not in LOG_LEVELS:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown log level '{level}'. Expected one of: {', '.join(LOG_LEVELS)}"
        )
    return level.upper()


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("", response_model=LogsOverviewResponse)
async def logs_overview() -> LogsOverviewResponse:
    stats = InMemoryLogHandler.get_stats()
    prefixes = {**LOG_MODULES, "other": []}

    return LogsOverviewResponse(
        modules=get_available_modules(),
        categories={
            name: LogCategory(logger_prefixes=list(routed), counts=LogCounts(**stats.get(name, {})))
            for name, routed in prefixes.items()
        },
        totals=LogCounts(**stats.get("all", {}))
    )


@router.get("/{module}", response_model=LogPage)
async def read_logs(
    module: str = Depends(log_module),
    level: Optional[str] = Depends(log_level),
    search: Optional[str] = Query(None, description="Case-insensitive substring of the message"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0)
) -> LogPage:
    page = InMemoryLogHandler.get_logs(module=module, level=level, search=search, limit=limit, offset=offset)
    return LogPage(
        module=module,
        total=page["total"],
        offset=offset,
        limit=limit,
        entries=[LogEntry(**entry) for entry in page["logs"]]
    )
