"""FastAPI router for alarm log analysis."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException

from .column_mapper import analyze_columns, validate_mappings
from .config import INGEST_MAX_ROWS, sanitize_error_message, settings_status
from .control_loop import ControlLoopAnalyzer, get_tool_definition
from .normalizer import process_data_with_mappings
from .schemas import (
    ColumnAnalysisRequest,
    ColumnAnalysisResult,
    ControlLoopRequest,
    IngestResult,
    NormalizeRequest,
    StatisticsRequest,
)
from .stats import calculate_statistics

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analysis", tags=["alarm-analysis"])

_analyzer: Optional[ControlLoopAnalyzer] = None


def get_analyzer() -> ControlLoopAnalyzer:
    global _analyzer
    if _analyzer is None:
        _analyzer = ControlLoopAnalyzer()
    return _analyzer


@router.get("/health")
def analysis_health():
    return {"status": "ok", "settings": settings_status()}


@router.post("/columns", response_model=ColumnAnalysisResult)
def analysis_columns(payload: ColumnAnalysisRequest):
    try:
        return analyze_columns(payload.headers, payload.rows)
    except Exception as e:
        logger.error(f"Column analysis failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=sanitize_error_message(e))


@router.post("/normalize", response_model=IngestResult)
async def analysis_normalize(payload: NormalizeRequest):
    validation = validate_mappings(payload.mapping)
    if not validation.is_valid:
        raise HTTPException(
            status_code=422,
            detail=f"Missing required mappings: {', '.join(validation.missing_required)}",
        )
    try:
        return await process_data_with_mappings(
            payload.rows,
            payload.mapping,
            max_rows=payload.max_rows or INGEST_MAX_ROWS,
        )
    except Exception as e:
        logger.error(f"Normalization failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=sanitize_error_message(e))


@router.post("/statistics")
def analysis_statistics(payload: StatisticsRequest) -> Dict[str, Any]:
    try:
        stats = calculate_statistics(payload.events, payload.sessions)
    except Exception as e:
        logger.error(f"Statistics failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=sanitize_error_message(e))
    return {"statistics": stats.model_dump() if stats is not None else None}


@router.post("/control-loop")
async def analysis_control_loop(
    payload: ControlLoopRequest,
    analyzer: ControlLoopAnalyzer = Depends(get_analyzer),
) -> Dict[str, Any]:
    tag = payload.tag.strip()
    if not tag:
        raise HTTPException(status_code=422, detail="tag must not be empty")
    try:
        result = await analyzer.analyze_loop_performance(tag, payload.sessions)
    except Exception as e:
        logger.error(f"Control loop analysis failed for {tag}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=sanitize_error_message(e))
    return result.model_dump()


@router.get("/control-loop/tool")
def analysis_control_loop_tool() -> Dict[str, Any]:
    return get_tool_definition()
