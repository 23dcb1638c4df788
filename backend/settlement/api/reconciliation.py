"""Operator endpoints for reconciliation runs."""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.api.deps import get_db, get_reconciliation_engine, require_operator
from settlement.core.security import AuthClaims
from settlement.schemas.common import naive_utc
from settlement.schemas.reconciliation import (
    ReconciliationIssueResponse,
    ReconciliationRunDetail,
    ReconciliationRunRequest,
    ReconciliationRunResponse,
    ReconciliationRunResult,
)
from settlement.services import reconciliation_service
from settlement.services.reconciliation_service import ReconciliationEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reconciliation", tags=["reconciliation"])


@router.post("/runs", response_model=ReconciliationRunResult)
async def trigger_run(
    run_request: ReconciliationRunRequest,
    claims: AuthClaims = Depends(require_operator),
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
):
    """Run one reconciliation pass now and return its CSV report."""
    logger.info(f"Reconciliation run requested by {claims.subject}: {run_request.reason}")
    return await engine.run_once(
        reason=run_request.reason,
        triggered_by=claims.subject,
        output_path=run_request.output_path,
    )


@router.get("/runs/{run_id}", response_model=ReconciliationRunDetail)
async def get_run(
    run_id: str,
    claims: AuthClaims = Depends(require_operator),
    db: AsyncSession = Depends(get_db),
):
    """Get a run with all issues it detected."""
    run, issues = await reconciliation_service.get_run_detail(db, run_id)
    return ReconciliationRunDetail(
        run=ReconciliationRunResponse.model_validate(run),
        issues=[ReconciliationIssueResponse.model_validate(i) for i in issues],
    )


@router.get("/issues", response_model=List[ReconciliationIssueResponse])
async def list_issues(
    since: Optional[datetime] = Query(None, description="Only issues detected at or after this time"),
    limit: int = Query(100, ge=1, le=1000),
    claims: AuthClaims = Depends(require_operator),
    db: AsyncSession = Depends(get_db),
):
    """Most recent reconciliation issues across runs."""
    issues = await reconciliation_service.list_issues(
        db,
        since=naive_utc(since) if since else None,
        limit=limit,
    )
    return [ReconciliationIssueResponse.model_validate(i) for i in issues]
