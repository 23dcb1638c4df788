"""Reconciliation run schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ReconciliationRunRequest(BaseModel):
    """Operator trigger for a reconciliation run."""
    reason: str = Field(..., min_length=1, max_length=500)
    output_path: Optional[str] = Field(None, description="Server-side path to also write the CSV report to")


class ReconciliationRunResult(BaseModel):
    run_id: str
    issue_count: int
    csv: str


class ReconciliationIssueResponse(BaseModel):
    run_id: str
    transfer_id: str
    issue_code: str
    details: Dict[str, Any]
    detected_at: datetime

    model_config = {"from_attributes": True}


class ReconciliationRunResponse(BaseModel):
    run_id: str
    status: str
    reason: Optional[str]
    triggered_by: Optional[str]
    total_transfers: Optional[int]
    total_issues: Optional[int]
    started_at: datetime
    finished_at: Optional[datetime]

    model_config = {"from_attributes": True}


class ReconciliationRunDetail(BaseModel):
    run: ReconciliationRunResponse
    issues: List[ReconciliationIssueResponse]
