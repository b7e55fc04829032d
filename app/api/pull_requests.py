"""
Pull request and review action REST API endpoints.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from app.api.dependencies import get_engine
from app.models.api_response import AssignRequest, CommentRequest, PullRequestView
from app.models.transition import ReviewActionResult
from app.services.automation_engine import AutomationEngine, PullRequestNotFoundError
from app.services.state_machine import InvalidTransitionError, ReviewActionError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/pull-requests", tags=["pull-requests"])


def _to_http_error(e: Exception) -> HTTPException:
    """Map engine errors to HTTP errors."""
    if isinstance(e, (PullRequestNotFoundError, ReviewActionError)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, InvalidTransitionError):
        return HTTPException(status_code=409, detail=str(e))
    logger.error(f"Unexpected error handling review action: {e}", exc_info=True)
    return HTTPException(status_code=500, detail="Internal server error")


@router.get("", response_model=List[PullRequestView])
async def list_pull_requests(engine: AutomationEngine = Depends(get_engine)) -> List[PullRequestView]:
    """
    List tracked pull requests with derived fields.

    Returns:
        Pull request views, including the automated action due now
    """
    try:
        return await engine.list_views()
    except Exception as e:
        raise _to_http_error(e)


@router.get("/{pr_id}", response_model=PullRequestView)
async def get_pull_request(pr_id: str, engine: AutomationEngine = Depends(get_engine)) -> PullRequestView:
    """
    Raises:
        HTTPException: 404 if the pull request is unknown
    """
    try:
        pr = await engine.get_pull_request(pr_id)
        return engine.view(pr)
    except Exception as e:
        raise _to_http_error(e)


@router.post("/{pr_id}/comments", response_model=ReviewActionResult, status_code=201)
async def add_comment(
    pr_id: str,
    request: CommentRequest,
    engine: AutomationEngine = Depends(get_engine)
) -> ReviewActionResult:
    """
    Add a review comment.

    The comment is always recorded; ``transition`` in the response reports
    whether the PR moved to ``commented``.
    """
    try:
        logger.info(f"Adding comment to PR {pr_id}")
        return await engine.add_comment(pr_id, request.author_id, request.text)
    except Exception as e:
        raise _to_http_error(e)


@router.post("/{pr_id}/comments/{comment_id}/replies", response_model=ReviewActionResult, status_code=201)
async def reply_to_comment(
    pr_id: str,
    comment_id: str,
    request: CommentRequest,
    engine: AutomationEngine = Depends(get_engine)
) -> ReviewActionResult:
    try:
        return await engine.reply_to_comment(pr_id, comment_id, request.author_id, request.text)
    except Exception as e:
        raise _to_http_error(e)


@router.post("/{pr_id}/comments/{comment_id}/resolve", response_model=ReviewActionResult)
async def resolve_comment(
    pr_id: str,
    comment_id: str,
    engine: AutomationEngine = Depends(get_engine)
) -> ReviewActionResult:
    try:
        return await engine.resolve_comment(pr_id, comment_id)
    except Exception as e:
        raise _to_http_error(e)


@router.post("/{pr_id}/assign", response_model=ReviewActionResult)
async def assign_reviewer(
    pr_id: str,
    request: AssignRequest,
    engine: AutomationEngine = Depends(get_engine)
) -> ReviewActionResult:
    """
    Raises:
        HTTPException: 409 if the PR is not waiting for a reviewer
    """
    try:
        logger.info(f"Assigning reviewer {request.reviewer_id} to PR {pr_id}")
        return await engine.assign_reviewer(pr_id, request.reviewer_id)
    except Exception as e:
        raise _to_http_error(e)


@router.post("/{pr_id}/approve", response_model=ReviewActionResult)
async def approve(pr_id: str, engine: AutomationEngine = Depends(get_engine)) -> ReviewActionResult:
    try:
        return await engine.approve(pr_id)
    except Exception as e:
        raise _to_http_error(e)


@router.post("/{pr_id}/merge", response_model=ReviewActionResult)
async def merge(pr_id: str, engine: AutomationEngine = Depends(get_engine)) -> ReviewActionResult:
    """
    Raises:
        HTTPException: 409 unless the PR is approved
    """
    try:
        return await engine.merge(pr_id)
    except Exception as e:
        raise _to_http_error(e)
