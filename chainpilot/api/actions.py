import json
import logging
from typing import Any, AsyncGenerator, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path
from fastapi.encoders import jsonable_encoder
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from ..core.errors import ParseError, StateRefreshError, ValidationFailure
from ..core.execution.account import AccountContext, get_account_context
from ..core.intent.parser import format_request, supported_phrasings
from ..core.orchestrator import (
    DESCRIPTORS,
    ActionOrchestrator,
    get_action_orchestrator,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/actions")


class ExecuteActionRequest(BaseModel):
    text: str = Field(min_length=1, description="Free-text instruction, e.g. 'send 1 MNT to 0x...'")
    request_id: Optional[str] = Field(default=None, alias="requestId")

    model_config = {"populate_by_name": True}


class ParseActionRequest(BaseModel):
    text: str = Field(min_length=1)


class ParsedActionResponse(BaseModel):
    request: Dict[str, Any]
    canonical: str


def get_orchestrator() -> ActionOrchestrator:
    return get_action_orchestrator()


def get_account() -> AccountContext:
    try:
        return get_account_context()
    except ValueError as e:
        raise HTTPException(status_code=503, detail=f"No signing account configured: {e}")


def _sse_event(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(jsonable_encoder(payload), ensure_ascii=False)}\n\n"


def _sse_done() -> str:
    return "data: [DONE]\n\n"


@router.post("/execute")
async def execute_action_endpoint(
    body: ExecuteActionRequest,
    orchestrator: ActionOrchestrator = Depends(get_orchestrator),
    account: AccountContext = Depends(get_account),
) -> StreamingResponse:
    """Execute an action and stream its notifications as Server-Sent Events."""

    async def event_generator() -> AsyncGenerator[str, None]:
        async for notification in orchestrator.execute_action(
            body.text, account, request_id=body.request_id
        ):
            yield _sse_event(notification.to_dict())
        yield _sse_done()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )


@router.post("/parse")
async def parse_action_endpoint(
    body: ParseActionRequest,
    orchestrator: ActionOrchestrator = Depends(get_orchestrator),
) -> ParsedActionResponse:
    """Parse text into a typed request without touching the chain."""
    try:
        request = orchestrator.parser.parse(body.text)
    except (ParseError, ValidationFailure) as e:
        logger.info(f"Parse rejected: {e.message}")
        detail = {"errorKind": e.kind.value, "message": e.message}
        if isinstance(e, ValidationFailure):
            detail["reason"] = e.reason.value
        raise HTTPException(status_code=422, detail=detail)
    return ParsedActionResponse(request=request.to_dict(), canonical=format_request(request))


@router.get("")
async def list_actions() -> Dict[str, List[Any]]:
    """Supported actions and the phrasings the parser accepts."""
    return {
        "actions": [descriptor.to_dict() for descriptor in DESCRIPTORS.values()],
        "phrasings": supported_phrasings(),
    }


def _read_failed(error: StateRefreshError) -> HTTPException:
    return HTTPException(
        status_code=502,
        detail={"errorKind": error.kind.value, "message": error.message},
    )


@router.get("/portfolio")
async def portfolio_endpoint(
    orchestrator: ActionOrchestrator = Depends(get_orchestrator),
    account: AccountContext = Depends(get_account),
) -> Dict[str, Any]:
    """Balances of the acting wallet. Read-only."""
    try:
        result = await orchestrator.portfolio(account.address)
    except StateRefreshError as e:
        raise _read_failed(e)
    return result.to_dict()


@router.get("/unstake-requests/{request_id}")
async def unstake_request_endpoint(
    request_id: int = Path(ge=0),
    orchestrator: ActionOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    """Status of an mETH unstake request. Read-only."""
    try:
        result = await orchestrator.unstake_status(request_id)
    except StateRefreshError as e:
        raise _read_failed(e)
    return result.to_dict()
