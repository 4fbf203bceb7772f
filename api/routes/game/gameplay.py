"""Gameplay routes: streaming (SSE) and synchronous turns."""

import asyncio
import json
import logging
import time

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from taleweave.agents.storyteller import StorytellerEvent
from taleweave.core.orchestrator import PackageNotFound

from .models import TurnRequest, TurnResponse
from .session_mgmt import get_orchestrator

logger = logging.getLogger(__name__)

router = APIRouter()

KEEPALIVE_SECONDS = 15.0


def format_sse(event: StorytellerEvent) -> str:
    return f"event: {event.type}\ndata: {json.dumps(event.data, default=str)}\n\n"


@router.post("/turn")
async def stream_turn(request: TurnRequest, http_request: Request):
    """Run a turn and stream its events via SSE.

    Events: turn_start, direction, tool, frame, combat, yield, turn_end,
    and error if the turn fails upstream.
    """
    orchestrator = get_orchestrator()
    try:
        orchestrator.load_package(request.package_id)
    except PackageNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    queue: asyncio.Queue[StorytellerEvent | None] = asyncio.Queue()

    async def on_event(event: StorytellerEvent):
        await queue.put(event)

    async def run_turn():
        try:
            await orchestrator.run_turn(
                session_id=request.session_id,
                package_id=request.package_id,
                player_action=request.player_input,
                dice_total=request.dice_total,
                emit=on_event,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[Turn] {request.session_id}: turn failed: {type(e).__name__}: {e}")
            await queue.put(StorytellerEvent("error", {"error": f"{type(e).__name__}: {e}"}))
        finally:
            queue.put_nowait(None)

    task = asyncio.create_task(run_turn(), name=f"turn-{request.session_id}")

    async def event_generator():
        # Force immediate connection confirmation to client
        yield ": connected\n\n"
        try:
            while True:
                if await http_request.is_disconnected():
                    logger.info(f"[Turn] {request.session_id}: client disconnected")
                    break
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                if event is None:
                    break
                yield format_sse(event)
        finally:
            if not task.done():
                task.cancel()
                logger.info(f"[Turn] {request.session_id}: turn cancelled")

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.post("/turn/sync", response_model=TurnResponse)
async def process_turn(request: TurnRequest):
    """Run a turn and return the whole result at once."""
    orchestrator = get_orchestrator()
    start = time.time()
    try:
        result = await orchestrator.run_turn(
            session_id=request.session_id,
            package_id=request.package_id,
            player_action=request.player_input,
            dice_total=request.dice_total,
        )
    except PackageNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"[Turn] {request.session_id}: upstream failure: {type(e).__name__}: {e}")
        raise HTTPException(status_code=502, detail=f"Turn failed: {type(e).__name__}: {e}")

    return TurnResponse(
        session_id=result.session_id,
        turn_count=result.turn_count,
        frames=result.frames,
        waiting_for=str(result.waiting_for) if result.waiting_for else None,
        outcome=result.outcome,
        direction=result.direction,
        location_id=result.location_id,
        act_id=result.act_id,
        latency_ms=int((time.time() - start) * 1000),
    )
