"""
Runs API

Start, stop and inspect the streaming run. Progress is observed through the
session endpoints: the target message fills up as deltas arrive.
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..exceptions import ConfigurationError, RunInProgressError
from ..manager_singleton import ManagerSingleton
from .runner import ChatRunner

router = APIRouter(prefix="/runs", tags=["Runs"])


class StartRunRequest(BaseModel):
    model_config_id: str = Field(..., description="Id of the model configuration to run with")

    model_config = {"protected_namespaces": ()}


def _run_state(runner: ChatRunner) -> dict:
    return {
        "state": runner.state.value,
        "is_generating": runner.store.is_generating,
        "target_message_id": runner.target_message_id,
        "session_id": runner.store.current_session_id,
    }


@router.post("/start")
async def start_run(request: StartRunRequest, runner: ChatRunner = Depends(ManagerSingleton.get_runner)):
    """Start generating into the current session."""
    try:
        runner.start(request.model_config_id)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RunInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _run_state(runner)


@router.post("/stop")
async def stop_run(runner: ChatRunner = Depends(ManagerSingleton.get_runner)):
    """Cancel the active run; a no-op when nothing is running."""
    stopped = runner.stop()
    return {"stopped": stopped, **_run_state(runner)}


@router.get("/state")
async def get_run_state(runner: ChatRunner = Depends(ManagerSingleton.get_runner)):
    return _run_state(runner)
