"""
Run Control API

Thin FastAPI surface over `RunController`. Each command route maps onto one
lifecycle transition; illegal transitions answer 409 and unknown runs 404.
Discovery and execution run as background tasks unless the request asks to
wait for them.
"""

import asyncio
import logging
import os
from typing import Any, Callable, Dict, List, Optional, Set

import uvicorn
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from ..config.settings import CrawlQAConfig, load_config
from ..core.errors import InvalidTransitionError
from ..core.events import ProgressChannel
from ..core.models import RunStatus
from ..core.registry import RunRegistry
from ..runner import RunController
from ..storage.base import DiscoveryStore
from ..storage.memory import InMemoryStore
from ..storage.sqlite import SqliteStore
from ..utils.navigation import is_navigable_url

logger = logging.getLogger(__name__)

ControllerFactory = Callable[[], RunController]


class RunRequest(BaseModel):
    target_url: str
    execute: bool = False
    wait: bool = False


class ExecuteRequest(BaseModel):
    test_case_ids: Optional[List[int]] = None
    wait: bool = False


def create_app(store: Optional[DiscoveryStore] = None,
               config: Optional[CrawlQAConfig] = None,
               registry: Optional[RunRegistry] = None,
               controller_factory: Optional[ControllerFactory] = None) -> FastAPI:
    """Build the app. `controller_factory` returns a fresh, run-less controller."""
    store = store if store is not None else InMemoryStore()
    config = config or CrawlQAConfig()
    registry = registry if registry is not None else RunRegistry()
    progress = ProgressChannel()

    if controller_factory is None:
        def controller_factory() -> RunController:
            return RunController(store, config, registry=registry, progress=progress)

    app = FastAPI(title="CrawlQA", description="Autonomous UI discovery and regression testing")
    app.state.store = store
    app.state.registry = registry
    app.state.progress = progress
    background: Set[asyncio.Task] = set()

    def spawn(coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        background.add(task)
        task.add_done_callback(background.discard)

    def active_controller(run_id: int) -> RunController:
        controller = registry.get(run_id)
        if controller is not None:
            return controller
        if store.get_run(run_id) is None:
            raise HTTPException(status_code=404, detail=f"Run {run_id} not found")
        raise HTTPException(status_code=409, detail=f"Run {run_id} is no longer active")

    def command(run_id: int, name: str) -> Dict[str, Any]:
        controller = active_controller(run_id)
        try:
            status = getattr(controller, name)()
        except InvalidTransitionError as e:
            raise HTTPException(status_code=409, detail=str(e))
        return {"id": run_id, "status": status.value}

    @app.post("/runs", status_code=201)
    async def create_run(request: RunRequest):
        if not is_navigable_url(request.target_url):
            raise HTTPException(status_code=422, detail="target_url must be an http(s) URL")

        controller = controller_factory()
        run = controller.create_run(request.target_url)
        logger.info(f"🌐 API started run {run.id} for {request.target_url}")

        job = controller.run_to_completion(execute=request.execute)
        if request.wait:
            await job
        else:
            spawn(job)
        return controller.run.to_dict(encode_json=True)

    @app.post("/runs/{run_id}/pause")
    async def pause_run(run_id: int):
        return command(run_id, "pause")

    @app.post("/runs/{run_id}/resume")
    async def resume_run(run_id: int):
        return command(run_id, "resume")

    @app.post("/runs/{run_id}/stop")
    async def stop_run(run_id: int):
        return command(run_id, "stop")

    @app.post("/runs/{run_id}/cancel")
    async def cancel_run(run_id: int):
        return command(run_id, "cancel")

    @app.post("/runs/{run_id}/execute")
    async def execute_run(run_id: int, request: Optional[ExecuteRequest] = None):
        request = request or ExecuteRequest()
        controller = active_controller(run_id)
        if not controller.machine.can_transition(RunStatus.EXECUTING):
            raise HTTPException(
                status_code=409,
                detail=f"Run {run_id} is {controller.machine.status.value}, not ready for execution",
            )

        job = controller.execute(request.test_case_ids)
        if request.wait:
            await job
        else:
            spawn(job)
        return controller.run.to_dict(encode_json=True)

    @app.get("/runs/{run_id}")
    async def get_run(run_id: int):
        run = store.get_run(run_id)
        if run is None:
            raise HTTPException(status_code=404, detail=f"Run {run_id} not found")

        body = run.to_dict(encode_json=True)
        body["active"] = run_id in registry
        event = progress.last_event(run_id)
        body["progress"] = event.to_dict() if event else None
        return body

    return app


def main():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    config = load_config(os.getenv("CRAWLQA_CONFIG"))
    store = SqliteStore(config.database) if config.database else InMemoryStore()
    port = int(os.getenv("PORT", 8000))

    logger.info(f"🚀 Starting CrawlQA API on port {port}")
    uvicorn.run(create_app(store, config), host="0.0.0.0", port=port, log_level="info")


if __name__ == "__main__":
    main()
