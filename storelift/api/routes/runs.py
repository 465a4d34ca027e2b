"""Run start, status, cancellation and replay endpoints."""

import logging
from typing import Any, Callable, Dict

from fastapi import APIRouter, BackgroundTasks, HTTPException

from ..models import ReplayRequest, RunCreate, RunResponse, RunStartedResponse
from ..storage import RunEntry, run_storage
from ...loaders.replay import ReplayDriver
from ...loaders.woocommerce_loader import WooCommerceProvisioner
from ...models.migration import MigrationConfig, TargetStoreCredentials
from ...orchestrator import MigrationOrchestrator
from ...services.retry import create_session

logger = logging.getLogger(__name__)

router = APIRouter()

# Replaced in tests to inject fake sessions and extractors
orchestrator_factory: Callable[..., MigrationOrchestrator] = MigrationOrchestrator
provisioner_factory: Callable[..., Any] = WooCommerceProvisioner
session_factory: Callable[..., Any] = create_session


def _config_from_request(data: RunCreate) -> MigrationConfig:
    payload: Dict[str, Any] = data.model_dump(exclude_none=True)
    payload["platform"] = data.platform.value
    config = MigrationConfig.from_dict(payload)
    config.apply_environment()
    return config


def _get_entry(run_id: str) -> RunEntry:
    entry = run_storage.get(run_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Run not found")
    return entry


@router.post("", response_model=RunStartedResponse)
async def create_run(data: RunCreate, background_tasks: BackgroundTasks):
    """Start a capture run."""
    entry = run_storage.create(_config_from_request(data))
    background_tasks.add_task(run_capture_task, entry.id)
    return RunStartedResponse(status="started", run_id=entry.id)


@router.get("/{run_id}", response_model=RunResponse)
async def get_run(run_id: str):
    """Get a run's status, steps and notes."""
    return _get_entry(run_id).to_dict()


@router.post("/{run_id}/cancel")
async def cancel_run(run_id: str):
    """Request cooperative cancellation of a run."""
    entry = _get_entry(run_id)
    entry.cancellation.cancel()
    return {"status": "cancelling", "run_id": run_id}


@router.post("/{run_id}/replay")
async def replay_run(run_id: str, data: ReplayRequest, background_tasks: BackgroundTasks):
    """Replay a run's snapshot onto a target WooCommerce store."""
    entry = _get_entry(run_id)
    if not entry.has_snapshot:
        raise HTTPException(status_code=409, detail="Run has no provisioning snapshot")

    entry.replay = {"status": "pending"}
    background_tasks.add_task(run_replay_task, run_id, data)
    return {"status": "replay_started", "run_id": run_id}


def run_capture_task(run_id: str) -> None:
    """Background task running the orchestrator for a registered run."""
    entry = run_storage.get(run_id)
    if not entry:
        return

    orchestrator = orchestrator_factory(entry.config, cancellation=entry.cancellation, run_id=run_id)
    entry.orchestrator = orchestrator
    entry.result = orchestrator.run_migration()
    logger.info(f"Run {run_id} finished with status {entry.result.run.status.value}")


def run_replay_task(run_id: str, data: ReplayRequest) -> None:
    """Background task replaying a run's snapshot."""
    entry = run_storage.get(run_id)
    if not entry or not entry.has_snapshot:
        return

    credentials = TargetStoreCredentials(
        base_url=data.base_url,
        consumer_key=data.consumer_key,
        consumer_secret=data.consumer_secret,
    )
    session = session_factory(entry.config.retry)
    entry.replay = {"status": "running"}
    try:
        provisioner = provisioner_factory(credentials, session, dry_run=data.dry_run)
        result = ReplayDriver(provisioner).replay(
            entry.result.snapshot, include_configuration=data.include_configuration
        )
        entry.replay = {"status": "completed", **result.to_dict()}
    except Exception as e:
        logger.error(f"Replay of run {run_id} failed: {e}")
        entry.replay = {"status": "failed", "error": str(e)}
    finally:
        session.close()
