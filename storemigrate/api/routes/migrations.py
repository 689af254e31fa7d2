"""Migration execution endpoints."""

import logging

from fastapi import APIRouter, HTTPException, BackgroundTasks

from ..models import (
    MigrationCreate,
    MigrationResponse,
    MigrationListResponse,
    MigrationStartResponse,
)
from ..storage import migration_storage
from ...errors import AuthenticationError, ConfigurationError
from ...models.migration import MigrationConfig, MigrationRun
from ...orchestrator import MigrationOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(run: MigrationRun) -> MigrationResponse:
    return MigrationResponse(**run.to_dict())


@router.post("", response_model=MigrationStartResponse)
async def start_migration(data: MigrationCreate, background_tasks: BackgroundTasks):
    """Validate a migration configuration and start the run in the background."""
    try:
        config = data.to_config()
        config.validate()
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    run = migration_storage.add(MigrationRun(name=config.name))
    background_tasks.add_task(run_migration_task, config, run)

    return MigrationStartResponse(migration_id=run.id, status="started")


@router.get("", response_model=MigrationListResponse)
async def list_migrations():
    """List all migration runs."""
    runs = migration_storage.list_all()
    return MigrationListResponse(migrations=[_to_response(r) for r in runs], total=len(runs))


@router.get("/{migration_id}", response_model=MigrationResponse)
async def get_migration(migration_id: str):
    """Get the status and results of a migration run."""
    run = migration_storage.get(migration_id)
    if not run:
        raise HTTPException(status_code=404, detail="Migration not found")
    return _to_response(run)


def run_migration_task(config: MigrationConfig, run: MigrationRun) -> None:
    """Background task running a migration; fatal errors end up on the run."""
    orchestrator = MigrationOrchestrator(config)
    try:
        orchestrator.run_migration(run=run)
    except (ConfigurationError, AuthenticationError) as e:
        logger.error(f"Migration {run.id} failed: {e}")
    except Exception as e:
        # The run already carries the failure; nothing above the task can handle it
        logger.exception(f"Migration {run.id} aborted: {e}")
