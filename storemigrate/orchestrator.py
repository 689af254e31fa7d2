"""Migration orchestrator - coordinates the transfer of every configured collection."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from .clients.base import BaseStoreClient
from .clients.pocketbase_client import PocketBaseClient
from .errors import AuthenticationError, ConfigurationError
from .models.migration import (
    CollectionSpec,
    MigrationConfig,
    MigrationRun,
    MigrationStatus,
)
from .models.record import TransferResult, TransferStatus
from .services.attachments import AttachmentMigrator
from .services.hierarchy import HierarchicalTransfer
from .services.staging import StagingArea
from .services.transfer import RecordTransferPipeline

logger = logging.getLogger(__name__)


class MigrationOrchestrator:
    """
    Orchestrates a migration run.

    Handles:
    - Configuration validation
    - Authentication against both stores
    - Dispatching each collection to the flat or hierarchical transfer
    - Aggregating per-collection results and saving a run report

    Configuration and authentication problems are fatal and raised.
    A collection that cannot be cleared or listed is marked failed and
    the run moves on to the next one.
    """

    def __init__(
        self,
        config: MigrationConfig,
        source_client: Optional[BaseStoreClient] = None,
        destination_client: Optional[BaseStoreClient] = None,
        attachment_migrator: Optional[AttachmentMigrator] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Migration configuration
            source_client: Source store client (PocketBase client from config if omitted)
            destination_client: Destination store client (PocketBase client from config if omitted)
            attachment_migrator: Attachment migrator (built from config if omitted)
        """
        self.config = config
        self.source = source_client
        self.destination = destination_client
        self.attachment_migrator = attachment_migrator
        self.run: Optional[MigrationRun] = None

    def _create_clients(self) -> None:
        """Create store clients that were not injected."""
        if self.source is None:
            self.source = PocketBaseClient.from_endpoint("source", self.config.source)
        if self.destination is None:
            self.destination = PocketBaseClient.from_endpoint("destination", self.config.destination)

    def _authenticate(self) -> None:
        """Authenticate against both stores."""
        self.source.authenticate()
        self.destination.authenticate()
        logger.info("Successfully authenticated with both stores")

    def _select_collections(self, names: Optional[List[str]]) -> List[CollectionSpec]:
        """Configured collections, optionally restricted to names, in configured order."""
        if not names:
            return list(self.config.collections)

        configured = {spec.name for spec in self.config.collections}
        unknown = [name for name in names if name not in configured]
        if unknown:
            raise ConfigurationError(f"Collections not configured: {', '.join(unknown)}")

        return [spec for spec in self.config.collections if spec.name in names]

    def run_migration(
        self,
        collections: Optional[List[str]] = None,
        run: Optional[MigrationRun] = None
    ) -> MigrationRun:
        """
        Run the migration.

        Args:
            collections: Only migrate these configured collections
            run: Run object to record progress in (created if omitted)

        Returns:
            MigrationRun with per-collection results

        Raises:
            ConfigurationError: If the configuration is invalid
            AuthenticationError: If either store rejects authentication
        """
        self.run = run or MigrationRun(name=self.config.name)
        self.run.name = self.run.name or self.config.name
        self.run.started_at = datetime.utcnow()
        self.run.status = MigrationStatus.RUNNING

        try:
            self.config.validate()
            specs = self._select_collections(collections)

            logger.info(f"Starting migration '{self.config.name}' of {len(specs)} collection(s)")
            logger.info(f"From: {self.config.source.url}")
            logger.info(f"To: {self.config.destination.url}")

            self._create_clients()
            self._authenticate()

            for spec in specs:
                self.run.current_collection = spec.name
                result = self.transfer_collection(spec)
                self.run.results.append(result)

                if result.status == TransferStatus.FAILED and not self.config.continue_on_error:
                    logger.error(f"Stopping migration after failed collection {spec.name}")
                    break

            self.run.status = MigrationStatus.COMPLETED
            logger.info("=== MIGRATION COMPLETED ===")

        except (ConfigurationError, AuthenticationError) as e:
            logger.error(f"Migration failed: {e}")
            self.run.status = MigrationStatus.FAILED
            self.run.errors.append({
                **e.to_dict(),
                "timestamp": datetime.utcnow().isoformat(),
            })
            raise

        except Exception as e:
            logger.exception(f"Migration aborted by unexpected error: {e}")
            self.run.status = MigrationStatus.FAILED
            self.run.errors.append({
                "error": str(e),
                "type": type(e).__name__,
                "collection": self.run.current_collection,
                "timestamp": datetime.utcnow().isoformat(),
            })
            raise

        finally:
            self.run.current_collection = None
            self.run.completed_at = datetime.utcnow()
            self.run.update_totals()
            if self.config.report_dir:
                self._save_report()

        return self.run

    def transfer_collection(self, spec: CollectionSpec) -> TransferResult:
        """Transfer one collection with the pipeline matching its shape."""
        if spec.has_self_reference:
            logger.info(
                f"=== {spec.name}: hierarchical transfer via '{spec.self_reference_field}' ==="
            )
            pipeline = HierarchicalTransfer(
                self.config, self.source, self.destination, self._attachment_migrator()
            )
        else:
            logger.info(f"=== {spec.name}: flat transfer ===")
            pipeline = RecordTransferPipeline(
                self.config, self.source, self.destination, self._attachment_migrator()
            )
        return pipeline.transfer(spec)

    def _attachment_migrator(self) -> AttachmentMigrator:
        if self.attachment_migrator is None:
            self.attachment_migrator = AttachmentMigrator(
                StagingArea(self.config.staging_dir),
                download_timeout=self.config.download_timeout,
            )
        return self.attachment_migrator

    def check_connections(self) -> Dict[str, bool]:
        """
        Check that both stores answer and accept the configured credentials.

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        self.config.validate()
        self._create_clients()

        status = {}
        for role, client in (("source", self.source), ("destination", self.destination)):
            if not client.validate_connection():
                status[role] = False
                continue
            try:
                client.authenticate()
                status[role] = True
            except AuthenticationError as e:
                logger.error(f"Authentication against {role} store failed: {e}")
                status[role] = False
        return status

    def _save_report(self) -> None:
        """Save the migration report. A failed write is logged, not raised."""
        report_dir = Path(self.config.report_dir)
        filepath = report_dir / f"migration_report_{datetime.utcnow().strftime('%Y%m%d_%H%M%S')}.json"
        try:
            report_dir.mkdir(parents=True, exist_ok=True)
            with open(filepath, 'w') as f:
                json.dump(self.run.to_dict(), f, indent=2, default=str)
        except OSError as e:
            logger.error(f"Failed to save migration report to {filepath}: {e}")
            return
        logger.info(f"Saved migration report to {filepath}")
