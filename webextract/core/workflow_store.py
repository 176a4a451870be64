"""Persistence of saved workflows and their versions."""

import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from ..models.core import WorkflowGraph, WorkflowRecord, WorkflowSummary
from ..storage.database import get_session_factory
from ..storage.models import WorkflowModel, WorkflowVersionModel
from .exceptions import GraphValidationError, StorageError
from .logging import get_logger
from .validator import validate_workflow

logger = get_logger(__name__)


class WorkflowStore:
    """Saves, versions and retrieves workflow graphs."""

    def __init__(self, db_session: Optional[Session] = None):
        """Initialize WorkflowStore with an optional database session."""
        self._db_session = db_session

    @contextmanager
    def _session(self) -> Iterator[Session]:
        """Yield the injected session, or a fresh one closed afterwards."""
        if self._db_session is not None:
            yield self._db_session
            return
        db = get_session_factory()()
        try:
            yield db
        finally:
            db.close()

    def create_workflow(self, name: str, graph: WorkflowGraph, description: str = "") -> str:
        """
        Save a new workflow and return its identifier.

        Args:
            name: Display name
            graph: The workflow graph; it must pass validation
            description: Optional description

        Returns:
            str: Unique workflow identifier

        Raises:
            GraphValidationError: If the graph is structurally invalid
            StorageError: If the storage operation fails
        """
        logger.info(f"Creating new workflow: {name}")

        validation = validate_workflow(graph)
        if not validation.is_valid:
            error_msg = f"Workflow validation failed: {'; '.join(validation.errors)}"
            logger.error(error_msg)
            raise GraphValidationError(error_msg, validation_errors=validation.errors)

        workflow_id = str(uuid.uuid4())
        definition = graph.to_json_value()

        with self._session() as db:
            try:
                model = WorkflowModel(
                    id=workflow_id,
                    name=name,
                    description=description,
                    version=1,
                    definition=definition,
                    created_at=datetime.utcnow()
                )
                model.versions.append(WorkflowVersionModel(version=1, definition=definition))
                db.add(model)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Database error while creating workflow: {str(e)}")
                raise StorageError(f"Failed to store workflow: {str(e)}", operation="create", table="workflows")

        logger.info(f"Successfully created workflow '{name}' with ID: {workflow_id}")
        return workflow_id

    def get_workflow(self, workflow_id: str) -> Optional[WorkflowRecord]:
        """Return the stored workflow, or None when it does not exist."""
        with self._session() as db:
            try:
                model = db.query(WorkflowModel).filter(WorkflowModel.id == workflow_id).first()
                if model is None:
                    return None
                return self._to_record(model)
            except SQLAlchemyError as e:
                logger.error(f"Database error while retrieving workflow: {str(e)}")
                raise StorageError(f"Failed to retrieve workflow: {str(e)}", operation="get", table="workflows")

    def get_graph(self, workflow_id: str, version: Optional[int] = None) -> Optional[WorkflowGraph]:
        """Return the current graph of a workflow, or the given historical version."""
        with self._session() as db:
            try:
                if version is None:
                    model = db.query(WorkflowModel).filter(WorkflowModel.id == workflow_id).first()
                else:
                    model = db.query(WorkflowVersionModel).filter(
                        WorkflowVersionModel.workflow_id == workflow_id,
                        WorkflowVersionModel.version == version
                    ).first()
                if model is None:
                    return None
                return WorkflowGraph.model_validate(model.definition)
            except SQLAlchemyError as e:
                logger.error(f"Database error while retrieving workflow graph: {str(e)}")
                raise StorageError(f"Failed to retrieve workflow: {str(e)}", operation="get", table="workflows")

    def list_workflows(self) -> List[WorkflowSummary]:
        """
        List all saved workflows, newest first.

        Raises:
            StorageError: If the storage operation fails
        """
        with self._session() as db:
            try:
                models = db.query(WorkflowModel).order_by(WorkflowModel.created_at.desc()).all()
                summaries = [self._to_summary(model) for model in models]
            except SQLAlchemyError as e:
                logger.error(f"Database error while listing workflows: {str(e)}")
                raise StorageError(f"Failed to list workflows: {str(e)}", operation="list", table="workflows")

        logger.debug(f"Retrieved {len(summaries)} workflow summaries")
        return summaries

    def update_workflow(self, workflow_id: str, graph: WorkflowGraph,
                        name: Optional[str] = None, description: Optional[str] = None) -> Optional[int]:
        """
        Store ``graph`` as the next version of a workflow.

        Drafts are accepted without validation so partially authored graphs
        can be saved. The graph object itself is never modified.

        Returns:
            Optional[int]: The new version number, or None if the workflow does not exist
        """
        definition = graph.to_json_value()

        with self._session() as db:
            try:
                model = db.query(WorkflowModel).filter(WorkflowModel.id == workflow_id).first()
                if model is None:
                    logger.warning(f"Workflow with ID '{workflow_id}' not found for update")
                    return None

                version = (model.version or 0) + 1
                model.version = version
                model.definition = definition
                if name is not None:
                    model.name = name
                if description is not None:
                    model.description = description
                model.versions.append(WorkflowVersionModel(version=version, definition=definition))
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Database error while updating workflow: {str(e)}")
                raise StorageError(f"Failed to update workflow: {str(e)}", operation="update", table="workflows")

        logger.info(f"Workflow {workflow_id} saved as version {version}")
        return version

    def delete_workflow(self, workflow_id: str) -> bool:
        """
        Delete a workflow and all of its versions.

        Returns:
            bool: True if the workflow was deleted, False if not found
        """
        logger.info(f"Deleting workflow with ID: {workflow_id}")

        with self._session() as db:
            try:
                model = db.query(WorkflowModel).filter(WorkflowModel.id == workflow_id).first()
                if model is None:
                    logger.warning(f"Workflow with ID '{workflow_id}' not found for deletion")
                    return False
                db.delete(model)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Database error while deleting workflow: {str(e)}")
                raise StorageError(f"Failed to delete workflow: {str(e)}", operation="delete", table="workflows")

        return True

    def _to_summary(self, model: WorkflowModel) -> WorkflowSummary:
        return WorkflowSummary(
            id=model.id,
            name=model.name,
            description=model.description or "",
            version=model.version or 1,
            created_at=model.created_at,
            updated_at=model.updated_at,
            node_count=len((model.definition or {}).get("nodes", []))
        )

    def _to_record(self, model: WorkflowModel) -> WorkflowRecord:
        summary = self._to_summary(model)
        return WorkflowRecord(
            **summary.model_dump(),
            definition=WorkflowGraph.model_validate(model.definition)
        )
