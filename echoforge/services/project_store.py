"""SQL-backed project persistence (one JSON document per project row)."""

import asyncio
import logging

from pydantic import ValidationError
from sqlalchemy.orm import Session, sessionmaker

from echoforge.models.project import Project
from echoforge.models.project_record import ProjectRecord

logger = logging.getLogger(__name__)


class ProjectStore:
    """Load, save and delete projects by id.

    Each call runs one short SQLAlchemy session in a worker thread, so
    concurrent generation and audio tasks keep running while it blocks.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    async def load_all(self) -> list[Project]:
        """All readable projects, newest first. Corrupted rows are skipped."""
        return await asyncio.to_thread(self._load_all)

    async def load(self, project_id: str) -> Project:
        """Raises:
            ValueError: If no project has this id.
        """
        return await asyncio.to_thread(self._load, project_id)

    async def save(self, project: Project) -> None:
        await asyncio.to_thread(self._save, project)

    async def delete(self, project_id: str) -> None:
        await asyncio.to_thread(self._delete, project_id)

    # ── Session bodies (worker thread) ───────────────────────────────

    def _load_all(self) -> list[Project]:
        session = self._session_factory()
        try:
            records = (
                session.query(ProjectRecord)
                .order_by(ProjectRecord.created_at.desc())
                .all()
            )
            projects = []
            for record in records:
                try:
                    projects.append(Project.model_validate_json(record.document))
                except ValidationError as e:
                    logger.warning("Skipping unreadable project %s: %s", record.id, e)
            return projects
        finally:
            session.close()

    def _load(self, project_id: str) -> Project:
        session = self._session_factory()
        try:
            record = session.get(ProjectRecord, project_id)
            if record is None:
                raise ValueError(f"Project not found: {project_id}")
            return Project.model_validate_json(record.document)
        finally:
            session.close()

    def _save(self, project: Project) -> None:
        document = project.model_dump_json()
        session = self._session_factory()
        try:
            record = session.get(ProjectRecord, project.id)
            if record is None:
                record = ProjectRecord(id=project.id, created_at=project.created_at)
                session.add(record)
            record.topic = project.topic
            record.title = project.title
            record.status = project.status
            record.last_updated_at = project.last_updated_at
            record.document = document
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _delete(self, project_id: str) -> None:
        session = self._session_factory()
        try:
            record = session.get(ProjectRecord, project_id)
            if record is not None:
                session.delete(record)
                session.commit()
                logger.info("Project deleted: %s", project_id)
        finally:
            session.close()
