"""
Persist pipeline runs, operator rollbacks and the append-only deployment
record log.
"""

import logging
from functools import lru_cache
from typing import List, Optional

from sqlalchemy import create_engine, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from controller.src.config import get_settings
from controller.src.models import db
from controller.src.models.domain import Environment, ImageReference, Revision
from controller.src.models.run import (
    DeploymentRecord,
    OperatorRollback,
    PipelineRun,
    RolloutOutcome,
)

logger = logging.getLogger(__name__)
settings = get_settings()

@lru_cache()
def get_engine() -> Engine:
    """Sync database engine for the controller."""
    return create_engine(settings.database_url)

def init_db(engine: Optional[Engine] = None):
    db.Base.metadata.create_all(engine or get_engine())

def _to_record(row: db.DeploymentRecord) -> DeploymentRecord:
    return DeploymentRecord(
        id=row.id,
        sequence=row.sequence,
        environment=Environment(row.environment),
        service=row.service,
        image=ImageReference(
            service=row.service,
            environment=Environment(row.environment),
            tag=row.image_tag,
            repository=row.repository,
        ),
        outcome=RolloutOutcome(row.outcome),
        reason=row.reason,
        run_id=row.run_id,
        reverts_record_id=row.reverts_record_id,
        timestamp=row.timestamp,
    )

class DeploymentLog:
    """
    Append-only log of terminal rollout outcomes.
    Sole source of truth for rollback targets.
    """

    def __init__(self, engine: Optional[Engine] = None):
        self.engine = engine or get_engine()
        self.Session = sessionmaker(bind=self.engine)

    def append(self, record: DeploymentRecord) -> DeploymentRecord:
        """
        Append a record. Appending a record id that is already present
        returns the stored record instead of writing a duplicate.
        """
        with self.Session() as session:
            existing = session.execute(
                select(db.DeploymentRecord).where(db.DeploymentRecord.id == record.id)
            ).scalar_one_or_none()
            if existing is not None:
                return _to_record(existing)

            row = db.DeploymentRecord(
                id=record.id,
                environment=record.environment.value,
                service=record.service,
                repository=record.image.repository,
                image_tag=record.image.tag,
                outcome=record.outcome.value,
                reason=record.reason,
                run_id=record.run_id,
                reverts_record_id=record.reverts_record_id,
                timestamp=record.timestamp,
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                # Lost a race with an identical append
                session.rollback()
                existing = session.execute(
                    select(db.DeploymentRecord).where(db.DeploymentRecord.id == record.id)
                ).scalar_one()
                return _to_record(existing)

            logger.info(
                f"Recorded {record.outcome.value} deployment of {record.service} "
                f"to {record.environment.value} ({record.image.tag})"
            )
            return _to_record(row)

    def history(
        self,
        environment: Optional[Environment] = None,
        service: Optional[str] = None,
        run_id: Optional[str] = None,
    ) -> List[DeploymentRecord]:
        """Records in append order, optionally filtered."""
        query = select(db.DeploymentRecord).order_by(db.DeploymentRecord.sequence)
        if environment is not None:
            query = query.where(db.DeploymentRecord.environment == environment.value)
        if service is not None:
            query = query.where(db.DeploymentRecord.service == service)
        if run_id is not None:
            query = query.where(db.DeploymentRecord.run_id == run_id)

        with self.Session() as session:
            return [_to_record(row) for row in session.execute(query).scalars().all()]

    def latest(self, environment: Environment, service: str) -> Optional[DeploymentRecord]:
        records = self.history(environment, service)
        return records[-1] if records else None

    def rollback_target(self, environment: Environment, service: str) -> Optional[DeploymentRecord]:
        """
        Most recent successful record preceding the current one.
        Skips records a later rollback already reverted and records
        carrying the image the current record applied.
        """
        records = self.history(environment, service)
        if not records:
            return None

        current = records[-1]
        reverted = {r.reverts_record_id for r in records if r.reverts_record_id}

        for record in reversed(records[:-1]):
            if not record.succeeded or record.id in reverted:
                continue
            if record.image.tag == current.image.tag:
                continue
            return record
        return None

class RunStore:
    """Pipeline run persistence."""

    def __init__(self, engine: Optional[Engine] = None):
        self.engine = engine or get_engine()
        self.Session = sessionmaker(bind=self.engine)

    def create(
        self,
        environment: Environment,
        revision: Revision,
        run_id: Optional[str] = None,
        triggered_by: Optional[str] = None,
    ) -> PipelineRun:
        """Insert a pending run and assign its run number."""
        run = PipelineRun(number=0, environment=environment, revision=revision)
        if run_id:
            run.id = run_id

        with self.Session() as session:
            row = db.PipelineRun(
                id=run.id,
                environment=environment.value,
                commit_sha=revision.sha,
                branch=revision.branch,
                status=run.status.value,
                triggered_by=triggered_by,
                stages=[],
            )
            session.add(row)
            session.commit()
            run.number = row.number

        logger.info(f"Created run #{run.number} ({run.id}) for {environment.value}")
        return run

    def save(self, run: PipelineRun):
        with self.Session() as session:
            session.execute(
                update(db.PipelineRun)
                .where(db.PipelineRun.id == run.id)
                .values(
                    status=run.status.value,
                    stages=[s.model_dump(mode="json") for s in run.stages],
                    error=run.error,
                    rollback=run.rollback.model_dump(mode="json") if run.rollback else None,
                    started_at=run.started_at,
                    finished_at=run.finished_at,
                )
            )
            session.commit()
        logger.debug(f"Saved run {run.id} with status {run.status.value}")

    def get(self, run_id: str) -> Optional[PipelineRun]:
        with self.Session() as session:
            row = session.execute(
                select(db.PipelineRun).where(db.PipelineRun.id == run_id)
            ).scalar_one_or_none()
            if row is None:
                return None
            return PipelineRun.model_validate({
                "id": row.id,
                "number": row.number,
                "environment": row.environment,
                "revision": {"sha": row.commit_sha, "branch": row.branch},
                "status": row.status,
                "stages": row.stages or [],
                "error": row.error,
                "rollback": row.rollback,
                "started_at": row.started_at,
                "finished_at": row.finished_at,
            })

class RollbackStore:
    """Operator rollback persistence."""

    def __init__(self, engine: Optional[Engine] = None):
        self.engine = engine or get_engine()
        self.Session = sessionmaker(bind=self.engine)

    def create(self, rollback: OperatorRollback) -> OperatorRollback:
        with self.Session() as session:
            session.add(db.Rollback(
                id=rollback.id,
                environment=rollback.environment.value,
                service=rollback.service,
                status=rollback.status.value,
                triggered_by=rollback.triggered_by,
                created_at=rollback.created_at,
            ))
            session.commit()

        logger.info(f"Created rollback {rollback.id} for {rollback.environment.value}")
        return rollback

    def save(self, rollback: OperatorRollback):
        with self.Session() as session:
            session.execute(
                update(db.Rollback)
                .where(db.Rollback.id == rollback.id)
                .values(
                    status=rollback.status.value,
                    result=rollback.result.model_dump(mode="json") if rollback.result else None,
                    error=rollback.error,
                    finished_at=rollback.finished_at,
                )
            )
            session.commit()
        logger.debug(f"Saved rollback {rollback.id} with status {rollback.status.value}")

    def get(self, rollback_id: str) -> Optional[OperatorRollback]:
        with self.Session() as session:
            row = session.execute(
                select(db.Rollback).where(db.Rollback.id == rollback_id)
            ).scalar_one_or_none()
            if row is None:
                return None
            return OperatorRollback.model_validate({
                "id": row.id,
                "environment": row.environment,
                "service": row.service,
                "status": row.status,
                "triggered_by": row.triggered_by,
                "result": row.result,
                "error": row.error,
                "created_at": row.created_at,
                "finished_at": row.finished_at,
            })
