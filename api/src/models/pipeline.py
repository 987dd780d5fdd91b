from sqlalchemy import Column, String, DateTime, Integer, Text, JSON
from sqlalchemy.sql import func

from api.src.db.database import Base

class PipelineRun(Base):
    __tablename__ = "pipeline_runs"

    number = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), nullable=False, unique=True, index=True)
    environment = Column(String(32), nullable=False, index=True)
    commit_sha = Column(String(40), nullable=False)
    branch = Column(String(255), nullable=False)
    status = Column(String(50), default="pending")
    triggered_by = Column(String(255))
    stages = Column(JSON)
    error = Column(JSON)
    rollback = Column(JSON)
    started_at = Column(DateTime(timezone=True))
    finished_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

class DeploymentRecord(Base):
    __tablename__ = "deployment_records"

    sequence = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), nullable=False, unique=True)
    environment = Column(String(32), nullable=False, index=True)
    service = Column(String(255), nullable=False, index=True)
    repository = Column(String(500), nullable=False)
    image_tag = Column(String(255), nullable=False)
    outcome = Column(String(16), nullable=False)
    reason = Column(Text)
    run_id = Column(String(36), index=True)
    reverts_record_id = Column(String(36))
    timestamp = Column(DateTime(timezone=True), nullable=False)

class Rollback(Base):
    __tablename__ = "rollbacks"

    id = Column(String(36), primary_key=True)
    environment = Column(String(32), nullable=False, index=True)
    service = Column(String(255))
    status = Column(String(50), default="pending")
    triggered_by = Column(String(255))
    result = Column(JSON)
    error = Column(JSON)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    finished_at = Column(DateTime(timezone=True))
