"""SQLAlchemy database models for workflows, credentials and generated files."""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text, JSON, Integer, ForeignKey, LargeBinary
from sqlalchemy.orm import relationship
from .database import Base


class WorkflowModel(Base):
    """Database model for saved workflows; ``definition`` holds the current version."""
    __tablename__ = "workflows"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text)
    version = Column(Integer, nullable=False, default=1)
    definition = Column(JSON, nullable=False)  # Node/edge JSON shape of the current version
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    versions = relationship(
        "WorkflowVersionModel",
        back_populates="workflow",
        cascade="all, delete-orphan",
        order_by="WorkflowVersionModel.version"
    )


class WorkflowVersionModel(Base):
    """Every definition a workflow has had, oldest first."""
    __tablename__ = "workflow_versions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    workflow_id = Column(String, ForeignKey("workflows.id"), nullable=False)
    version = Column(Integer, nullable=False)
    definition = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    workflow = relationship("WorkflowModel", back_populates="versions")


class CredentialModel(Base):
    """Encrypted secret referenced by id from node inputs."""
    __tablename__ = "credentials"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    value = Column(Text, nullable=False)  # Encrypted; never decrypted by the storage layer
    created_at = Column(DateTime, default=datetime.utcnow)


class StoredFileModel(Base):
    """Generated file kept for download."""
    __tablename__ = "stored_files"

    id = Column(String, primary_key=True)
    filename = Column(String, nullable=False)
    mime_type = Column(String, nullable=False)
    content = Column(LargeBinary, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
