# api/schemas.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FileCreate(BaseModel):
    """Metadata accompanying an uploaded file."""

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(None, max_length=512)
    filename: Optional[str] = Field(None, max_length=512)
    mime_type: Optional[str] = Field(None, max_length=255)
    file_date: Optional[datetime] = None
    source_url: Optional[str] = None
    auto_generated: bool = False
    metadata: Optional[Dict[str, Any]] = None


class FilePatch(BaseModel):
    """
    Partial update of a file. Omitted fields are left untouched.

    For each security field, ``override_*: false`` reverts to the document's
    value, a value (with ``override_*`` true or omitted) sets an override.
    """

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(None, min_length=1, max_length=512)
    filename: Optional[str] = Field(None, max_length=512)
    mime_type: Optional[str] = Field(None, max_length=255)
    file_date: Optional[datetime] = None
    source_url: Optional[str] = None
    visible: Optional[bool] = None
    preview: Optional[bool] = None
    metadata: Optional[Dict[str, Any]] = None

    override_classification: Optional[bool] = None
    classification: Optional[str] = None
    override_releasable_to: Optional[bool] = None
    releasable_to: Optional[List[str]] = None
    override_eyes_only: Optional[bool] = None
    eyes_only: Optional[List[str]] = None


class FileDetails(BaseModel):
    file_id: str
    document_id: str
    title: str
    filename: Optional[str] = None
    mime_type: Optional[str] = None
    file_date: Optional[datetime] = None
    registration_date: Optional[datetime] = None
    modification_date: Optional[datetime] = None
    registered_by: Optional[str] = None
    last_modified_by: Optional[str] = None
    source_url: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    visible: bool = True
    preview: bool = True
    auto_generated: bool = False
    size_bytes: int = 0
    sha256: Optional[str] = None

    override_classification: bool = False
    classification: Optional[str] = None
    override_releasable_to: bool = False
    releasable_to: List[str] = Field(default_factory=list)
    override_eyes_only: bool = False
    eyes_only: List[str] = Field(default_factory=list)
