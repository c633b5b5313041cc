"""
Code Builder API Models

Pydantic models for request/response validation.
Required fields are checked by the file store and generator handlers, so
a missing name or prompt is reported as a 400 with a readable message.
"""

from typing import List, Optional
from pydantic import BaseModel, Field


# File store models

class FileRecord(BaseModel):
    """A file as returned by the list operation."""
    id: str = Field(..., description="File identifier")
    name: str = Field(..., description="File name, e.g. 'index.js'")
    language: str = Field(..., description="Editor language, e.g. 'javascript'")
    content: str = Field("", description="Full file contents")


class ListFilesResponse(BaseModel):
    """Response for listing files."""
    files: List[FileRecord] = Field(default_factory=list, description="All files in insertion order")


class UpsertFileRequest(BaseModel):
    """Request to create or replace a file."""
    id: Optional[str] = Field(None, description="Existing file id; omit to create")
    name: Optional[str] = Field(None, description="File name")
    language: Optional[str] = Field(None, description="Editor language")
    content: Optional[str] = Field(None, description="Full file contents; omitted means empty")


class UpsertFileResponse(BaseModel):
    """Response for creating or replacing a file."""
    success: bool = Field(True, description="Operation status")
    id: str = Field(..., description="Id of the written file")


class DeleteFileRequest(BaseModel):
    """Request to delete a file."""
    id: Optional[str] = Field(None, description="Id of the file to delete")


class SuccessResponse(BaseModel):
    """Bare success acknowledgement."""
    success: bool = Field(True, description="Operation status")


# Generation models

class GenerateRequest(BaseModel):
    """Request to generate code."""
    prompt: Optional[str] = Field(None, description="What to build")
    language: Optional[str] = Field(None, description="Target language")
    context: Optional[str] = Field(None, description="Surrounding code or notes")


class GenerateResponse(BaseModel):
    """Response with generated code."""
    success: bool = Field(True, description="Operation status")
    code: str = Field(..., description="Generated source text")


# Error response model

class ErrorResponse(BaseModel):
    """Error response."""
    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Additional error details")
