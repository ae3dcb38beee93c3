"""Pydantic models shared by the n8n workflow tools.

Workflow documents, nodes and edges stay plain dicts in the n8n wire shape;
only the client-facing specs and validation results are modelled here.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ConnectionSpec(BaseModel):
    """A single edge addressed by node ids."""

    model_config = ConfigDict(populate_by_name=True)

    source_node_id: str = Field(alias="sourceNodeId")
    target_node_id: str = Field(alias="targetNodeId")
    source_index: int = Field(default=0, ge=0, alias="sourceIndex")
    target_index: int = Field(default=0, ge=0, alias="targetIndex")
    connection_type: str = Field(default="main", alias="connectionType")

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class NodeValidationResult(BaseModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    node_id: Optional[str] = None


class WorkflowValidationResult(BaseModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    node_errors: List[NodeValidationResult] = Field(default_factory=list)


class UpdateValidation(BaseModel):
    """Outcome of the cardinality checks run before a whole-workflow update.

    ``errors`` block the update unconditionally, ``warnings`` block it unless
    the caller forces it. ``blocked_checks`` describes every threshold that
    was crossed, with before/after counts.
    """

    is_valid: bool = True
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    blocked_checks: List[str] = Field(default_factory=list)


class NodeUpdate(BaseModel):
    """One entry of a bulk node update."""

    model_config = ConfigDict(populate_by_name=True)

    node_id: str = Field(alias="nodeId", min_length=1)
    updates: Dict[str, Any]
