from typing import Dict, Any, List, Optional, Union
from pydantic import BaseModel, Field


class RunRequest(BaseModel):
    """Body of a run call"""
    inputs: Optional[Union[str, Dict[str, Any]]] = Field(
        None,
        description="Named inputs, or a bare task string for agents and teams"
    )


class ComponentCatalog(BaseModel):
    """Everything registered in the process-wide registry"""
    tools: List[Dict[str, Any]] = Field(default_factory=list)
    agents: List[Dict[str, Any]] = Field(default_factory=list)
    teams: List[Dict[str, Any]] = Field(default_factory=list)
    pipelines: List[Dict[str, Any]] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    kind: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
