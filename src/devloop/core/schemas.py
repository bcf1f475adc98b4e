"""
Core data schemas for devloop
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ConfigDict, field_validator


class BuildUnit(BaseModel):
    """One independently buildable and deployable backend function"""
    model_config = ConfigDict(extra="allow")

    name: str = Field(..., description="Unit name, unique within its group")
    sources: List[str] = Field(..., min_length=1, description="Declared source files or folders")
    group: str = Field(..., description="Owning package")
    runtime: str = Field(default="nodejs:18", description="Runtime kind")
    web: bool = Field(default=True, description="Exposed over the web endpoint")
    annotations: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("sources", mode="before")
    @classmethod
    def _coerce_sources(cls, value):
        if isinstance(value, str):
            return [value]
        return value

    @property
    def qualified_name(self) -> str:
        return f"{self.group}/{self.name}"


class DeployOptions(BaseModel):
    """Options passed to a deploy call"""

    is_local: bool = False
    unit_filter: Optional[List[str]] = None


class DeployedUnit(BaseModel):
    """A unit as reported back by the deploy service"""
    model_config = ConfigDict(extra="allow")

    name: str
    url: Optional[str] = None
    annotations: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_web(self) -> bool:
        value = self.annotations.get("web-export", False)
        return value is True or value == "raw"


class DeployResult(BaseModel):
    """Result of a deploy call"""

    units: List[DeployedUnit] = Field(default_factory=list)


class ActivationLog(BaseModel):
    """Log lines of one backend activation"""
    model_config = ConfigDict(extra="allow")

    activation_id: str
    name: str
    start: int
    logs: List[str] = Field(default_factory=list)
