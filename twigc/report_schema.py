"""
JSON report models printed by the CLI.
"""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CompileReport(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    template_id: str = Field(..., alias="templateId")
    requires: List[str] = Field(default_factory=list)
    includes: List[str] = Field(default_factory=list)
    styles: List[str] = Field(default_factory=list)
    scripts: List[str] = Field(default_factory=list)
    blocks: List[str] = Field(default_factory=list)
    extends: bool = False
    warnings: List[str] = Field(default_factory=list)
    output: Optional[str] = Field(None, description="Path of the written module, if any")


class RenderReport(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    template_id: str = Field(..., alias="templateId")
    value: Any = None
    warnings: List[str] = Field(default_factory=list)


__all__ = ["CompileReport", "RenderReport"]
