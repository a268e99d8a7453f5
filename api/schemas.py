from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FilterStateModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    period: str = "last-6-months"
    country: List[str] = Field(default_factory=list)
    branch: List[str] = Field(default_factory=list)
    service: List[str] = Field(default_factory=list)
    trade: List[str] = Field(default_factory=list)
    customer: List[str] = Field(default_factory=list)
    salesman: List[str] = Field(default_factory=list)
    agent: List[str] = Field(default_factory=list)
    carrier: List[str] = Field(default_factory=list)
    tradelane: List[str] = Field(default_factory=list)
    product: List[str] = Field(default_factory=list)
    tos: List[str] = Field(default_factory=list)
    chart_filters: Dict[str, str] = Field(default_factory=dict, alias="chartFilters")
    custom_start_month: Optional[str] = None
    custom_end_month: Optional[str] = None


class SavedFilterCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1)
    filters: FilterStateModel = Field(default_factory=FilterStateModel)


class SavedFilterRename(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1)
