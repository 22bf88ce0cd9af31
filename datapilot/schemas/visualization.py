from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

ChartType = Literal["line", "bar", "area", "scatter", "composed", "kpi", "table"]


class AxisConfig(BaseModel):
    data_key: str = Field(min_length=1)
    label: str | None = None
    type: Literal["category", "number", "datetime"] | None = None
    format: str | None = None


class SeriesConfig(BaseModel):
    data_key: str = Field(min_length=1)
    name: str | None = None
    color: str | None = None
    type: Literal["line", "bar", "area"] | None = None
    y_axis_id: Literal["left", "right"] | None = None
    stack_id: str | None = None


class LegendConfig(BaseModel):
    show: bool
    position: Literal["top", "bottom", "left", "right"] | None = None


class VisualizationSpec(BaseModel):
    chart_type: ChartType
    title: str | None = None
    x_axis: AxisConfig | None = None
    y_axis: AxisConfig | None = None
    y_axis_right: AxisConfig | None = None
    series: list[SeriesConfig] = Field(default_factory=list)
    legend: LegendConfig | None = None
    stacked: bool | None = None
    kpi_value: str | None = None
    kpi_label: str | None = None
    kpi_comparison: str | None = None
