"""
Time series chart options.

ChartOption objects shape a ChartTimeSeriesRequest through ``apply``; pass
them to ``Actor.chart_time_series``. Filters reuse the find predicates.

Example:
    >>> series = await actor.chart_time_series(
    ...     "page-view",
    ...     chart_from(start),
    ...     chart_interval("1h"),
    ...     chart_series_property("library"),
    ...     chart_aggregations(aggregate("duration", AggregationType.SUM, "total")),
    ...     chart_filters(where_equals("country", "GB")),
    ... )
"""

from __future__ import annotations

from datetime import datetime

from .filters import FindOption, build_filter
from .wire import AggregationType, ChartTimeSeriesRequest, PropertyAggregation


class ChartOption:
    """Base class for chart options."""

    def apply(self, request: ChartTimeSeriesRequest) -> None:
        raise NotImplementedError


class _Window(ChartOption):
    def __init__(self, from_: datetime | None = None, until: datetime | None = None) -> None:
        self.from_ = from_
        self.until = until

    def apply(self, request: ChartTimeSeriesRequest) -> None:
        if self.from_ is not None:
            request.from_ = self.from_
        if self.until is not None:
            request.until = self.until


def chart_from(from_: datetime) -> ChartOption:
    return _Window(from_=from_)


def chart_until(until: datetime) -> ChartOption:
    return _Window(until=until)


class _Grouping(ChartOption):
    def __init__(self, interval: str = "", timezone: str = "", series_property: str = "") -> None:
        self.interval = interval
        self.timezone = timezone
        self.series_property = series_property

    def apply(self, request: ChartTimeSeriesRequest) -> None:
        if self.interval:
            request.interval = self.interval
        if self.timezone:
            request.timezone = self.timezone
        if self.series_property:
            request.series_property = self.series_property


def chart_interval(interval: str) -> ChartOption:
    """Bucket size for data points, e.g. "1h", "1d" or "1 hour"."""
    return _Grouping(interval=interval)


def chart_timezone(timezone: str) -> ChartOption:
    return _Grouping(timezone=timezone)


def chart_series_property(prop: str) -> ChartOption:
    """Split the chart into one series per value of prop."""
    return _Grouping(series_property=prop)


def aggregate(prop: str, kind: AggregationType, alias: str = "") -> PropertyAggregation:
    return PropertyAggregation(property=prop, type=kind, alias=alias)


class _Aggregations(ChartOption):
    def __init__(self, aggregations: tuple[PropertyAggregation, ...]) -> None:
        self.aggregations = list(aggregations)

    def apply(self, request: ChartTimeSeriesRequest) -> None:
        request.aggregations = list(self.aggregations)


def chart_aggregations(*aggregations: PropertyAggregation) -> ChartOption:
    """Replace the aggregations computed per data point."""
    return _Aggregations(aggregations)


class _Filters(ChartOption):
    def __init__(self, predicates: tuple[FindOption | None, ...]) -> None:
        self.predicates = predicates

    def apply(self, request: ChartTimeSeriesRequest) -> None:
        request.property_filters = build_filter(*self.predicates).filters


def chart_filters(*predicates: FindOption | None) -> ChartOption:
    """Restrict charted entities; None predicates are skipped."""
    return _Filters(predicates)


class _FillMissing(ChartOption):
    def __init__(self, fill: bool) -> None:
        self.fill = fill

    def apply(self, request: ChartTimeSeriesRequest) -> None:
        request.fill_missing = self.fill


def chart_fill_missing(fill: bool = True) -> ChartOption:
    return _FillMissing(fill)
