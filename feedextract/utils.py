"""Common utilities needed by datafeed data extractors.

Locates the date bucketing aggregation of a datafeed, resolves its interval in
milliseconds and combines the datafeed query with an extraction time range.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Union

from feedextract.aggs import (
    Aggregation,
    Composite,
    DateHistogram,
    DateHistogramValuesSource,
    Histogram,
    parse_aggregations,
)
from feedextract.errors import ConfigurationError, InvalidState
from feedextract.interval import (
    CalendarUnit,
    DAY_MILLIS,
    HOUR_MILLIS,
    INVALID_SYNTAX,
    MINUTE_MILLIS,
    SECOND_MILLIS,
    WEEK_MILLIS,
    TimeZone,
    calendar_unit,
    fixed_interval_millis,
    is_utc,
    is_variable_length,
    parse_time_value,
    parse_weeks,
)
from feedextract.query import EPOCH_MILLIS, Bool, Expr, Range, as_expr

REQUIRES_DATE_HISTOGRAM = 'aggregations require a date bucketing aggregation'
NO_SIBLINGS = 'no sibling aggregations allowed alongside the date bucketing aggregation'
REQUIRES_ONE_DATE_SOURCE = 'composite aggregations require exactly one date_histogram value source'
TIME_ZONE_MUST_BE_UTC = 'date_histogram time_zone must be UTC'
MISSING_INTERVAL = 'must specify an interval for date_histogram'
CALENDAR_INTERVAL_TOO_LONG = (
    'calendar interval too long; intervals longer than a week are not accepted '
    'because higher units have variable length'
)

FIXED_CALENDAR_UNITS = {
    CalendarUnit.WEEK: WEEK_MILLIS,
    CalendarUnit.DAY: DAY_MILLIS,
    CalendarUnit.HOUR: HOUR_MILLIS,
    CalendarUnit.MINUTE: MINUTE_MILLIS,
    CalendarUnit.SECOND: SECOND_MILLIS,
}
VARIABLE_CALENDAR_UNITS = frozenset({CalendarUnit.MONTH, CalendarUnit.QUARTER, CalendarUnit.YEAR})

Aggregations = Union[Sequence[Aggregation], Dict[str, Any]]


def wrap_in_time_range_query(user_query: Union[Expr, Dict[str, Any]], time_field: str, start: int, end: int) -> Bool:
    """Combine a user query with a ``[start, end)`` range on ``time_field`` in epoch millis."""
    time_query = Range(time_field, (start, end), right_open=True, format=EPOCH_MILLIS)
    return Bool(filter=[as_expr(user_query), time_query])


def _as_nodes(aggregations: Aggregations) -> Sequence[Aggregation]:
    if isinstance(aggregations, dict):
        return parse_aggregations(aggregations)
    return aggregations


def get_histogram_aggregation(aggregations: Aggregations) -> Aggregation:
    """Find the single (date) histogram, descending through single-child wrappers."""
    aggregations = _as_nodes(aggregations)
    if not aggregations:
        raise ConfigurationError(REQUIRES_DATE_HISTOGRAM)
    if len(aggregations) != 1:
        raise ConfigurationError(NO_SIBLINGS)

    agg = aggregations[0]
    if is_histogram(agg):
        logging.debug('found histogram aggregation: %s', agg.name)
        return agg

    logging.debug('descend into aggregation: %s', agg.name)
    return get_histogram_aggregation(agg.sub_aggregations)


def is_histogram(agg: Aggregation) -> bool:
    return isinstance(agg, (Histogram, DateHistogram)) or is_composite_with_date_histogram_source(agg)


def is_composite_with_date_histogram_source(agg: Aggregation) -> bool:
    return isinstance(agg, Composite) and any(isinstance(s, DateHistogramValuesSource) for s in agg.sources)


def get_date_histogram_values_source(composite: Composite) -> DateHistogramValuesSource:
    date_sources = [s for s in composite.sources if isinstance(s, DateHistogramValuesSource)]
    if not date_sources:
        raise ConfigurationError(REQUIRES_ONE_DATE_SOURCE)
    if len(date_sources) > 1:
        logging.warning(
            'composite aggregation [%s] has %d date_histogram value sources, using [%s]',
            composite.name,
            len(date_sources),
            date_sources[0].name,
        )
    return date_sources[0]


@dataclass(frozen=True)
class DateHistogramSpec:
    """The interval fields shared by date_histogram aggregations and composite date_histogram sources."""

    time_zone: Optional[TimeZone]
    fixed_interval: Optional[str]
    calendar_interval: Optional[str]

    @classmethod
    def from_agg(cls, agg: DateHistogram) -> 'DateHistogramSpec':
        return cls(agg.time_zone, agg.fixed_interval, agg.calendar_interval)

    @classmethod
    def from_composite(cls, composite: Composite) -> 'DateHistogramSpec':
        source = get_date_histogram_values_source(composite)
        return cls(source.time_zone, source.fixed_interval, source.calendar_interval)


def get_histogram_interval_millis(histogram: Union[Aggregation, Aggregations]) -> int:
    """Interval of a (date) histogram in milliseconds.

    Accepts either the histogram node itself or a whole aggregation collection,
    in which case the histogram is located first.
    """
    if not isinstance(histogram, Aggregation):
        histogram = get_histogram_aggregation(histogram)

    if isinstance(histogram, Histogram):
        return int(histogram.interval)
    elif isinstance(histogram, DateHistogram):
        return validate_date_histogram_interval(DateHistogramSpec.from_agg(histogram))
    elif isinstance(histogram, Composite):
        return validate_date_histogram_interval(DateHistogramSpec.from_composite(histogram))
    else:
        raise InvalidState(f'not a recognized histogram aggregation [{histogram.name}]')


def validate_date_histogram_interval(spec: DateHistogramSpec) -> int:
    if spec.time_zone is not None and not is_utc(spec.time_zone):
        raise ConfigurationError(TIME_ZONE_MUST_BE_UTC)

    if spec.calendar_interval is not None:
        return validate_calendar_interval(spec.calendar_interval)
    elif spec.fixed_interval is not None:
        return fixed_interval_millis(spec.fixed_interval)
    else:
        raise ConfigurationError(MISSING_INTERVAL)


def validate_calendar_interval(calendar_interval: str) -> int:
    if not isinstance(calendar_interval, str):
        raise ConfigurationError(INVALID_SYNTAX)
    calendar_interval = calendar_interval.strip()

    unit = calendar_unit(calendar_interval)
    if unit is not None:
        if unit in FIXED_CALENDAR_UNITS:
            millis = FIXED_CALENDAR_UNITS[unit]
        elif unit in VARIABLE_CALENDAR_UNITS:
            raise ConfigurationError(CALENDAR_INTERVAL_TOO_LONG)
        else:
            raise InvalidState(f'unexpected calendar unit [{unit}]')
    elif is_variable_length(calendar_interval):
        raise ConfigurationError(CALENDAR_INTERVAL_TOO_LONG)
    else:
        weeks = parse_weeks(calendar_interval)
        millis = weeks if weeks is not None else parse_time_value(calendar_interval)

    if millis > WEEK_MILLIS:
        raise ConfigurationError(CALENDAR_INTERVAL_TOO_LONG)
    logging.debug('calendar interval: %s, millis: %d', calendar_interval, millis)
    return millis
