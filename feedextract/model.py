import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel as RawBaseModel, ConfigDict, Field, field_validator, model_validator

from feedextract.aggs import Aggregation, Max, parse_aggregations
from feedextract.errors import ConfigurationError
from feedextract.interval import parse_time_value
from feedextract.query import Bool, RawQuery
from feedextract.utils import get_histogram_aggregation, get_histogram_interval_millis, wrap_in_time_range_query


class BaseModel(RawBaseModel):
    model_config = ConfigDict(frozen=True, extra='forbid')


class DatafeedConfig(BaseModel):
    """Search side of an anomaly detection datafeed, validated once at construction."""

    datafeed_id: str = Field(pattern=r'^[a-z0-9](?:[a-z0-9_.\-]*[a-z0-9])?$')
    job_id: str
    indices: List[str] = Field(min_length=1)
    query: Dict[str, Any] = Field(default_factory=lambda: {'match_all': {}})
    aggregations: Optional[Dict[str, Any]] = None
    time_field: str = 'timestamp'
    frequency: Optional[str] = None
    query_delay: Optional[str] = None
    scroll_size: int = Field(default=1000, ge=1, le=10000)

    @field_validator('query')
    @classmethod
    def _check_query(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        RawQuery(value)
        return value

    @field_validator('frequency', 'query_delay')
    @classmethod
    def _check_duration(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            parse_time_value(value)
        return value

    @model_validator(mode='after')
    def _check_aggregations(self) -> 'DatafeedConfig':
        if not self.has_aggregations():
            return self

        histogram = get_histogram_aggregation(self.parsed_aggregations())
        interval = get_histogram_interval_millis(histogram)
        logging.debug('datafeed: %s, histogram: %s, interval: %d', self.datafeed_id, histogram.name, interval)
        if interval <= 0:
            raise ConfigurationError('aggregation interval must be greater than 0')

        if not any(isinstance(a, Max) and a.field == self.time_field for a in histogram.sub_aggregations):
            raise ConfigurationError(
                f'date bucketing aggregation must have a nested max aggregation for time_field [{self.time_field}]'
            )

        if self.frequency is not None:
            frequency = parse_time_value(self.frequency)
            if frequency % interval != 0:
                raise ConfigurationError(
                    f'datafeed frequency [{self.frequency}] must be a multiple of the aggregation interval [{interval}ms]'
                )
        return self

    def has_aggregations(self) -> bool:
        return bool(self.aggregations)

    def parsed_aggregations(self) -> List[Aggregation]:
        return parse_aggregations(self.aggregations)

    def histogram_interval_millis(self) -> Optional[int]:
        if not self.has_aggregations():
            return None
        return get_histogram_interval_millis(self.parsed_aggregations())

    def build_query(self, start: int, end: int) -> Bool:
        return wrap_in_time_range_query(self.query, self.time_field, start, end)
