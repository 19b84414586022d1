import abc
import logging
from datetime import tzinfo
from typing import Any, Callable, ClassVar, Dict, Iterable, List, Optional, Sequence, Tuple

from feedextract.errors import ConfigurationError
from feedextract.interval import TimeZone


def _zone_name(time_zone: TimeZone) -> str:
    if isinstance(time_zone, tzinfo):
        return getattr(time_zone, 'key', None) or time_zone.tzname(None)
    return time_zone


def _date_interval_body(field, fixed_interval, calendar_interval, time_zone) -> dict:
    body: Dict[str, Any] = {'field': field}
    if fixed_interval is not None:
        body['fixed_interval'] = fixed_interval
    if calendar_interval is not None:
        body['calendar_interval'] = calendar_interval
    if time_zone is not None:
        body['time_zone'] = _zone_name(time_zone)
    return body


class Aggregation(abc.ABC):
    type: ClassVar[str]

    def __init__(self, name: str, sub_aggregations: Sequence['Aggregation'] = ()) -> None:
        self.name = name
        self.sub_aggregations: Tuple[Aggregation, ...] = tuple(sub_aggregations)

    @abc.abstractmethod
    def body(self) -> dict:
        ...

    def nested(self, *children: 'Aggregation'):
        self.sub_aggregations = self.sub_aggregations + children
        return self

    def compile(self) -> dict:
        definition: Dict[str, Any] = {self.type: self.body()}
        if self.sub_aggregations:
            definition['aggs'] = compile_aggregations(self.sub_aggregations)
        return {self.name: definition}

    def __repr__(self) -> str:
        return f'{type(self).__name__}({self.name!r})'


class MetricAggregation(Aggregation):
    def __init__(self, name: str, field: str) -> None:
        super().__init__(name)
        self.field = field

    def body(self):
        return {'field': self.field}

    def nested(self, *children: Aggregation):
        raise ConfigurationError(f'aggregation [{self.name}] of type [{self.type}] cannot accept sub-aggregations')


class BucketAggregation(Aggregation):
    ...


class Histogram(BucketAggregation):
    type = 'histogram'

    def __init__(self, name: str, field: str, interval: float, sub_aggregations: Sequence[Aggregation] = (), params: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(name, sub_aggregations)
        if isinstance(interval, bool) or not isinstance(interval, (int, float)):
            raise ConfigurationError(f'[interval] must be a number for histogram aggregation [{name}]')
        if interval <= 0:
            raise ConfigurationError(f'[interval] must be >0 for histogram aggregation [{name}]')
        self.field = field
        self.interval = interval
        self.params = dict(params or {})

    def body(self):
        return {'field': self.field, 'interval': self.interval, **self.params}


class DateHistogram(BucketAggregation):
    type = 'date_histogram'

    def __init__(
        self,
        name: str,
        field: str,
        *,
        fixed_interval: Optional[str] = None,
        calendar_interval: Optional[str] = None,
        time_zone: Optional[TimeZone] = None,
        sub_aggregations: Sequence[Aggregation] = (),
        params: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(name, sub_aggregations)
        self.field = field
        self.fixed_interval = fixed_interval
        self.calendar_interval = calendar_interval
        self.time_zone = time_zone
        self.params = dict(params or {})

    def body(self):
        body = _date_interval_body(self.field, self.fixed_interval, self.calendar_interval, self.time_zone)
        body.update(self.params)
        return body


class CompositeValuesSource(abc.ABC):
    type: ClassVar[str]

    def __init__(self, name: str, field: str, params: Optional[Dict[str, Any]] = None) -> None:
        self.name = name
        self.field = field
        self.params = dict(params or {})

    def body(self) -> dict:
        return {'field': self.field, **self.params}

    def compile(self):
        return {
            self.name: {
                self.type: self.body(),
            }
        }

    def __repr__(self) -> str:
        return f'{type(self).__name__}({self.name!r})'


class TermsValuesSource(CompositeValuesSource):
    type = 'terms'


class HistogramValuesSource(CompositeValuesSource):
    type = 'histogram'

    def __init__(self, name: str, field: str, interval: float, params: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(name, field, params)
        self.interval = interval

    def body(self):
        return {'field': self.field, 'interval': self.interval, **self.params}


class DateHistogramValuesSource(CompositeValuesSource):
    type = 'date_histogram'

    def __init__(
        self,
        name: str,
        field: str,
        *,
        fixed_interval: Optional[str] = None,
        calendar_interval: Optional[str] = None,
        time_zone: Optional[TimeZone] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(name, field, params)
        self.fixed_interval = fixed_interval
        self.calendar_interval = calendar_interval
        self.time_zone = time_zone

    def body(self):
        body = _date_interval_body(self.field, self.fixed_interval, self.calendar_interval, self.time_zone)
        body.update(self.params)
        return body


class Composite(BucketAggregation):
    type = 'composite'

    def __init__(
        self,
        name: str,
        sources: Sequence[CompositeValuesSource],
        size: int = 10,
        sub_aggregations: Sequence[Aggregation] = (),
        params: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(name, sub_aggregations)
        self.sources: Tuple[CompositeValuesSource, ...] = tuple(sources)
        self.size = size
        self.params = dict(params or {})

    def body(self):
        return {
            'size': self.size,
            'sources': [s.compile() for s in self.sources],
            **self.params,
        }


class Terms(BucketAggregation):
    type = 'terms'

    def __init__(self, name: str, field: str, max_buckets: int = 10, sub_aggregations: Sequence[Aggregation] = (), params: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(name, sub_aggregations)
        self.field = field
        self.max_buckets = max_buckets
        self.params = dict(params or {})

    def body(self):
        return {
            'field': self.field,
            'size': self.max_buckets,
            **self.params,
        }


class Cardinality(MetricAggregation):
    type = 'cardinality'


class Sum(MetricAggregation):
    type = 'sum'


class Avg(MetricAggregation):
    type = 'avg'


class Min(MetricAggregation):
    type = 'min'


class Max(MetricAggregation):
    type = 'max'


class GenericAggregation(Aggregation):
    """Any aggregation type without a dedicated class; its body is carried through as given."""

    def __init__(self, name: str, type: str, body: dict, sub_aggregations: Sequence[Aggregation] = ()) -> None:
        super().__init__(name, sub_aggregations)
        self.type = type
        self._body = body

    def body(self):
        return dict(self._body)


def compile_aggregations(aggregations: Iterable[Aggregation]) -> dict:
    compiled = {}
    for agg in aggregations:
        compiled.update(agg.compile())
    return compiled


def _take_field(name: str, body: dict) -> Tuple[Any, dict]:
    params = dict(body)
    field = params.pop('field', None)
    if field is None:
        raise ConfigurationError(f'[field] is required for aggregation [{name}]')
    return field, params


def _parse_histogram(name: str, body: dict) -> Histogram:
    field, params = _take_field(name, body)
    if 'interval' not in params:
        raise ConfigurationError(f'[interval] is required for histogram aggregation [{name}]')
    interval = params.pop('interval')
    return Histogram(name, field, interval, params=params)


def _date_interval_params(name: str, body: dict) -> Tuple[Any, Dict[str, Any], dict]:
    field, params = _take_field(name, body)
    intervals = {key: params.pop(key, None) for key in ('fixed_interval', 'calendar_interval', 'time_zone')}
    if intervals['fixed_interval'] is not None and intervals['calendar_interval'] is not None:
        raise ConfigurationError(f'cannot use [fixed_interval] with [calendar_interval] in date_histogram [{name}]')
    if intervals['time_zone'] is not None and not isinstance(intervals['time_zone'], str):
        raise ConfigurationError(f'[time_zone] must be a string in date_histogram [{name}]')
    return field, intervals, params


def _parse_date_histogram(name: str, body: dict) -> DateHistogram:
    field, intervals, params = _date_interval_params(name, body)
    return DateHistogram(name, field, params=params, **intervals)


def _parse_value_source(definition: Any) -> CompositeValuesSource:
    if not isinstance(definition, dict) or len(definition) != 1:
        raise ConfigurationError('each composite value source must be an object with a single named entry')

    (name, typed), = definition.items()
    if not isinstance(typed, dict) or len(typed) != 1:
        raise ConfigurationError(f'composite value source [{name}] must declare exactly one type')

    (source_type, body), = typed.items()
    if not isinstance(body, dict):
        raise ConfigurationError(f'composite value source [{name}] must be an object')

    if source_type == 'date_histogram':
        field, intervals, params = _date_interval_params(name, body)
        return DateHistogramValuesSource(name, field, params=params, **intervals)
    if source_type == 'histogram':
        field, params = _take_field(name, body)
        if 'interval' not in params:
            raise ConfigurationError(f'[interval] is required for histogram value source [{name}]')
        interval = params.pop('interval')
        return HistogramValuesSource(name, field, interval, params=params)
    if source_type == 'terms':
        field, params = _take_field(name, body)
        return TermsValuesSource(name, field, params=params)

    raise ConfigurationError(f'unsupported composite value source type [{source_type}] for [{name}]')


def _parse_composite(name: str, body: dict) -> Composite:
    params = dict(body)
    sources = params.pop('sources', None)
    if not isinstance(sources, list) or not sources:
        raise ConfigurationError(f'composite aggregation [{name}] requires a non-empty [sources] list')
    size = params.pop('size', 10)
    return Composite(name, [_parse_value_source(s) for s in sources], size, params=params)


def _parse_terms(name: str, body: dict) -> Terms:
    field, params = _take_field(name, body)
    max_buckets = params.pop('size', 10)
    return Terms(name, field, max_buckets, params=params)


def _metric_parser(cls) -> Callable[[str, dict], MetricAggregation]:
    def parse(name: str, body: dict):
        field, _ = _take_field(name, body)
        return cls(name, field)
    return parse


AGGREGATION_PARSERS: Dict[str, Callable[[str, dict], Aggregation]] = {
    'histogram': _parse_histogram,
    'date_histogram': _parse_date_histogram,
    'composite': _parse_composite,
    'terms': _parse_terms,
    'cardinality': _metric_parser(Cardinality),
    'sum': _metric_parser(Sum),
    'avg': _metric_parser(Avg),
    'min': _metric_parser(Min),
    'max': _metric_parser(Max),
}

SUB_AGGREGATION_KEYS = ('aggs', 'aggregations')
RESERVED_KEYS = SUB_AGGREGATION_KEYS + ('meta',)


def parse_aggregation(name: str, definition: Any) -> Aggregation:
    if not isinstance(definition, dict):
        raise ConfigurationError(f'aggregation [{name}] must be an object')

    present = [k for k in SUB_AGGREGATION_KEYS if k in definition]
    if len(present) > 1:
        raise ConfigurationError(f'aggregation [{name}] declares both [aggs] and [aggregations]')

    types = [k for k in definition if k not in RESERVED_KEYS]
    if len(types) != 1:
        raise ConfigurationError(f'expected exactly one aggregation type for [{name}], found {types}')

    agg_type = types[0]
    body = definition[agg_type]
    if not isinstance(body, dict):
        raise ConfigurationError(f'definition of aggregation [{name}] of type [{agg_type}] must be an object')

    parser = AGGREGATION_PARSERS.get(agg_type)
    agg = parser(name, body) if parser else GenericAggregation(name, agg_type, body)
    logging.debug('parse aggregation: %s, type: %s', name, agg_type)

    children = parse_aggregations(definition[present[0]]) if present else []
    if children:
        agg.nested(*children)
    return agg


def parse_aggregations(dsl: Optional[Dict[str, Any]]) -> List[Aggregation]:
    """Build aggregation nodes from the aggregation section of a search request."""
    if dsl is None:
        return []
    if not isinstance(dsl, dict):
        raise ConfigurationError('aggregations must be an object keyed by aggregation name')
    return [parse_aggregation(name, definition) for name, definition in dsl.items()]
