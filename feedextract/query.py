import abc
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from feedextract.errors import ConfigurationError

EPOCH_MILLIS = 'epoch_millis'


class Expr(abc.ABC):
    @abc.abstractmethod
    def compile(self) -> dict:
        ...


class RawQuery(Expr):
    """A query given as already-built DSL, e.g. the ``query`` section of a datafeed."""

    def __init__(self, body: Dict[str, Any]):
        if not isinstance(body, dict) or len(body) != 1:
            raise ConfigurationError('query must be an object with a single query type')
        self.body = body

    def compile(self):
        return dict(self.body)


class MatchAll(Expr):
    def compile(self):
        return {
            'match_all': {},
        }


class Range(Expr):
    def __init__(
        self,
        field: str,
        interval: Tuple[Any, Any],
        *,
        left_open: bool = False,
        right_open: bool = False,
        format: Optional[str] = None,
    ):
        self.field = field
        self.interval = interval
        self.left_open = left_open
        self.right_open = right_open
        self.format = format

    @property
    def bounds(self) -> Dict[str, Any]:
        left, right = self.interval
        if isinstance(left, (date, datetime)):
            left = left.isoformat()
        if isinstance(right, (date, datetime)):
            right = right.isoformat()

        range = {}
        if left is not None:
            op = 'gt' if self.left_open else 'gte'
            range[op] = left
        if right is not None:
            op = 'lt' if self.right_open else 'lte'
            range[op] = right
        return range

    def compile(self):
        range = self.bounds
        if self.format is not None:
            range['format'] = self.format

        return {
            'range': {
                self.field: range,
            }
        }


class Bool(Expr):
    def __init__(
        self,
        *,
        filter: Sequence[Expr] = (),
        must: Sequence[Expr] = (),
        must_not: Sequence[Expr] = (),
        should: Sequence[Expr] = (),
    ):
        self.filter: List[Expr] = list(filter)
        self.must: List[Expr] = list(must)
        self.must_not: List[Expr] = list(must_not)
        self.should: List[Expr] = list(should)

    def compile(self):
        clauses = {
            'filter': self.filter,
            'must': self.must,
            'must_not': self.must_not,
            'should': self.should,
        }
        return {
            'bool': {
                occur: [e.compile() for e in exprs]
                for occur, exprs in clauses.items()
                if exprs
            }
        }


def as_expr(query: Union[Expr, Dict[str, Any], None]) -> Expr:
    if query is None:
        return MatchAll()
    if isinstance(query, Expr):
        return query
    return RawQuery(query)
