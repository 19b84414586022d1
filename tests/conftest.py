"""Shared fixtures for the feedextract test suite."""

from __future__ import annotations

from typing import Any

import pytest


@pytest.fixture()
def date_histogram_dsl() -> dict[str, Any]:
    """Date histogram with the nested max aggregation a datafeed needs."""
    return {
        "buckets": {
            "date_histogram": {
                "field": "timestamp",
                "fixed_interval": "5m",
            },
            "aggs": {
                "timestamp": {"max": {"field": "timestamp"}},
                "bytes": {"avg": {"field": "bytes"}},
            },
        }
    }


@pytest.fixture()
def composite_dsl() -> dict[str, Any]:
    return {
        "buckets": {
            "composite": {
                "size": 1000,
                "sources": [
                    {"time_bucket": {"date_histogram": {"field": "timestamp", "calendar_interval": "1h"}}},
                    {"airline": {"terms": {"field": "airline"}}},
                ],
            },
            "aggregations": {
                "timestamp": {"max": {"field": "timestamp"}},
            },
        }
    }


@pytest.fixture()
def datafeed_kwargs() -> dict[str, Any]:
    """Minimal valid keyword arguments for a DatafeedConfig without aggregations."""
    return {
        "datafeed_id": "datafeed-farequote",
        "job_id": "farequote",
        "indices": ["farequote-*"],
    }
