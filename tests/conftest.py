"""Shared test fixtures and helpers.

Centralizes catalog and activity setup used across the test modules.
"""

import itertools
from unittest import mock

import pytest

from biascards.activity import BiasActivity
from biascards.catalog import catalog_from_mapping, load_catalog

# ---------------------------------------------------------------------------
# Catalogs
# ---------------------------------------------------------------------------

SMALL_CATALOG_DATA = {
    "metadata": {"id": "test-deck", "version": "0.1.0", "name": "Test Deck"},
    "biases": [
        {"id": "confirmation-bias", "name": "Confirmation Bias", "category": "cognitive-bias", "legacy_id": 3},
        {"id": "historical-bias", "name": "Historical Bias", "category": "social-bias", "legacy_id": 12},
        {"id": "selection-bias", "name": "Selection Bias", "category": "statistical-bias", "legacy_id": 20},
    ],
    "mitigations": [
        {"id": "peer-review", "name": "Peer Review", "category": "mitigation-technique", "legacy_id": 112},
        {
            "id": "additional-data-collection",
            "name": "Additional Data Collection",
            "category": "mitigation-technique",
            "legacy_id": 101,
        },
    ],
}


@pytest.fixture(scope="session")
def catalog():
    """The bundled default catalog."""
    return load_catalog()


@pytest.fixture
def small_catalog():
    """A three-bias, two-mitigation catalog."""
    return catalog_from_mapping(SMALL_CATALOG_DATA)


# ---------------------------------------------------------------------------
# Activities
# ---------------------------------------------------------------------------


@pytest.fixture
def activity(catalog):
    """A fresh activity bound to the default catalog."""
    return BiasActivity(catalog, name="Credit scoring review", activity_id="activity-test")


@pytest.fixture
def ticking_clock():
    """Make activity timestamps strictly increasing."""
    counter = itertools.count(1)

    def _next_timestamp():
        return f"2026-01-01T00:00:00.{next(counter):06d}Z"

    with mock.patch("biascards.activity.bias_activity.utc_timestamp", side_effect=_next_timestamp):
        yield


def _fully_assess(activity, item_id="confirmation-bias", stage="problem-formulation", mitigation="peer-review"):
    """Take one item through all five stages with valid data."""
    activity.assign_risk(item_id, "high")
    activity.map_to_lifecycle_stage(item_id, stage)
    activity.set_rationale(item_id, stage, "Analysts look for evidence that confirms the hypothesis.")
    activity.attach_mitigation(item_id, stage, mitigation)
    activity.set_implementation_note(
        item_id, stage, mitigation, {"effectivenessRating": 4, "status": "implemented"}
    )


@pytest.fixture
def fully_assess():
    """Helper that takes one item through all five stages."""
    return _fully_assess
