from pathlib import Path

import pytest

from branchly.core.serialization import JsonSerializer
from branchly.engine import EngineContext

EXAMPLES_DIR = Path(__file__).resolve().parent.parent / "examples"


def make_flow(nodes, start="start", **extra):
    """Build a FlowDefinition from compact node dicts in the wire format."""
    data = {"id": extra.pop("id", "test-flow"), "title": extra.pop("title", "Test Flow"), "startNodeId": start, "nodes": nodes}
    data.update(extra)
    return JsonSerializer.from_dict(data)


@pytest.fixture
def context():
    return EngineContext()


@pytest.fixture
def score_flow():
    """start -> decision{score>=100 -> high, default -> low}, score starts at 50."""
    return make_flow(
        [
            {"id": "start", "title": "Start", "outlets": [{"id": "go", "to": "decision"}]},
            {
                "id": "decision",
                "title": "Decision",
                "outlets": [
                    {"id": "to-high", "to": "high", "condition": "score >= 100"},
                    {"id": "to-low", "to": "low"},
                ],
            },
            {"id": "high", "title": "High Score"},
            {"id": "low", "title": "Low Score"},
        ],
        initialState={"score": 50},
    )


@pytest.fixture
def if_else_nodes():
    """An auto-advancing node with if / elif / else outlets."""
    return [
        {"id": "start", "title": "Start", "outlets": [{"id": "go", "to": "check"}]},
        {
            "id": "check",
            "title": "Check",
            "isAutoAdvance": True,
            "outlets": [
                {"id": "big", "to": "A", "condition": "x > 10"},
                {"id": "positive", "to": "B", "condition": "x > 0"},
                {"id": "other", "to": "C"},
            ],
        },
        {"id": "A", "title": "A"},
        {"id": "B", "title": "B"},
        {"id": "C", "title": "C"},
    ]


@pytest.fixture
def cyclic_flow():
    return make_flow(
        [
            {"id": "A", "title": "A", "outlets": [{"id": "ab", "to": "B"}]},
            {"id": "B", "title": "B", "outlets": [{"id": "bc", "to": "C"}]},
            {"id": "C", "title": "C", "outlets": [{"id": "ca", "to": "A"}]},
        ],
        start="A",
    )


@pytest.fixture
def diamond_flow():
    return make_flow(
        [
            {"id": "A", "title": "A", "outlets": [{"id": "ab", "to": "B"}, {"id": "ac", "to": "C"}]},
            {"id": "B", "title": "B", "outlets": [{"id": "bd", "to": "D"}]},
            {"id": "C", "title": "C", "outlets": [{"id": "cd", "to": "D"}]},
            {"id": "D", "title": "D"},
        ],
        start="A",
    )


@pytest.fixture
def treasure_flow():
    return JsonSerializer.load(EXAMPLES_DIR / "treasure_hunt.json")


@pytest.fixture
def liquid_flow():
    return JsonSerializer.load(EXAMPLES_DIR / "liquid_quiz.json")
