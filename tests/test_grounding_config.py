"""Tests for grounding configuration validation."""

import pytest
from pydantic import ValidationError

from grounding_engine.models.grounding_config import GroundingConfig


def test_defaults():
    config = GroundingConfig()

    assert config.similarity_floor == 0.6
    assert config.max_chunks == 5
    assert config.high_relevance_floor == 0.8
    assert config.use_knowledge_base is True
    assert config.use_profile_context is True
    assert config.system_prompt and config.domain and config.model_name


@pytest.mark.parametrize(
    "field,value",
    [
        ("similarity_floor", 0.0),
        ("similarity_floor", 1.01),
        ("high_relevance_floor", 0.001),
        ("high_relevance_floor", 2),
        ("max_chunks", 0),
        ("max_chunks", 21),
        ("temperature", -0.1),
        ("temperature", 2.5),
        ("max_tokens", 0),
        ("max_tokens", 65537),
        ("system_prompt", ""),
        ("domain", ""),
        ("model_name", ""),
    ],
)
def test_out_of_bounds_values_rejected(field, value):
    with pytest.raises(ValidationError):
        GroundingConfig(**{field: value})


def test_bounds_are_inclusive():
    config = GroundingConfig(similarity_floor=0.01, high_relevance_floor=1.0, max_chunks=20)

    assert config.max_chunks == 20


def test_unknown_fields_rejected():
    with pytest.raises(ValidationError):
        GroundingConfig(top_k=10)


def test_assignment_is_validated():
    config = GroundingConfig()

    with pytest.raises(ValidationError):
        config.max_chunks = 50


def test_json_round_trip_through_storage_format():
    config = GroundingConfig(similarity_floor=0.5, domain="nutrition")

    assert GroundingConfig.model_validate_json(config.model_dump_json()) == config
