#!/usr/bin/env python3
"""
Tests for the shared data records.
"""
import sys
from pathlib import Path

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.base.models import (
    ChainDescriptor,
    ChainExecutionResult,
    ChainSource,
    ChainStep,
    ChatMode,
    ModelResponse,
    ModelSource,
    ResponseMetadata,
    TrainingDataEntry,
    parse_source,
    project_wallet_context,
)


def response(model_id="openai", content="text") -> ModelResponse:
    return ModelResponse(model_id=model_id, content=content, timestamp=1, metadata=ResponseMetadata(tokens=5))


@pytest.mark.unit
class TestSources:
    """Tests for the model/chain source union."""

    def test_keys_and_kinds(self):
        assert ModelSource("openai").key == "openai"
        assert ModelSource("openai").kind == "model"
        assert ChainSource("chain_0").kind == "chain"

    def test_parse_source_uses_known_chain_ids(self):
        assert parse_source("chain_0", ["chain_0"]) == ChainSource("chain_0")
        # A chain-looking key that is not a known chain stays a model id
        assert parse_source("chain_9", ["chain_0"]) == ModelSource("chain_9")
        assert parse_source("openai", []) == ModelSource("openai")


@pytest.mark.unit
class TestChainRecords:
    """Tests for chain descriptors and execution results."""

    def test_chain_needs_a_model(self):
        with pytest.raises(ValueError):
            ChainDescriptor("empty", (), "Empty")

    def test_step_indices_must_be_contiguous(self):
        step = ChainStep(step_index=1, model_id="openai", prompt="p", response=response())
        with pytest.raises(ValueError):
            ChainExecutionResult(steps=(step,), final_model_id="openai", total_processing_time=0)

    def test_failed_result_has_no_steps(self):
        result = ChainExecutionResult.failed("gemini")
        assert result.steps == ()
        assert result.final_model_id == "gemini"
        assert result.total_processing_time == 0

    def test_with_metadata_keeps_other_fields(self):
        updated = response().with_metadata(processing_time=120)
        assert updated.metadata.tokens == 5
        assert updated.metadata.processing_time == 120
        assert updated.metadata.to_dict() == {"tokens": 5, "processing_time": 120}


@pytest.mark.unit
class TestTrainingDataEntry:
    """Tests for the persisted form of a session."""

    def test_from_dict_restores_entry(self):
        chain = ChainDescriptor("chain_0", ("openai", "gemini"), "OpenAI → Gemini")
        entry = TrainingDataEntry(
            id="s1",
            timestamp=1700000000000,
            question="hi",
            wallet_data=None,
            chat_mode=ChatMode.CHAIN,
            responses={},
            selected_option="chain_0",
            selected_chain=chain,
        )
        data = entry.to_dict()
        assert data["chat_mode"] == "chain"
        assert data["selected_chain"]["models"] == ["openai", "gemini"]
        assert TrainingDataEntry.from_dict(data) == entry

    def test_malformed_records_raise(self):
        with pytest.raises(KeyError):
            TrainingDataEntry.from_dict({"id": "x"})
        with pytest.raises(ValueError):
            TrainingDataEntry.from_dict({"id": "x", "timestamp": 1, "question": "q", "chat_mode": "solo"})
        with pytest.raises(TypeError):
            TrainingDataEntry.from_dict(["not", "a", "dict"])

    def test_wallet_projection(self):
        wallet = {"balance": 2.5, "assets": [{}, {}], "transactions": [{}]}
        assert project_wallet_context(wallet) == {"balance": 2.5, "assets": 2, "transactions": 1}
        assert project_wallet_context(None) is None
