"""Unit tests for the command-line query runner."""

import json

import pytest

import query as query_module
from sommelier.agents.engine import RecommendationEngine


class RecordingSink:
    def record(self, metrics):
        pass


@pytest.fixture
def cellar_file(tmp_path, make_wine):
    path = tmp_path / "cellar.json"
    wines = [make_wine(id="napa"), make_wine(id="rioja", region="Rioja", country="Spain", varietal=["Tempranillo"])]
    path.write_text(json.dumps([wine.model_dump(mode="json") for wine in wines]), encoding="utf-8")
    return path


@pytest.fixture
def patched_runner(monkeypatch, stub_completion_client, good_response_text, model_params, instant_sleep):
    """Swap in a scripted engine and record indexing calls."""
    indexed = []

    async def fake_index_inventory(wines):
        indexed.append([wine.id for wine in wines])
        return len(wines)

    def fake_engine(use_knowledge=None):
        return RecommendationEngine(
            stub_completion_client(good_response_text),
            model_params,
            None,
            sleep=instant_sleep,
            metrics_sink=RecordingSink(),
        )

    monkeypatch.setattr(query_module, "initialize_recommendation_engine", fake_engine)
    monkeypatch.setattr(query_module, "index_inventory", fake_index_inventory)
    return indexed


class TestLoadInventory:
    """Tests for load_inventory."""

    def test_loads_wines(self, cellar_file):
        """Test that a JSON list becomes Wine models."""
        wines = query_module.load_inventory(str(cellar_file))

        assert [wine.id for wine in wines] == ["napa", "rioja"]
        assert wines[1].varietal == ["Tempranillo"]

    def test_missing_file(self, tmp_path):
        """Test that a missing cellar file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError, match="Inventory file not found"):
            query_module.load_inventory(str(tmp_path / "missing.json"))


class TestRunQuery:
    """Tests for run_query indexing behavior."""

    def test_index_flag_indexes_inventory(self, patched_runner, cellar_file):
        """Test that index=True sends the loaded cellar to the knowledge base."""
        query_module.run_query("Something for steak?", inventory_path=str(cellar_file), index=True)

        assert patched_runner == [["napa", "rioja"]]

    def test_inventory_alone_is_not_indexed(self, patched_runner, cellar_file):
        """Test that --inventory without --index leaves the knowledge base untouched."""
        query_module.run_query("Something for steak?", inventory_path=str(cellar_file))

        assert patched_runner == []

    def test_index_skipped_when_knowledge_disabled(self, patched_runner, cellar_file):
        """Test that indexing is skipped with the knowledge base turned off."""
        query_module.run_query(
            "Something for steak?", inventory_path=str(cellar_file), index=True, use_knowledge=False
        )

        assert patched_runner == []
