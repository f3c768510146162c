"""
Tests for the persisted settings stores.
"""

import pytest

from twinmarks.core.settings import InMemorySettingsStore, SQLiteSettingsStore, TaxonomyConfig


@pytest.fixture(params=["memory", "sqlite"])
def any_settings(request, tmp_path):
    if request.param == "memory":
        return InMemorySettingsStore()
    return SQLiteSettingsStore(str(tmp_path / "settings.db"))


def test_empty_taxonomy(any_settings):
    taxonomy = any_settings.get_taxonomy()
    assert taxonomy.is_empty
    assert taxonomy.last_sync is None


def test_taxonomy_is_replaced_wholesale(any_settings):
    any_settings.set_taxonomy(TaxonomyConfig(categories=["Cooking", "Tech"], last_sync=1))
    any_settings.set_taxonomy(TaxonomyConfig(categories=["Travel"], last_sync=2))

    taxonomy = any_settings.get_taxonomy()
    assert taxonomy.categories == ["Travel"]
    assert taxonomy.last_sync == 2


def test_embedding_model_default(any_settings):
    assert any_settings.get_embedding_model("nomic-embed-text") == "nomic-embed-text"
    any_settings.set_embedding_model("all-minilm")
    assert any_settings.get_embedding_model("nomic-embed-text") == "all-minilm"


def test_label_cache_namespaces_are_separate(any_settings):
    any_settings.set_label_cache({"a|b": "Cooking"})
    any_settings.set_label_cache({"a|b": "Food & Drink"}, namespace="categories")

    assert any_settings.get_label_cache() == {"a|b": "Cooking"}
    assert any_settings.get_label_cache("categories") == {"a|b": "Food & Drink"}


def test_delete_value(any_settings):
    any_settings.set_value("custom", {"x": 1})
    assert any_settings.get_value("custom") == {"x": 1}
    any_settings.delete_value("custom")
    assert any_settings.get_value("custom", "default") == "default"


def test_in_memory_values_are_copied():
    settings = InMemorySettingsStore()
    cache = {"k": "v"}
    settings.set_label_cache(cache)
    cache["k"] = "changed"

    assert settings.get_label_cache() == {"k": "v"}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
