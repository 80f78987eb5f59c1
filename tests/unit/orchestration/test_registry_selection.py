"""Tests for registry loading and query-driven unit selection."""

import json

import pytest

from dispatchkit.core.exceptions import RegistryConfigurationError, SelectionError
from dispatchkit.services.orchestration.models import Category, Query, QueryTriple
from dispatchkit.services.orchestration.registry import UnitRegistry, matches_keywords


def make_query(*tags: str, keywords=(), text: str = "q") -> Query:
    kw = frozenset(keywords)
    return Query(
        text=text,
        triples=tuple(QueryTriple(domain_tag=t, sub_topic="", keywords=kw) for t in tags),
    )


class TestMatchesKeywords:
    def test_exact_token(self):
        assert matches_keywords(["index"], ["index"])

    def test_case_insensitive(self):
        assert matches_keywords(["Index"], ["INDEX"])

    def test_trigger_substring_of_keyword(self):
        assert matches_keywords(["index"], ["covering index"])

    def test_keyword_substring_of_trigger_does_not_match(self):
        assert not matches_keywords(["indexing"], ["index"])

    def test_no_keywords(self):
        assert not matches_keywords(["index"], [])

    def test_empty_trigger_ignored(self):
        assert not matches_keywords([""], ["index"])


class TestRegistryLoading:
    def test_category_levels_follow_order(self, registry):
        assert registry.category_level(Category.DATA_INTEGRITY) == 5
        assert registry.category_level(Category.SECURITY) == 4
        assert registry.category_level(Category.AVAILABILITY) == 3
        assert registry.category_level(Category.PERFORMANCE) == 2
        assert registry.category_level(Category.CONVENIENCE) == 1

    def test_custom_category_order(self, registry_data):
        registry_data["category_order"] = [
            "security", "data_integrity", "availability", "performance", "convenience",
        ]
        registry = UnitRegistry.from_dict(registry_data)
        assert registry.category_level(Category.SECURITY) == 5
        assert registry.category_level(Category.DATA_INTEGRITY) == 4

    def test_incomplete_category_order_rejected(self, registry_data):
        registry_data["category_order"] = ["security", "performance"]
        with pytest.raises(RegistryConfigurationError):
            UnitRegistry.from_dict(registry_data)

    def test_unit_lookup(self, registry):
        spec = registry.get("db.tuning")
        assert spec.domain == "db"
        assert spec.depends_on == ("db.index",)
        assert "db.tuning" in registry
        assert len(registry) == 4

    def test_weight_class_values(self, registry):
        assert registry.get("db.index").weight == 1.5
        assert registry.get("db.tuning").weight == 1.0
        assert registry.get("security.auth").weight == 0.5

    def test_default_unit(self, registry):
        assert registry.default_unit("db").unit_id == "db.index"
        assert registry.default_unit("security") is None

    def test_duplicate_unit_id_rejected(self, registry_data):
        registry_data["domains"][1]["units"].append({"unit_id": "db.index"})
        with pytest.raises(RegistryConfigurationError, match="more than once"):
            UnitRegistry.from_dict(registry_data)

    def test_duplicate_domain_rejected(self, registry_data):
        registry_data["domains"].append({"domain": "db", "units": []})
        with pytest.raises(RegistryConfigurationError, match="more than once"):
            UnitRegistry.from_dict(registry_data)

    def test_unknown_dependency_rejected(self, registry_data):
        registry_data["domains"][0]["units"][1]["depends_on"] = ["db.missing"]
        with pytest.raises(RegistryConfigurationError, match="unknown unit"):
            UnitRegistry.from_dict(registry_data)

    def test_self_dependency_rejected(self, registry_data):
        registry_data["domains"][0]["units"][1]["depends_on"] = ["db.tuning"]
        with pytest.raises(RegistryConfigurationError, match="itself"):
            UnitRegistry.from_dict(registry_data)

    def test_two_defaults_in_domain_rejected(self, registry_data):
        registry_data["domains"][0]["units"][1]["default_if_ambiguous"] = True
        with pytest.raises(RegistryConfigurationError, match="more than one default"):
            UnitRegistry.from_dict(registry_data)

    def test_effect_rule_unknown_unit_rejected(self, registry_data):
        registry_data["effects"] = [{"source_unit": "db.index", "target_unit": "nope"}]
        with pytest.raises(RegistryConfigurationError, match="unknown unit 'nope'"):
            UnitRegistry.from_dict(registry_data)

    def test_effect_rule_same_unit_rejected(self, registry_data):
        registry_data["effects"] = [{"source_unit": "db.index", "target_unit": "db.index"}]
        with pytest.raises(RegistryConfigurationError):
            UnitRegistry.from_dict(registry_data)

    def test_from_file(self, tmp_path, registry_data):
        path = tmp_path / "registry.json"
        path.write_text(json.dumps(registry_data), encoding="utf-8")
        registry = UnitRegistry.from_file(path)
        assert registry.domains == ["db", "cache", "security"]

    def test_from_file_invalid_json(self, tmp_path):
        path = tmp_path / "registry.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(RegistryConfigurationError, match="Failed to read registry"):
            UnitRegistry.from_file(path)

    def test_dependency_edges_restricted(self, registry):
        assert registry.dependency_edges() == [
            ("db.index", "db.tuning"),
            ("db.index", "cache.policy"),
        ]
        assert registry.dependency_edges(["db.tuning", "cache.policy"]) == []


class TestSelection:
    def test_keyword_match_selects_units(self, registry):
        selection = registry.select_units(make_query("db", "cache", keywords=["index", "fill", "cache"]))
        assert selection.unit_ids == ["db.index", "db.tuning", "cache.policy"]
        assert selection.ambiguous_units == set()
        assert selection.warnings == []

    def test_selection_in_declaration_order(self, registry):
        selection = registry.select_units(make_query("cache", "db", keywords=["ttl", "vacuum"]))
        assert selection.unit_ids == ["db.tuning", "cache.policy"]

    def test_no_match_uses_default_and_marks_ambiguous(self, registry):
        selection = registry.select_units(make_query("cache", keywords=["unrelated"]))
        assert selection.unit_ids == ["cache.policy"]
        assert selection.is_ambiguous("cache.policy")
        assert selection.ambiguous_domains == ["cache"]

    def test_default_also_matched_explicitly_is_not_ambiguous(self, registry):
        query = Query(
            text="q",
            triples=(
                QueryTriple("db", "a", frozenset({"unrelated"})),
                QueryTriple("db", "b", frozenset({"btree"})),
            ),
        )
        selection = registry.select_units(query)
        assert selection.unit_ids == ["db.index"]
        assert not selection.is_ambiguous("db.index")

    def test_domain_without_default_warns(self, registry):
        selection = registry.select_units(make_query("security", "db", keywords=["index"]))
        assert selection.unit_ids == ["db.index"]
        assert any("security" in w and "no default" in w for w in selection.warnings)

    def test_unrecognized_tag_skipped_with_warning(self, registry):
        selection = registry.select_units(make_query("db", "nosql", keywords=["index"]))
        assert selection.unit_ids == ["db.index"]
        assert selection.warnings == ["Unrecognized domain tag 'nosql' skipped"]

    def test_empty_selection_raises(self, registry):
        with pytest.raises(SelectionError) as exc_info:
            registry.select_units(make_query("nosql", keywords=["index"]))
        assert exc_info.value.code == "no_units_selected"
        assert exc_info.value.to_dict()["warnings"] == [
            "Unrecognized domain tag 'nosql' skipped"
        ]

    def test_selection_is_deterministic(self, registry):
        query = make_query("db", "cache", "security", keywords=["fill", "token", "zzz"])
        first = registry.select_units(query)
        for _ in range(5):
            again = registry.select_units(query)
            assert again.unit_ids == first.unit_ids
            assert again.ambiguous_units == first.ambiguous_units
            assert again.warnings == first.warnings


class TestQueryFromClassification:
    def test_pairs_tags_with_sub_topics(self):
        query = Query.from_classification(
            {
                "query": "Tune the index",
                "domain_tags": ["db", "cache"],
                "sub_topics": ["indexing"],
                "keywords": ["Index", " TTL "],
                "constraints": {"fill_factor": "0.7"},
            }
        )
        assert [t.domain_tag for t in query.triples] == ["db", "cache"]
        assert [t.sub_topic for t in query.triples] == ["indexing", ""]
        assert query.triples[0].keywords == frozenset({"index", "ttl"})
        assert query.constraints == {"fill_factor": "0.7"}
        assert query.context is None
