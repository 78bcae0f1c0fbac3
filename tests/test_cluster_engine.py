"""
Tests for the clustering engine (bulk generation and incremental assignment).

The oracle is mocked at generate_with_fallback; everything else runs for real.
"""

import json
import logging
import unittest
from unittest.mock import patch

import pytest

from src.clustering.engine import (
    NoIRsError,
    apply_assignments,
    assign_unassigned_irs,
    build_cluster,
    enforce_membership_cap,
    find_orphans,
    generate_clusters,
)
from src.clustering.parsing import ClusterParseError
from src.clustering.schema import (
    MAX_CLUSTERS_PER_IR,
    Assignment,
    ClusterResult,
    ExistingClusterSummary,
)
from src.ir.schema import Concept, IntermediateRepresentation
from src.llm import LLMExhaustedError, LLMProvider, LLMResponse

ENGINE = "src.clustering.engine.generate_with_fallback"


def make_ir(ir_id, topics=None, difficulty="intermediate", summary=None):
    return IntermediateRepresentation(
        id=ir_id,
        source_url=f"https://example.com/{ir_id}",
        source_title=f"Article {ir_id}",
        summary=summary or f"Summary of {ir_id}",
        key_topics=topics if topics is not None else ["react"],
        concepts=[Concept(name="Hooks")],
        difficulty=difficulty,
    )


def oracle(payload):
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return LLMResponse(text=text, model="gemini-2.5-flash", provider=LLMProvider.GEMINI)


def make_cluster(cluster_id, ir_ids, name=None):
    return ClusterResult(id=cluster_id, name=name or f"Cluster {cluster_id}", ir_ids=ir_ids)


class TestGenerateClusters:

    def test_no_irs_raises_without_oracle_call(self):
        with patch(ENGINE) as mock_llm:
            with pytest.raises(NoIRsError, match="No IRs found"):
                generate_clusters([])
            mock_llm.assert_not_called()

    def test_single_ir_synthesizes_cluster(self):
        ir = make_ir("ir-1", topics=["react", "hooks"], difficulty="beginner", summary="Intro to React")

        with patch(ENGINE) as mock_llm:
            clusters = generate_clusters([ir])
            mock_llm.assert_not_called()

        assert len(clusters) == 1
        cluster = clusters[0]
        assert cluster.name == "Learning: react"
        assert cluster.description == "Intro to React"
        assert cluster.ir_ids == ["ir-1"]
        assert cluster.aggregated_topics == ["react", "hooks"]
        assert cluster.member_count == 1
        assert cluster.avg_difficulty == "beginner"

    def test_single_ir_without_topics(self):
        clusters = generate_clusters([make_ir("ir-1", topics=[])])
        assert clusters[0].name == "Learning: General"

    @patch(ENGINE)
    def test_multi_membership_and_member_count(self, mock_llm):
        irs = [make_ir("a"), make_ir("b"), make_ir("c")]
        mock_llm.return_value = oracle([
            {"name": "React", "description": "UI", "irIds": ["a", "b"],
             "aggregatedTopics": ["react"], "avgDifficulty": "beginner"},
            {"name": "State", "irIds": ["b", "c"]},
        ])

        clusters = generate_clusters(irs)

        assert [c.name for c in clusters] == ["React", "State"]
        for cluster in clusters:
            assert cluster.member_count == len(cluster.ir_ids)
        assert clusters[0].avg_difficulty == "beginner"
        assert clusters[0].id != clusters[1].id

    @patch(ENGINE)
    def test_defaults_applied(self, mock_llm):
        mock_llm.return_value = oracle([{"name": "Only name", "irIds": ["a", "b"]}])

        cluster = generate_clusters([make_ir("a"), make_ir("b")])[0]

        assert cluster.description == ""
        assert cluster.aggregated_topics == []
        assert cluster.avg_difficulty == "intermediate"

    @patch(ENGINE)
    def test_uses_clustering_chain_and_config(self, mock_llm):
        mock_llm.return_value = oracle([{"name": "All", "irIds": ["a", "b"]}])

        generate_clusters([make_ir("a"), make_ir("b")])

        prompt, config, models = mock_llm.call_args.args
        assert "ID: a" in prompt and "ID: b" in prompt
        assert config.temperature == 0.3
        assert config.max_output_tokens == 8192
        assert models[0] == "gemini-2.5-flash"
        assert mock_llm.call_args.kwargs["label"] == "clustering"

    @patch(ENGINE)
    def test_membership_cap(self, mock_llm):
        mock_llm.return_value = oracle([
            {"name": f"Theme {i}", "irIds": ["a", "b"]} for i in range(12)
        ])

        clusters = generate_clusters([make_ir("a"), make_ir("b")])

        assert len(clusters) == MAX_CLUSTERS_PER_IR
        assert [c.name for c in clusters] == [f"Theme {i}" for i in range(10)]
        assert all(c.ir_ids == ["a", "b"] and c.member_count == 2 for c in clusters)

    @patch(ENGINE)
    def test_orphans_logged(self, mock_llm, caplog):
        mock_llm.return_value = oracle([{"name": "AB", "irIds": ["a", "b"]}])

        with caplog.at_level(logging.WARNING, logger="src.clustering.engine"):
            clusters = generate_clusters([make_ir("a"), make_ir("b"), make_ir("c")])

        assert len(clusters) == 1
        assert "1 IR(s) not assigned to any cluster: ['c']" in caplog.text

    @patch(ENGINE)
    def test_unknown_ir_ids_dropped(self, mock_llm):
        mock_llm.return_value = oracle([
            {"name": "AB", "irIds": ["a", "ghost", "b"]},
            {"name": "Ghosts", "irIds": ["ghost"]},
        ])

        clusters = generate_clusters([make_ir("a"), make_ir("b")])

        assert len(clusters) == 1
        assert clusters[0].ir_ids == ["a", "b"]
        assert clusters[0].member_count == 2

    @patch(ENGINE)
    def test_truncated_response_salvaged(self, mock_llm):
        mock_llm.return_value = oracle('[{"name":"A","irIds":["a"]},{"name":"B","ir')

        clusters = generate_clusters([make_ir("a"), make_ir("b")])

        assert [c.name for c in clusters] == ["A"]

    @patch(ENGINE)
    def test_prose_response_raises(self, mock_llm):
        mock_llm.return_value = oracle("Sorry, I cannot cluster these.")

        with pytest.raises(ClusterParseError):
            generate_clusters([make_ir("a"), make_ir("b")])

    @patch(ENGINE)
    def test_invalid_cluster_structure_raises(self, mock_llm):
        mock_llm.return_value = oracle([{"name": "A", "irIds": ["a"]}, {"description": "no name", "irIds": ["b"]}])

        with pytest.raises(ClusterParseError, match="Invalid cluster structure"):
            generate_clusters([make_ir("a"), make_ir("b")])

    @patch(ENGINE)
    def test_exhaustion_propagates(self, mock_llm):
        mock_llm.side_effect = LLMExhaustedError("all rate limited")

        with pytest.raises(LLMExhaustedError):
            generate_clusters([make_ir("a"), make_ir("b")])


class TestClusterHelpers(unittest.TestCase):

    def test_build_cluster_requires_list_ir_ids(self):
        with self.assertRaises(ClusterParseError):
            build_cluster({"name": "A", "irIds": "a,b"})

    def test_build_cluster_rejects_non_object(self):
        with self.assertRaises(ClusterParseError):
            build_cluster("A")

    def test_find_orphans_preserves_order(self):
        irs = [make_ir("a"), make_ir("b"), make_ir("c"), make_ir("d")]
        clusters = [make_cluster("c1", ["b"]), make_cluster("c2", ["d"])]

        self.assertEqual(find_orphans(irs, clusters), ["a", "c"])

    def test_enforce_cap_with_initial_counts(self):
        clusters = [make_cluster("n1", ["x"]), make_cluster("n2", ["x"])]

        with self.assertLogs("src.clustering.engine", level=logging.WARNING):
            enforce_membership_cap(clusters, initial_counts={"x": MAX_CLUSTERS_PER_IR - 1})

        self.assertEqual(clusters[0].ir_ids, ["x"])
        self.assertEqual(clusters[1].ir_ids, [])
        self.assertEqual(clusters[1].member_count, 0)


class TestAssignUnassignedIRs:

    def _existing(self):
        return [
            ExistingClusterSummary(id="c1", name="React", ir_ids=["a", "b"]),
            ExistingClusterSummary(id="c2", name="Python", ir_ids=["d"]),
        ]

    def test_no_unassigned_no_oracle_call(self):
        with patch(ENGINE) as mock_llm:
            result = assign_unassigned_irs(self._existing(), [])
            mock_llm.assert_not_called()

        assert result.assignments == []
        assert result.new_clusters == []
        assert result.is_empty

    @patch(ENGINE)
    def test_assignment_into_existing_cluster(self, mock_llm):
        mock_llm.return_value = oracle({
            "assignments": [{"irId": "c", "addToClusterIds": ["c1"]}],
            "newClusters": [],
        })

        result = assign_unassigned_irs(self._existing(), [make_ir("c")])

        assert len(result.assignments) == 1
        assert result.assignments[0].ir_id == "c"
        assert result.assignments[0].add_to_cluster_ids == ["c1"]
        assert result.uncovered_ir_ids == []
        assert mock_llm.call_args.kwargs["label"] == "clustering-incremental"

    @patch(ENGINE)
    def test_prompt_lists_existing_clusters(self, mock_llm):
        mock_llm.return_value = oracle({"assignments": [], "newClusters": []})

        assign_unassigned_irs(self._existing(), [make_ir("c")])

        prompt = mock_llm.call_args.args[0]
        assert "Cluster ID: c1" in prompt
        assert "Members (2): a, b" in prompt
        assert "ID: c" in prompt

    @patch(ENGINE)
    def test_new_clusters_get_ids_and_defaults(self, mock_llm):
        mock_llm.return_value = oracle({
            "assignments": [],
            "newClusters": [{"name": "Rust", "irIds": ["e", "f"]}],
        })

        result = assign_unassigned_irs(self._existing(), [make_ir("e"), make_ir("f")])

        cluster = result.new_clusters[0]
        assert cluster.id
        assert cluster.ir_ids == ["e", "f"]
        assert cluster.member_count == 2
        assert cluster.avg_difficulty == "intermediate"
        assert cluster.description == ""

    @patch(ENGINE)
    def test_unknown_ids_dropped(self, mock_llm):
        mock_llm.return_value = oracle({
            "assignments": [
                {"irId": "c", "addToClusterIds": ["c1", "nope"]},
                {"irId": "ghost", "addToClusterIds": ["c2"]},
            ],
            "newClusters": [{"name": "Ghosts", "irIds": ["ghost"]}],
        })

        result = assign_unassigned_irs(self._existing(), [make_ir("c")])

        assert [a.to_api_dict() for a in result.assignments] == [{"irId": "c", "addToClusterIds": ["c1"]}]
        assert result.new_clusters == []

    @patch(ENGINE)
    def test_uncovered_irs_reported_not_raised(self, mock_llm):
        mock_llm.return_value = oracle({
            "assignments": [{"irId": "c", "addToClusterIds": ["c1"]}],
            "newClusters": [],
        })

        result = assign_unassigned_irs(self._existing(), [make_ir("c"), make_ir("e")])

        assert result.uncovered_ir_ids == ["e"]

    @patch(ENGINE)
    def test_cap_applies_to_assignments_and_new_clusters(self, mock_llm):
        existing = [ExistingClusterSummary(id=f"c{i}", name=f"T{i}", ir_ids=["z"]) for i in range(9)]
        mock_llm.return_value = oracle({
            "assignments": [{"irId": "x", "addToClusterIds": [f"c{i}" for i in range(9)]}],
            "newClusters": [{"name": "New A", "irIds": ["x"]}, {"name": "New B", "irIds": ["x"]}],
        })

        result = assign_unassigned_irs(existing, [make_ir("x")])

        total = sum(len(a.add_to_cluster_ids) for a in result.assignments)
        total += sum("x" in c.ir_ids for c in result.new_clusters)
        assert total == MAX_CLUSTERS_PER_IR
        assert [c.name for c in result.new_clusters] == ["New A"]

    @patch(ENGINE)
    def test_missing_keys_raise(self, mock_llm):
        mock_llm.return_value = oracle({"assignments": []})

        with pytest.raises(ClusterParseError):
            assign_unassigned_irs(self._existing(), [make_ir("c")])


class TestApplyAssignments:

    def test_additive_merge(self):
        existing = [make_cluster("c1", ["a", "b"]), make_cluster("c2", ["d"])]

        updated = apply_assignments(existing, [Assignment(ir_id="c", add_to_cluster_ids=["c1"])])

        assert updated[0].ir_ids == ["a", "b", "c"]
        assert updated[0].member_count == 3
        assert updated[1].ir_ids == ["d"]
        assert existing[0].ir_ids == ["a", "b"]

    def test_existing_members_never_removed(self):
        existing = [make_cluster("c1", ["a", "b"]), make_cluster("c2", ["b", "d"])]
        assignments = [
            Assignment(ir_id="b", add_to_cluster_ids=["c1"]),
            Assignment(ir_id="e", add_to_cluster_ids=["c1", "c2", "missing"]),
        ]

        updated = apply_assignments(existing, assignments)

        for before, after in zip(existing, updated):
            assert set(before.ir_ids) <= set(after.ir_ids)
            assert after.ir_ids[:len(before.ir_ids)] == before.ir_ids
            assert after.member_count == len(after.ir_ids)
        assert updated[0].ir_ids == ["a", "b", "e"]
