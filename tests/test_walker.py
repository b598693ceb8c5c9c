"""
Tests for spec tree parsing and traversal.
"""

import pytest

from chartdeck.errors import InvalidSpecError
from chartdeck.specs.schemas import DataDescriptor, VisualizationSpec, dump_spec, parse_spec
from chartdeck.specs.walker import Match, iter_nodes, traverse, traverse_all


def _labels(root):
    return [node.model_extra.get("label") for node in iter_nodes(root)]


@pytest.fixture
def composed():
    """A tree touching every composition slot."""
    return parse_spec({
        "label": "root",
        "layer": [{"label": "layer-0"}, {"label": "layer-1", "hconcat": [{"label": "deep"}]}],
        "concat": [{"label": "concat-0"}],
        "hconcat": [{"label": "hconcat-0"}],
        "vconcat": [{"label": "vconcat-0"}],
        "spec": {"label": "facet-child"},
    })


class TestParseSpec:
    """Test structural validation of spec trees."""

    def test_extra_keys_survive_round_trip(self):
        tree = {
            "$schema": "https://vega.github.io/schema/vega-lite/v5.json",
            "mark": "bar",
            "encoding": {"x": {"field": "a"}},
            "data": {"values": [{"a": 1}]},
        }
        assert dump_spec(parse_spec(tree)) == tree

    def test_dump_omits_slots_the_input_did_not_carry(self):
        assert dump_spec(parse_spec({"mark": "point"})) == {"mark": "point"}

    def test_non_object_rejected(self):
        with pytest.raises(InvalidSpecError):
            parse_spec(["not", "a", "spec"])

    def test_layer_must_be_a_list(self):
        with pytest.raises(InvalidSpecError):
            parse_spec({"layer": {"mark": "bar"}})

    def test_single_data_kind(self):
        with pytest.raises(InvalidSpecError):
            parse_spec({"data": {"name": "a", "url": "https://example.com/a.csv"}})

    def test_inline_string_values(self):
        node = parse_spec({"data": {"values": "a,b\n1,2", "format": {"type": "csv"}}})
        assert node.data.is_inline
        assert node.data.format_type == "csv"


class TestTraversal:
    """Test pre-order traversal in both modes."""

    def test_pre_order_in_slot_order(self, composed):
        assert _labels(composed) == [
            "root", "layer-0", "layer-1", "deep",
            "concat-0", "hconcat-0", "vconcat-0", "facet-child",
        ]

    def test_traverse_all_visits_every_node(self, composed):
        seen = []
        traverse_all(composed, lambda node: seen.append(node.model_extra["label"]))
        assert len(seen) == 8

    def test_traverse_short_circuits(self, composed):
        visited = []

        def visit(node):
            visited.append(node.model_extra["label"])
            if node.model_extra["label"] == "layer-1":
                return Match("found")
            return None

        assert traverse(composed, visit) == "found"
        assert visited == ["root", "layer-0", "layer-1"]

    def test_default_when_nothing_matches(self, composed):
        assert traverse(composed, lambda node: None, default="nothing") == "nothing"

    def test_falsy_match_is_still_a_match(self, composed):
        assert traverse(composed, lambda node: Match(0), default=99) == 0

    def test_walker_does_not_mutate(self, composed):
        before = dump_spec(composed)
        traverse_all(composed, lambda node: node.model_extra.get("label"))
        assert dump_spec(composed) == before

    def test_depth_beyond_recursion_limit(self):
        node = VisualizationSpec(data=DataDescriptor(name="bottom"))
        for _ in range(3000):
            node = VisualizationSpec(spec=node)

        found = traverse(node, lambda n: Match(n.data.name) if n.data is not None else None)
        assert found == "bottom"
