"""
Unit tests for the document join engine.
"""

import copy

import pytest

from docjoin.catalog.models import (
    BuildOptions,
    Cardinality,
    PivotGroup,
    Relationship,
    Table,
    TablePivot,
)
from docjoin.common.metrics import documents_built_total
from docjoin.join.engine import DocumentBuilder, build_document, strict_equal
from docjoin.join.errors import NotFoundError, RelationshipValidationError


def self_join(max_depth=None):
    # Local column on the table being built is the source column, so
    # id -> manager_id from Boss finds Boss's reports (downward)
    return Relationship(
        source_table_id="employees",
        target_table_id="employees",
        source_column="id",
        target_column="manager_id",
        max_depth=max_depth,
    )


class TestBasicJoin:
    """Tests for plain one-to-many and one-to-one joins."""

    def test_basic_join(self, table_a, table_b, a_to_b):
        doc = build_document("A", 0, [table_a, table_b], [a_to_b])

        assert doc == {"A": {"id": 1, "b_id": 10, "B": [{"id": 10, "val": "x"}]}}

    def test_second_row(self, table_a, table_b, a_to_b):
        doc = build_document("A", 1, [table_a, table_b], [a_to_b])

        assert doc == {"A": {"id": 2, "b_id": 11, "B": [{"id": 11, "val": "y"}]}}

    def test_one_to_one_collapses_to_object(self, table_a, table_b, a_to_b):
        a_to_b.cardinality = Cardinality.ONE_TO_ONE

        doc = build_document("A", 0, [table_a, table_b], [a_to_b])

        assert doc["A"]["B"] == {"id": 10, "val": "x"}

    def test_one_to_one_keeps_first_match(self, table_a, a_to_b):
        b = Table(
            id="B",
            name="B",
            columns=["id", "val"],
            rows=[{"id": 10, "val": "first"}, {"id": 10, "val": "second"}],
        )
        a_to_b.cardinality = Cardinality.ONE_TO_ONE

        doc = build_document("A", 0, [table_a, b], [a_to_b])

        assert doc["A"]["B"] == {"id": 10, "val": "first"}

    def test_join_from_target_side(self, table_a, table_b, a_to_b):
        doc = build_document("B", 0, [table_a, table_b], [a_to_b])

        assert doc == {"B": {"id": 10, "val": "x", "A": [{"id": 1, "b_id": 10}]}}

    def test_no_match_adds_no_property(self, table_a, table_b, a_to_b):
        table_a.rows.append({"id": 3, "b_id": 99})

        doc = build_document("A", 2, [table_a, table_b], [a_to_b])

        assert doc == {"A": {"id": 3, "b_id": 99}}

    def test_missing_local_column_adds_no_property(self, table_a, table_b, a_to_b):
        table_a.rows.append({"id": 3})

        doc = build_document("A", 2, [table_a, table_b], [a_to_b])

        assert doc == {"A": {"id": 3}}

    def test_output_property_name(self, table_a, table_b, a_to_b):
        a_to_b.output_property_name = "details"

        doc = build_document("A", 0, [table_a, table_b], [a_to_b])

        assert doc["A"]["details"] == [{"id": 10, "val": "x"}]
        assert "B" not in doc["A"]

    def test_uses_table_display_name(self, table_a, table_b, a_to_b):
        table_a.name = "Accounts"
        table_b.name = "Balances"

        doc = build_document("A", 0, [table_a, table_b], [a_to_b])

        assert doc == {"Accounts": {"id": 1, "b_id": 10, "Balances": [{"id": 10, "val": "x"}]}}

    def test_duplicate_matches_are_deduplicated(self, table_a, a_to_b):
        b = Table(
            id="B",
            name="B",
            columns=["id", "val"],
            rows=[{"id": 10, "val": "x"}, {"id": 10, "val": "x"}, {"id": 10, "val": "z"}],
        )

        doc = build_document("A", 0, [table_a, b], [a_to_b])

        assert doc["A"]["B"] == [{"id": 10, "val": "x"}, {"id": 10, "val": "z"}]


class TestStrictEquality:
    """Tests for join-key comparison."""

    def test_string_never_matches_number(self, table_a, a_to_b):
        b = Table(id="B", name="B", columns=["id"], rows=[{"id": "10"}])

        doc = build_document("A", 0, [table_a, b], [a_to_b])

        assert "B" not in doc["A"]

    def test_null_keys_match_but_absent_column_does_not(self):
        a = Table(id="A", name="A", columns=["id", "b_id"], rows=[{"id": 1, "b_id": None}])
        b = Table(id="B", name="B", columns=["id"], rows=[{"id": None}, {}])
        rel = Relationship(source_table_id="A", target_table_id="B", source_column="b_id", target_column="id")

        doc = build_document("A", 0, [a, b], [rel])

        assert doc["A"]["B"] == [{"id": None}]

    def test_equal_values(self):
        assert strict_equal(1, 1.0)
        assert strict_equal("a", "a")
        assert strict_equal(None, None)

    def test_no_coercion(self):
        assert not strict_equal(1, "1")
        assert not strict_equal(True, 1)
        assert not strict_equal(0, False)
        assert not strict_equal(None, "")


class TestDedupAcrossReverseEdges:
    """Tests for edges declared in both directions."""

    def test_reverse_edge_does_not_duplicate(self, table_a, table_b, a_to_b):
        b_to_a = Relationship(
            source_table_id="B",
            target_table_id="A",
            source_column="id",
            target_column="b_id",
        )

        doc = build_document("A", 0, [table_a, table_b], [a_to_b, b_to_a])

        assert doc["A"]["B"] == [{"id": 10, "val": "x"}]


class TestColumnProjection:
    """Tests for per-table column filters and edge column filters."""

    def test_columns_filter(self, table_a, table_b, a_to_b):
        options = BuildOptions(columns_filter={"A": ["id"], "B": ["val"]})

        doc = build_document("A", 0, [table_a, table_b], [a_to_b], options)

        assert doc == {"A": {"id": 1, "B": [{"val": "x"}]}}

    def test_empty_filter_keeps_all_columns(self, table_a, table_b, a_to_b):
        options = BuildOptions(columns_filter={"A": []})

        doc = build_document("A", 0, [table_a, table_b], [a_to_b], options)

        assert doc["A"]["b_id"] == 10

    def test_absent_projected_column_is_omitted(self, table_a, table_b, a_to_b):
        options = BuildOptions(columns_filter={"A": ["id", "nope"]})

        doc = build_document("A", 0, [table_a, table_b], [a_to_b], options)

        assert "nope" not in doc["A"]

    def test_included_columns_keep_nested_joins(self, table_a, table_b, a_to_b):
        c = Table(
            id="C",
            name="C",
            columns=["id", "b_id", "note"],
            rows=[{"id": 100, "b_id": 10, "note": "n"}],
        )
        c_to_b = Relationship(
            source_table_id="C",
            target_table_id="B",
            source_column="b_id",
            target_column="id",
        )
        a_to_b.included_columns = ["val"]

        doc = build_document("A", 0, [table_a, table_b, c], [a_to_b, c_to_b])

        assert doc["A"]["B"] == [{"val": "x", "C": [{"id": 100, "b_id": 10, "note": "n"}]}]


class TestSelfJoinDepth:
    """Tests for the recursion policy on self-referencing edges."""

    def test_blocked_without_max_depth(self, employees):
        doc = build_document("employees", 0, [employees], [self_join()])

        assert doc == {"Employee": {"id": 1, "name": "Boss", "manager_id": None}}

    def test_blocked_with_zero_max_depth(self, employees):
        doc = build_document("employees", 0, [employees], [self_join(0)])

        assert "Employee" not in doc["Employee"]

    def test_max_depth_two_chain(self, employees):
        doc = build_document("employees", 0, [employees], [self_join(2)])

        boss = doc["Employee"]
        worker = boss["Employee"][0]
        intern = worker["Employee"][0]
        assert worker["name"] == "Worker"
        assert intern["name"] == "Intern"
        assert "Employee" not in intern
        assert len(boss["Employee"]) == 1

    def test_max_depth_one_stops_after_first_hop(self, employees):
        doc = build_document("employees", 0, [employees], [self_join(1)])

        worker = doc["Employee"]["Employee"][0]
        assert worker["name"] == "Worker"
        assert "Employee" not in worker

    def test_manager_direction(self, employees):
        up = Relationship(
            source_table_id="employees",
            target_table_id="employees",
            source_column="manager_id",
            target_column="id",
            max_depth=5,
            output_property_name="manager",
            cardinality=Cardinality.ONE_TO_ONE,
        )

        doc = build_document("employees", 2, [employees], [up])

        intern = doc["Employee"]
        assert intern["manager"]["name"] == "Worker"
        assert intern["manager"]["manager"]["name"] == "Boss"
        assert "manager" not in intern["manager"]["manager"]

    def test_manager_id_to_id_edge_walks_up_the_chain(self, employees):
        literal = Relationship(
            source_table_id="employees",
            target_table_id="employees",
            source_column="manager_id",
            target_column="id",
            max_depth=2,
        )
        tables = [employees]

        from_boss = build_document("employees", 0, tables, [literal])
        from_intern = build_document("employees", 2, tables, [literal])

        assert "Employee" not in from_boss["Employee"]
        worker = from_intern["Employee"]["Employee"][0]
        boss = worker["Employee"][0]
        assert worker["name"] == "Worker"
        assert boss["name"] == "Boss"
        assert "Employee" not in boss


    def test_cycle_terminates(self):
        nodes = Table(
            id="n",
            name="Node",
            columns=["id", "next"],
            rows=[{"id": 1, "next": 2}, {"id": 2, "next": 1}],
        )
        rel = Relationship("n", "n", "next", "id", max_depth=50)

        doc = build_document("n", 0, [nodes], [rel])

        depth = 0
        node = doc["Node"]
        while "Node" in node:
            node = node["Node"][0]
            depth += 1
        assert depth == 50


class TestPivotJoin:
    """Tests for joins on pivoted columns."""

    @pytest.fixture
    def orders(self):
        return Table(
            id="orders",
            name="Order",
            columns=["Id", "Item1", "Item2"],
            rows=[{"Id": 1, "Item1": 10, "Item2": 12}, {"Id": 2, "Item2": 12}],
        )

    @pytest.fixture
    def products(self):
        return Table(
            id="products",
            name="Product",
            columns=["pid", "label"],
            rows=[{"pid": 10, "label": "ten"}, {"pid": 12, "label": "twelve"}],
        )

    @pytest.fixture
    def options(self):
        return BuildOptions(table_pivots=[
            TablePivot("orders", "Items", [PivotGroup("Item", "Item")]),
        ])

    @pytest.fixture
    def rel(self):
        return Relationship("orders", "products", "Item1", "pid")

    def test_each_element_gets_its_own_match(self, orders, products, options, rel):
        doc = build_document("orders", 0, [orders, products], [rel], options)

        assert doc == {"Order": {"Id": 1, "Items": [
            {"Item": 10, "Product": [{"pid": 10, "label": "ten"}]},
            {"Item": 12, "Product": [{"pid": 12, "label": "twelve"}]},
        ]}}

    def test_sparse_row_aligns_elements(self, orders, products, options, rel):
        doc = build_document("orders", 1, [orders, products], [rel], options)

        assert doc == {"Order": {"Id": 2, "Items": [
            {"Item": 12, "Product": [{"pid": 12, "label": "twelve"}]},
        ]}}

    def test_no_sibling_property_on_row(self, orders, products, options, rel):
        doc = build_document("orders", 0, [orders, products], [rel], options)

        assert "Product" not in doc["Order"]

    def test_one_to_one_embeds_object_per_element(self, orders, products, options, rel):
        rel.cardinality = Cardinality.ONE_TO_ONE
        rel.output_property_name = "product"

        doc = build_document("orders", 0, [orders, products], [rel], options)

        assert doc["Order"]["Items"] == [
            {"Item": 10, "product": {"pid": 10, "label": "ten"}},
            {"Item": 12, "product": {"pid": 12, "label": "twelve"}},
        ]

    def test_filtered_pivot_columns_keep_alignment(self, orders, products, rel):
        options = BuildOptions(
            columns_filter={"orders": ["Id", "Item2"]},
            table_pivots=[TablePivot("orders", "Items", [PivotGroup("Item", "Item")])],
        )

        doc = build_document("orders", 0, [orders, products], [rel], options)

        assert doc == {"Order": {"Id": 1, "Items": [
            {"Item": 12, "Product": [{"pid": 12, "label": "twelve"}]},
        ]}}


class TestFailureSemantics:
    """Tests for missing tables and invalid lead rows."""

    def test_missing_table_relationship_skipped(self, table_a, a_to_b):
        doc = build_document("A", 0, [table_a], [a_to_b])

        assert doc == {"A": {"id": 1, "b_id": 10}}

    def test_unknown_lead_table(self, table_a):
        with pytest.raises(NotFoundError) as exc:
            build_document("ghost", 0, [table_a], [])

        assert exc.value.table_id == "ghost"

    @pytest.mark.parametrize("index", [-1, 2, 100])
    def test_row_out_of_range(self, table_a, index):
        with pytest.raises(NotFoundError) as exc:
            build_document("A", index, [table_a], [])

        assert exc.value.row_index == index

    def test_not_found_counted_in_metrics(self, table_a):
        before = documents_built_total.labels(status="not_found")._value.get()

        with pytest.raises(NotFoundError):
            build_document("A", 5, [table_a], [])

        after = documents_built_total.labels(status="not_found")._value.get()
        assert after == before + 1

    def test_strict_mode_rejects_unknown_table(self, table_a, a_to_b):
        with pytest.raises(RelationshipValidationError) as exc:
            build_document("A", 0, [table_a], [a_to_b], strict=True)

        assert "unknown table 'B'" in exc.value.problems

    def test_strict_mode_accepts_valid_graph(self, table_a, table_b, a_to_b):
        doc = build_document("A", 0, [table_a, table_b], [a_to_b], strict=True)

        assert doc["A"]["B"] == [{"id": 10, "val": "x"}]


class TestDeterminism:
    """Tests for repeatable, side-effect free builds."""

    def test_same_output_twice(self, table_a, table_b, a_to_b):
        builder = DocumentBuilder([table_a, table_b], [a_to_b])

        assert builder.build("A", 0) == builder.build("A", 0)

    def test_inputs_not_mutated(self, table_a, table_b, a_to_b):
        before = copy.deepcopy([table_a.rows, table_b.rows])

        doc = build_document("A", 0, [table_a, table_b], [a_to_b])
        doc["A"]["B"][0]["val"] = "changed"

        assert [table_a.rows, table_b.rows] == before
