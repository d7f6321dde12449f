import io
import json
import math
import os
import pathlib
import tempfile

import pytest

import multitypetree
import tests
from tests import four_tip_model, four_tip_tree


class TestLoadAndDump:
    def test_bad_format_param(self):
        ex = tests.example_dir / "four_tip_model.yaml"
        with open(ex) as f:
            ex_string = f.read()

        with pytest.raises(ValueError):
            multitypetree.load_model(ex, format="not a format")
        with pytest.raises(ValueError):
            multitypetree.loads_model(ex_string, format="not a format")

        model = multitypetree.loads_model(ex_string)
        with pytest.raises(ValueError):
            multitypetree.dumps_model(model, format="not a format")
        with tempfile.TemporaryDirectory() as tmpdir:
            tmpfile = pathlib.Path(tmpdir) / "never-created"
            with pytest.raises(ValueError):
                multitypetree.dump_model(model, tmpfile, format="not a format")

    def test_bad_filename_param(self):
        model = four_tip_model()

        class F:
            pass

        f_w = F()
        f_w.write = True
        f_r = F()
        f_r.read = None
        for bad_file in [None, -1, object(), f_w, f_r]:
            # There are a variety of exceptions that could be raised here,
            # including TypeError, ValueError, AttributeError, OSError.
            with pytest.raises(Exception):
                multitypetree.load_model(bad_file)
            with pytest.raises(Exception):
                multitypetree.dump_model(model, bad_file)

    def test_not_a_mapping(self):
        with pytest.raises(TypeError):
            multitypetree.loads_asdict("[1, 2, 3]")
        with pytest.raises(TypeError):
            multitypetree.loads_asdict("[1, 2, 3]", format="json")

    @pytest.mark.parametrize("format", ["yaml", "json"])
    def test_model_roundtrip(self, format):
        model1 = four_tip_model(pop_sizes_scale_factor=2.0)
        string = multitypetree.dumps_model(model1, format=format)
        model2 = multitypetree.loads_model(string, format=format)
        assert model2.asdict() == model1.asdict()
        assert model2.pop_size(1) == 20.0

    @pytest.mark.parametrize("format", ["yaml", "json"])
    def test_tree_roundtrip(self, format):
        model = four_tip_model()
        tree1 = four_tip_tree(model.type_set)
        string = multitypetree.dumps_tree(tree1, format=format)
        tree2 = multitypetree.loads_tree(string, format=format, type_set=model.type_set)
        assert tree2.asdict() == tree1.asdict()
        assert tree2.type_set is model.type_set

    @pytest.mark.parametrize("format", ["yaml", "json"])
    def test_dump_and_load_file(self, format):
        model1 = four_tip_model()
        tree1 = four_tip_tree(model1.type_set)
        with tempfile.TemporaryDirectory() as tmpdir:
            model_file = pathlib.Path(tmpdir) / f"model.{format}"
            tree_file = pathlib.Path(tmpdir) / f"tree.{format}"
            multitypetree.dump_model(model1, model_file, format=format)
            multitypetree.dump_tree(tree1, str(tree_file), format=format)
            model2 = multitypetree.load_model(model_file, format=format)
            tree2 = multitypetree.load_tree(
                tree_file, format=format, type_set=model2.type_set
            )
        assert model2.asdict() == model1.asdict()
        assert tree2.asdict() == tree1.asdict()

    def test_dump_against_dumps(self):
        model = four_tip_model()
        tree = four_tip_tree(model.type_set)
        for format in ["yaml", "json"]:
            with io.StringIO() as f:
                multitypetree.dump_tree(tree, f, format=format)
                assert f.getvalue() == multitypetree.dumps_tree(tree, format=format)

    def test_dumps_yaml(self):
        string = multitypetree.dumps_model(four_tip_model())
        assert "types: ['0', '1']" in string or 'types: ["0", "1"]' in string
        assert "convention: backward" in string

    def test_dumps_json(self):
        string = multitypetree.dumps_tree(four_tip_tree(multitypetree.TypeSet(["0", "1"])))
        data = multitypetree.loads_asdict(string)
        assert data["height"] == 2.0
        string = multitypetree.dumps_tree(
            four_tip_tree(multitypetree.TypeSet(["0", "1"])), format="json"
        )
        assert json.loads(string) == data

    def test_loads_yaml_simple(self):
        string = """\
types: [A, B]
pop_sizes: [1.0, 2.0]
rate_matrix:
  values: [0.5, 0.25]
  estimate: true
  lower: 0.0
  upper: 10.0
"""
        model = multitypetree.loads_model(string)
        assert model.type_set.names == ["A", "B"]
        assert model.rate_matrix.values == [0.5, 0.25]
        assert model.rate_matrix.estimate
        assert model.rate_matrix.upper == 10.0
        assert model.backward_rate(1, 0) == 0.25

    def test_loads_json_simple(self):
        string = """\
{
  "types": ["A", "B"],
  "pop_sizes": [1.0, 2.0],
  "rate_matrix": [[0.0, 0.5], [0.25, 0.0]]
}
"""
        model = multitypetree.loads_model(string, format="json")
        assert model.rate_matrix.values == [0.5, 0.25]

    def test_json_infinities_not_allowed(self):
        model = four_tip_model()
        model.rate_matrix.upper = math.inf
        string = multitypetree.dumps_model(model, format="json")
        assert "Infinity" not in string

    @pytest.mark.parametrize("field", ["pop_sizes", "types", "rate_matrix"])
    def test_load_with_null_values(self, field):
        string = """\
types: [A, B]
pop_sizes: [1.0, 2.0]
rate_matrix: [0.5, 0.25]
"""
        string = string.replace(f"{field}: ", f"{field}: null #")
        with pytest.raises(ValueError):
            multitypetree.loads_model(string)

    def test_load_with_null_migration_time(self):
        string = """\
height: 1.0
type: A
children:
  - {height: 0.0, type: B, migrations: [{time: null, source: B, dest: A}]}
  - {height: 0.0, type: A}
"""
        with pytest.raises(ValueError):
            multitypetree.loads_tree(string)

    def test_loads_tree_creates_types(self):
        string = """\
height: 1.0
type: A
children:
  - {height: 0.0, type: B, migrations: [{time: 0.5, source: B, dest: A}]}
  - {height: 0.0, type: A}
"""
        tree = multitypetree.loads_tree(string)
        assert tree.type_set.names == ["A", "B"]
        assert tree.num_migrations == 1


class TestPlainText:
    def test_type_names(self):
        with io.StringIO("north\nsouth\n\neast\n") as f:
            type_set = multitypetree.load_type_names(f)
        assert type_set.names == ["north", "south", "east"]
        with io.StringIO("north, south, east") as f:
            type_set = multitypetree.load_type_names(f)
        assert type_set.names == ["north", "south", "east"]

    def test_pop_sizes(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            tmpfile = pathlib.Path(tmpdir) / "pop_sizes.txt"
            tmpfile.write_text("1.5\n2\n3e2\n")
            assert multitypetree.load_pop_sizes(tmpfile) == [1.5, 2.0, 300.0]

    def test_rate_matrix_square(self):
        text = "0, 1, 2\n3, 0, 4\n5, 6, 0\n"
        with io.StringIO(text) as f:
            rates = multitypetree.load_rate_matrix(f)
        assert rates == [1.0, 2.0, 3.0, 4.0, 5.0, 6.0]

    def test_rate_matrix_off_diagonal(self):
        with io.StringIO("1\n2\n3\n4\n5\n6\n") as f:
            rates = multitypetree.load_rate_matrix(f)
        assert rates == [1.0, 2.0, 3.0, 4.0, 5.0, 6.0]

    def test_rate_matrix_num_types(self):
        # Four values are a 2x2 square matrix, with its diagonal.
        with io.StringIO("0, 0.5\n0.25, 0\n") as f:
            assert multitypetree.load_rate_matrix(f, num_types=2) == [0.5, 0.25]

    def test_rate_matrix_bad_count(self):
        with io.StringIO("1, 2, 3, 4, 5\n") as f:
            with pytest.raises(multitypetree.ValidationError):
                multitypetree.load_rate_matrix(f)
        with io.StringIO("1, 2, 3\n") as f:
            with pytest.raises(multitypetree.ValidationError):
                multitypetree.load_rate_matrix(f, num_types=2)

    def test_bad_value(self):
        with io.StringIO("1.0\nbig\n") as f:
            with pytest.raises(ValueError):
                multitypetree.load_pop_sizes(f)


class TestOpenFilePolymorph:
    def test_fileobj_doesnt_get_closed_1(self):
        devnull = open(os.devnull)
        with multitypetree.load_dump._open_file_polymorph(devnull, "w") as f:
            pass
        assert not f.closed
        assert not devnull.closed
        devnull.close()

    def test_fileobj_doesnt_get_closed_2(self):
        devnull = open(os.devnull)
        try:
            with multitypetree.load_dump._open_file_polymorph(devnull, "w") as f:
                raise ValueError
        except ValueError:
            pass
        assert not f.closed
        assert not devnull.closed
        devnull.close()

    def test_no_file_descriptor_leak_1(self):
        with multitypetree.load_dump._open_file_polymorph(os.devnull, "w") as f:
            pass
        assert f.closed

    def test_no_file_descriptor_leak_2(self):
        try:
            with multitypetree.load_dump._open_file_polymorph(os.devnull, "w") as f:
                raise ValueError
        except ValueError:
            pass
        assert f.closed
