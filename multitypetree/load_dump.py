"""
Functions to load and dump migration models and coloured trees in YAML
and JSON formats, and to import parameter values from plain text files.
"""
from __future__ import annotations
import contextlib
import csv
import io
import json
from typing import Any, List, MutableMapping, Optional

import ruamel.yaml

from .exceptions import ValidationError
from .migration import MigrationModel, reflatten_rate_matrix
from .tree import MultiTypeTree
from .typeset import TypeSet


@contextlib.contextmanager
def _open_file_polymorph(polymorph, mode="r"):
    """
    Open polymorph as a path and yield the fileobj. If that fails,
    just yield polymorph under the assumption it's a fileobj.
    """
    try:
        # We must specify utf8 explicitly for Windows.
        f = open(polymorph, mode, encoding="utf-8")
    except TypeError:
        f = polymorph
    try:
        yield f
    finally:
        if f is not polymorph:
            f.close()


def _load_yaml_asdict(fp) -> MutableMapping[str, Any]:
    with ruamel.yaml.YAML(typ="safe") as yaml:
        return yaml.load(fp)


def _dump_yaml_fromdict(data, fp) -> None:
    with ruamel.yaml.YAML(typ="safe", output=fp) as yaml:
        # Output flow style, but only for collections that consist only
        # of scalars (i.e. the leaves in the document tree).
        yaml.default_flow_style = None
        # Don't emit obscure unicode, output "\Uxxxxxxxx" instead.
        # Needed for string equality after round-tripping.
        yaml.allow_unicode = False
        # Keep dict insertion order.
        yaml.sort_base_mapping_type_on_output = False
        yaml.dump(data)


def _no_null_values(data) -> None:
    """
    Checks for any null values in the input data.
    """

    def check_if_None(key, val):
        if val is None:
            raise ValueError(f"{key} must have a non-null value")

    stack = [data]
    while stack:
        d = stack.pop()
        for k, v in d.items():
            if isinstance(v, dict):
                stack.append(v)
            elif isinstance(v, list):
                for e in v:
                    if isinstance(e, dict):
                        stack.append(e)
                    else:
                        check_if_None(k, e)
            else:
                check_if_None(k, v)


def loads_asdict(string, *, format="yaml") -> MutableMapping[str, Any]:
    """
    Load a YAML or JSON string into a dictionary of nested objects.

    The input is *not* validated.

    :param str string: The string to be loaded.
    :param str format: The format of the input string. Either "yaml" or "json".
    :rtype: dict
    """
    with io.StringIO(string) as stream:
        return load_asdict(stream, format=format)


def load_asdict(filename, *, format="yaml") -> MutableMapping[str, Any]:
    """
    Load a YAML or JSON file into a dictionary of nested objects.

    The input is *not* validated.

    :param filename: The path to the file to be loaded, or a file-like object
        with a ``read()`` method.
    :type filename: Union[str, os.PathLike, FileLike]
    :param str format: The format of the input file. Either "yaml" or "json".
    :rtype: dict
    """
    if format == "json":
        with _open_file_polymorph(filename) as f:
            data = json.load(f)
    elif format == "yaml":
        with _open_file_polymorph(filename) as f:
            data = _load_yaml_asdict(f)
    else:
        raise ValueError(f"unknown format: {format}")
    if not isinstance(data, MutableMapping):
        raise TypeError("the document must be a mapping")
    _no_null_values(data)
    return data


def _dump_fromdict(data, filename, format) -> None:
    if format == "json":
        with _open_file_polymorph(filename, "w") as f:
            json.dump(data, f, allow_nan=False, indent=2)
    elif format == "yaml":
        with _open_file_polymorph(filename, "w") as f:
            _dump_yaml_fromdict(data, f)
    else:
        raise ValueError(f"unknown format: {format}")


def _dumps_fromdict(data, format) -> str:
    with io.StringIO() as stream:
        _dump_fromdict(data, stream, format)
        string = stream.getvalue()
    return string


def loads_model(string, *, format="yaml") -> MigrationModel:
    """
    Load a migration model from a YAML or JSON string.

    :rtype: MigrationModel
    """
    return MigrationModel.fromdict(loads_asdict(string, format=format))


def load_model(filename, *, format="yaml") -> MigrationModel:
    """
    Load a migration model from a YAML or JSON file.
    The fields are described in :meth:`MigrationModel.fromdict`.

    :param filename: The path to the file to be loaded, or a file-like object
        with a ``read()`` method.
    :type filename: Union[str, os.PathLike, FileLike]
    :param str format: The format of the input file. Either "yaml" or "json".
    :rtype: MigrationModel
    """
    return MigrationModel.fromdict(load_asdict(filename, format=format))


def dumps_model(model, *, format="yaml") -> str:
    """
    Dump a migration model to a YAML or JSON string.
    """
    return _dumps_fromdict(model.asdict(), format)


def dump_model(model, filename, *, format="yaml") -> None:
    """
    Dump a migration model to a file.

    :param MigrationModel model: The model to dump.
    :param filename: Path to the output file, or a file-like object with a
        ``write()`` method.
    :type filename: Union[str, os.PathLike, FileLike]
    :param str format: The format of the output file. Either "yaml" or "json".
    """
    _dump_fromdict(model.asdict(), filename, format)


def loads_tree(string, *, format="yaml", type_set=None) -> MultiTypeTree:
    """
    Load a coloured tree from a YAML or JSON string.

    :rtype: MultiTypeTree
    """
    return MultiTypeTree.fromdict(
        loads_asdict(string, format=format), type_set=type_set
    )


def load_tree(filename, *, format="yaml", type_set=None) -> MultiTypeTree:
    """
    Load a coloured tree from a YAML or JSON file.
    The document is the nested root node described in
    :meth:`MultiTypeTree.fromdict`.

    :param filename: The path to the file to be loaded, or a file-like object
        with a ``read()`` method.
    :type filename: Union[str, os.PathLike, FileLike]
    :param str format: The format of the input file. Either "yaml" or "json".
    :param TypeSet type_set: The type set that the tree's types refer to,
        usually the type set of a migration model.
    :rtype: MultiTypeTree
    """
    return MultiTypeTree.fromdict(
        load_asdict(filename, format=format), type_set=type_set
    )


def dumps_tree(tree, *, format="yaml") -> str:
    """
    Dump a coloured tree to a YAML or JSON string.
    """
    return _dumps_fromdict(tree.asdict(), format)


def dump_tree(tree, filename, *, format="yaml") -> None:
    """
    Dump a coloured tree to a file.

    :param MultiTypeTree tree: The tree to dump.
    :param filename: Path to the output file, or a file-like object with a
        ``write()`` method.
    :type filename: Union[str, os.PathLike, FileLike]
    :param str format: The format of the output file. Either "yaml" or "json".
    """
    _dump_fromdict(tree.asdict(), filename, format)


# Plain text import of parameter values.


def _read_values(filename) -> List[str]:
    values = []
    with _open_file_polymorph(filename) as f:
        for row in csv.reader(f):
            for value in row:
                value = value.strip()
                if value:
                    values.append(value)
    return values


def load_type_names(filename) -> TypeSet:
    """
    Load type names from a file with one name per line (or comma-separated
    names), in index order.

    :rtype: TypeSet
    """
    return TypeSet(_read_values(filename))


def load_pop_sizes(filename) -> List[float]:
    """
    Load population sizes from a file with one value per line (or
    comma-separated values), in type index order.
    """
    return [float(value) for value in _read_values(filename)]


def load_rate_matrix(filename, num_types: Optional[int] = None) -> List[float]:
    """
    Load migration rates from a CSV file and return them in the flattened
    no-diagonal layout.

    The file holds either the full ``n * n`` square matrix, with its
    diagonal (which is ignored), or the ``n * (n - 1)`` off-diagonal rates
    in row order. If ``num_types`` is not given, it is inferred from the
    number of values.

    :raises ValidationError: If the number of values does not fit a rate
        matrix for ``num_types`` types.
    """
    values = [float(value) for value in _read_values(filename)]
    if num_types is None:
        num_types = _infer_num_types(len(values))
    return reflatten_rate_matrix(values, num_types)


def _infer_num_types(num_values: int) -> int:
    for n in range(1, num_values + 2):
        if n * (n - 1) == num_values or n * n == num_values:
            return n
    raise ValidationError(
        f"{num_values} values do not form a rate matrix for any number of types"
    )
