import json

import pytest

from Logic_Web.netlist.io import load_netlist, new_netlist, save_netlist, validate_netlist
from Logic_Web.netlist.model import Connection, Netlist

from netlists import clocked_flip_flop, input_to_output


def test_load_and_save_roundtrip(tmp_path):
    data = input_to_output()
    data["elements"][0].update(x=10, y=20)
    path = tmp_path / "n.json"
    path.write_text(json.dumps(data))

    netlist = load_netlist(str(path))
    assert netlist.element(1).x == 10.0
    assert netlist.source_of("w1").id == 1
    assert netlist.dest_of("w1").id == 2

    out = tmp_path / "out.json"
    save_netlist(str(out), netlist)
    saved = json.loads(out.read_text())
    assert saved["elements"][0]["y"] == 20.0
    assert saved["elements"][1]["inputs"] == [{"wireName": "w1"}]
    assert saved["connections"] == [{"name": "w1"}]


def test_new_netlist_is_empty():
    netlist = new_netlist()
    assert netlist.elements == [] and netlist.connections == []
    assert not netlist.has_layout()


@pytest.mark.parametrize(
    "data",
    [
        [],
        {"elements": []},
        {"elements": {}, "connections": []},
        {"elements": [{"id": 1}], "connections": []},
        {"elements": [{"id": 1, "type": "mux"}], "connections": []},
        {"elements": [{"id": 1, "type": "and"}, {"id": 1, "type": "or"}], "connections": []},
        {"elements": [{"id": 1, "type": "and", "inputs": [{"name": "a"}]}], "connections": []},
        {"elements": [], "connections": [{"name": "a"}, {"name": "a"}]},
    ],
)
def test_validate_rejects_malformed(data):
    with pytest.raises(ValueError):
        validate_netlist(data)


def test_load_rejects_malformed_file(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"elements": "x", "connections": []}))

    with pytest.raises(ValueError):
        load_netlist(str(path))


def test_first_wire_occurrence_wins():
    data = input_to_output()
    data["elements"].append(
        {"id": 3, "type": "module_input", "outputs": [{"wireName": "w1"}]}
    )
    netlist = Netlist.from_dict(data)

    assert netlist.source_of("w1").id == 1
    assert netlist.connections_from(3) == []


def test_inert_connections_are_not_driven():
    netlist = Netlist.from_dict(clocked_flip_flop())
    netlist.connections.append(Connection("floating"))

    assert netlist.endpoints(Connection("floating")) is None
    assert [c.name for c in netlist.connections_from(3)] == ["q"]


def test_positions_replace_elements():
    netlist = Netlist.from_dict(input_to_output())
    moved = netlist.with_positions({2: (7, 8)})

    assert moved.element(2).x == 7.0
    assert netlist.element(2).x == 0.0
    assert moved.has_layout()
    assert moved.element(2).label == "y"
    assert Netlist.from_dict({"elements": [{"id": 9, "type": "and"}]}).element(9).label == "element-9"
