import pytest

from Logic_Web.engine.routing import path_length, point_at, port_position, route
from Logic_Web.netlist.model import Connection, Element, Port


def _ff(ff_type="DFF"):
    return Element(
        id=3,
        type=ff_type,
        x=200,
        y=100,
        inputs=(Port("d_in"), Port("clk_w"), Port("en_w")),
        outputs=(Port("q"),),
    )


def test_plain_element_ports_are_side_centred():
    gate = Element(id=1, type="and", x=10, y=20, inputs=(Port("a"),), outputs=(Port("b"),))

    assert port_position(gate, "input", "a") == (10.0, 45.0)
    assert port_position(gate, "output", "b") == (60.0, 45.0)


def test_flip_flop_pin_positions():
    ff = _ff()

    assert port_position(ff, "input", "d_in") == (200.0, 112.5)
    assert port_position(ff, "input", "clk_w") == (225.0, 150.0)
    assert port_position(ff, "input", "en_w") == (200.0, 137.5)
    assert port_position(ff, "output", "q") == (250.0, 125.0)


def test_flip_flop_pin_falls_back_to_wire_name():
    ff = Element(id=3, type="DFF_NE", x=0, y=0, inputs=(Port("a"), Port("b"), Port("c"), Port("my_clk")))

    assert port_position(ff, "input", "my_clk") == (25.0, 50.0)
    assert port_position(ff, "input", "unknown") == (0.0, 25.0)


def test_route_has_two_right_angle_bends():
    src = Element(id=1, type="module_input", x=100, y=100, outputs=(Port("d_in"),))
    path = route(src, _ff(), Connection("d_in"))

    assert path == [(150.0, 125.0), (175.0, 125.0), (175.0, 112.5), (200.0, 112.5)]
    assert path_length(path) == pytest.approx(25.0 + 12.5 + 25.0)


def test_point_at_walks_segments_by_length():
    path = [(0.0, 0.0), (10.0, 0.0), (10.0, 10.0), (20.0, 10.0)]

    assert point_at(path, 0.0) == (0.0, 0.0)
    assert point_at(path, 0.5) == pytest.approx((10.0, 5.0))
    assert point_at(path, 0.25) == pytest.approx((7.5, 0.0))
    assert point_at(path, 1.0) == pytest.approx((20.0, 10.0))
    assert point_at(path, 3.0) == pytest.approx((20.0, 10.0))


def test_point_at_degenerate_path():
    path = [(5.0, 5.0)] * 4

    assert path_length(path) == 0.0
    assert point_at(path, 0.7) == (5.0, 5.0)
