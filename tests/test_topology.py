import pytest

from topology import BucketRef, CrushMap, DeviceRef, TopologyError


def test_bucket_ids_follow_registration_order(reference_map):
    ids = {name: b.id for name, b in reference_map.buckets.items()}
    assert ids == {
        "host_node1": -1,
        "host_node2": -2,
        "rack_a": -3,
        "rack_b": -4,
        "default": -5,
    }
    assert reference_map.root_id == -5
    assert reference_map.root is reference_map.buckets["default"]


def test_bucket_counters_are_per_map():
    a, b = CrushMap(), CrushMap()
    a.add_bucket("x", "host", "straw", [])
    a.add_bucket("y", "host", "straw", [])
    assert b.add_bucket("z", "host", "straw", []).id == -1


def test_lookups(reference_map):
    assert reference_map.bucket_items("rack_a") == ["host_node1"]
    assert reference_map.bucket_items("missing") is None
    assert reference_map.device_weight("osd.1") == 1.0
    assert reference_map.device_weight("osd.42") == 0.0
    assert reference_map.resolve("osd.2") == DeviceRef(2)
    assert reference_map.resolve("rack_b") == BucketRef(-4)
    assert reference_map.resolve("nothing") is None
    assert reference_map.devices["osd.3"].key == "osd.3"


def test_bucket_items_returns_a_copy(reference_map):
    items = reference_map.bucket_items("default")
    items.append("rack_c")
    assert reference_map.bucket_items("default") == ["rack_a", "rack_b"]


@pytest.mark.parametrize(
    "build, message",
    [
        (lambda m: m.add_device(0, 2.0), "already registered"),
        (lambda m: m.add_device(7, -1.0), "negative weight"),
        (lambda m: m.add_device(-1, 1.0), "non-negative"),
        (lambda m: m.add_bucket("rack_a", "rack", "straw", []), "already registered"),
        (lambda m: m.add_bucket("r", "rack", "straw", ["host_node9"]), "unknown item"),
        (lambda m: m.add_bucket("r", "rack", "straw", ["host_node1"]), "already belongs"),
        (lambda m: m.add_bucket("osd.9", "host", "straw", []), "clashes"),
        (lambda m: m.add_rule("replicated_rule", []), "already registered"),
        (lambda m: m.set_root("nope"), "unknown root"),
    ],
)
def test_registration_errors(reference_map, build, message):
    with pytest.raises(TopologyError, match=message):
        build(reference_map)


def test_duplicated_children_rejected():
    m = CrushMap()
    m.add_device(0, 1.0)
    with pytest.raises(TopologyError, match="duplicated"):
        m.add_bucket("h", "host", "straw", ["osd.0", "osd.0"])


def test_to_json(reference_map):
    j = reference_map.to_json("rack_b")
    assert j["name"] == "rack_b"
    assert j["type"] == "rack"
    assert j["id"] == -4
    (host,) = j["children"]
    assert host["name"] == "host_node2"
    assert [c["name"] for c in host["children"]] == ["osd.2", "osd.3"]
    assert host["children"][0] == {
        "type": "osd",
        "name": "osd.2",
        "id": 2,
        "weight": 1.0,
        "class": None,
    }
