import pytest

from topology import CrushMap, StepChooseLeaf, StepEmit, StepTake


@pytest.fixture
def reference_map() -> CrushMap:
    cmap = CrushMap()
    for i in range(4):
        cmap.add_device(i, 1.0)

    cmap.add_bucket("host_node1", "host", "straw", ["osd.0", "osd.1"])
    cmap.add_bucket("host_node2", "host", "straw", ["osd.2", "osd.3"])
    cmap.add_bucket("rack_a", "rack", "straw", ["host_node1"])
    cmap.add_bucket("rack_b", "rack", "straw", ["host_node2"])
    cmap.add_bucket("default", "root", "straw", ["rack_a", "rack_b"])
    cmap.set_root("default")

    cmap.add_rule(
        "replicated_rule",
        [StepTake("default"), StepChooseLeaf(3, "rack"), StepEmit()],
    )
    return cmap


@pytest.fixture
def flat_map() -> CrushMap:
    cmap = CrushMap()
    for i in range(12):
        cmap.add_device(i, 1.0, "ssd" if i % 3 == 0 else "hdd")
    cmap.add_bucket("flat", "root", "straw2", [f"osd.{i}" for i in range(12)])
    cmap.set_root("flat")
    return cmap
