import logging
from dataclasses import dataclass, field
from typing import Any, Literal, NewType

logger = logging.getLogger(__name__)

DeviceID_T = NewType("DeviceID_T", int)  # type invariant: always >= 0
BucketID_T = NewType("BucketID_T", int)  # type invariant: always < 0

OSD_PREFIX = "osd."


class TopologyError(Exception):
    pass


def device_key(osd_id: int) -> str:
    return f"{OSD_PREFIX}{osd_id}"


@dataclass(frozen=True)
class Device:
    id: DeviceID_T
    # relative capacity; carried for callers, the straw selector does not read it
    weight: float
    device_class: str | None = None

    @property
    def key(self) -> str:
        return device_key(self.id)

    def to_json(self) -> dict[str, Any]:
        return {
            "type": "osd",
            "name": self.key,
            "id": self.id,
            "weight": self.weight,
            "class": self.device_class,
        }


@dataclass(frozen=True)
class Bucket:
    name: str
    type: str
    id: BucketID_T
    # "straw", "straw2", ... all buckets are selected the same way
    alg: str
    items: tuple[str, ...]


@dataclass(frozen=True)
class DeviceRef:
    id: DeviceID_T


@dataclass(frozen=True)
class BucketRef:
    id: BucketID_T


ItemRef = DeviceRef | BucketRef


@dataclass(frozen=True)
class StepTake:
    item: str
    device_class: str | None = None


@dataclass(frozen=True)
class StepChooseLeaf:
    n: int
    # accepted for the rule vocabulary, replicas are not spread across it
    failure_domain: str | Literal["osd"]


@dataclass(frozen=True)
class StepEmit: ...


StepT = StepTake | StepChooseLeaf | StepEmit


@dataclass(frozen=True)
class Rule:
    name: str
    steps: tuple[StepT, ...]


@dataclass
class CrushMap:
    """Devices, buckets and rules of one cluster, keyed by name.

    The map is filled once through the ``add_*`` methods and only read
    afterwards. Children have to be registered before the bucket holding
    them, so the hierarchy is a forest with at most one parent per item.
    """

    devices: dict[str, Device] = field(default_factory=dict)
    buckets: dict[str, Bucket] = field(default_factory=dict)
    rules: dict[str, Rule] = field(default_factory=dict)
    root_id: BucketID_T = BucketID_T(-1)

    _buckets_registered: int = field(default=0, init=False, repr=False)
    _bucket_by_id: dict[BucketID_T, Bucket] = field(
        default_factory=dict, init=False, repr=False
    )
    _child2parent: dict[str, str] = field(default_factory=dict, init=False, repr=False)

    def add_device(
        self, osd_id: int, weight: float, device_class: str | None = None
    ) -> Device:
        if osd_id < 0:
            raise TopologyError(f"device id has to be non-negative, got {osd_id}")
        if weight < 0:
            raise TopologyError(f"{device_key(osd_id)}: negative weight {weight}")

        d = Device(DeviceID_T(osd_id), float(weight), device_class)
        if d.key in self.devices:
            raise TopologyError(f"{d.key} already registered")

        self.devices[d.key] = d
        logger.debug("registered %s weight=%s class=%s", d.key, weight, device_class)
        return d

    def add_bucket(self, name: str, type: str, alg: str, items: list[str]) -> Bucket:
        if name in self.buckets:
            raise TopologyError(f"bucket `{name}` already registered")
        if name.startswith(OSD_PREFIX):
            raise TopologyError(f"bucket name `{name}` clashes with device keys")

        for item in items:
            if item not in self.devices and item not in self.buckets:
                raise TopologyError(f"bucket `{name}`: unknown item `{item}`")
            if (p := self._child2parent.get(item)) is not None:
                raise TopologyError(f"bucket `{name}`: `{item}` already belongs to `{p}`")
        if len(set(items)) != len(items):
            raise TopologyError(f"bucket `{name}`: duplicated items")

        self._buckets_registered += 1
        b = Bucket(name, type, BucketID_T(-self._buckets_registered), alg, tuple(items))

        self.buckets[name] = b
        self._bucket_by_id[b.id] = b
        for item in items:
            self._child2parent[item] = name
        logger.debug("registered bucket [%d] %s (%s): %s", b.id, name, type, items)
        return b

    def add_rule(self, name: str, steps: list[StepT]) -> Rule:
        if name in self.rules:
            raise TopologyError(f"rule `{name}` already registered")
        r = Rule(name, tuple(steps))
        self.rules[name] = r
        return r

    def set_root(self, name: str) -> None:
        b = self.buckets.get(name)
        if b is None:
            raise TopologyError(f"unknown root bucket `{name}`")
        self.root_id = b.id

    @property
    def root(self) -> Bucket | None:
        return self._bucket_by_id.get(self.root_id)

    def bucket_items(self, name: str) -> list[str] | None:
        b = self.buckets.get(name)
        if b is None:
            return None
        return list(b.items)

    def device_weight(self, key: str) -> float:
        d = self.devices.get(key)
        if d is None:
            return 0.0
        return d.weight

    def is_device(self, name: str) -> bool:
        return name in self.devices

    def resolve(self, name: str) -> ItemRef | None:
        if (d := self.devices.get(name)) is not None:
            return DeviceRef(d.id)
        if (b := self.buckets.get(name)) is not None:
            return BucketRef(b.id)
        return None

    def to_json(self, name: str) -> dict[str, Any]:
        match self.resolve(name):
            case DeviceRef():
                return self.devices[name].to_json()
            case BucketRef():
                b = self.buckets[name]
                return {
                    "type": b.type,
                    "name": b.name,
                    "id": b.id,
                    "alg": b.alg,
                    "children": [self.to_json(c) for c in b.items],
                }
            case None:
                raise TopologyError(f"unknown item `{name}`")
