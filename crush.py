import logging

from hashing import crush_hash
from topology import (
    BucketRef,
    CrushMap,
    DeviceRef,
    StepChooseLeaf,
    StepEmit,
    StepTake,
    TopologyError,
)

logger = logging.getLogger(__name__)


class CrushError(Exception):
    pass


class RuleNotFound(CrushError):
    def __init__(self, rule: str):
        super().__init__(f"rule `{rule}` not found")
        self.rule = rule


class RuleTargetNotFound(CrushError):
    def __init__(self, rule: str, bucket: str):
        super().__init__(f"rule `{rule}`: take target `{bucket}` not found")
        self.rule = rule
        self.bucket = bucket


def item_id(cmap: CrushMap, name: str) -> int:
    match cmap.resolve(name):
        case DeviceRef(id=id) | BucketRef(id=id):
            return id
        case None:
            raise TopologyError(f"unknown item `{name}`")


def choose_straw(
    candidates: list[str],
    pg: int,
    count: int,
    cmap: CrushMap,
    failure_domain: str | None = None,
) -> list[str]:
    """Pick up to ``count`` leaf devices out of ``candidates``.

    Every attempt hashes each remaining item with the attempt number and the
    item with the smallest hash wins; on ties the earlier item wins. Winners
    leave the pool. A winning bucket is replaced by the single device picked
    from its own children, or by nothing if that subtree has no devices.

    ``failure_domain`` is not enforced: two picks may share a rack.
    """
    out: list[str] = []
    available = list(candidates)

    for attempt in range(count):
        if len(available) == 0:
            break

        best = 0
        best_hash = crush_hash(pg, item_id(cmap, available[0]), attempt)
        for i in range(1, len(available)):
            h = crush_hash(pg, item_id(cmap, available[i]), attempt)
            if h < best_hash:
                best, best_hash = i, h

        winner = available.pop(best)
        logger.debug("pg %d attempt %d: %s won with %08x", pg, attempt, winner, best_hash)

        match cmap.resolve(winner):
            case DeviceRef():
                out.append(winner)
            case BucketRef():
                children = cmap.bucket_items(winner) or []
                out.extend(choose_straw(children, pg, 1, cmap, failure_domain))

    return out


def place_object(pg: int, cmap: CrushMap, rule_name: str) -> list[str]:
    """Devices holding the replicas of ``pg`` under ``rule_name``, sorted by key.

    Raises RuleNotFound or RuleTargetNotFound; asking for more replicas than
    the hierarchy can give is not an error, the result is just shorter.

    A `take` with a device class keeps the devices that have no class or
    that class; a device labelled with another class is left out. Maps
    without class labels therefore let every device through.
    """
    rule = cmap.rules.get(rule_name)
    if rule is None:
        raise RuleNotFound(rule_name)

    selected: list[str] = []
    current: list[str] = []
    for step in rule.steps:
        match step:
            case StepTake(item=name, device_class=device_class):
                items = cmap.bucket_items(name)
                if items is None:
                    raise RuleTargetNotFound(rule_name, name)

                if device_class is not None:
                    # sub-buckets are dropped here, not searched for devices
                    items = [
                        i
                        for i in items
                        if cmap.is_device(i)
                        and cmap.devices[i].device_class in (None, device_class)
                    ]
                current = items
                logger.debug("take %s: %s", name, current)
            case StepChooseLeaf(n=n, failure_domain=failure_domain):
                chosen = choose_straw(current, pg, n, cmap, failure_domain)
                for d in chosen:
                    if d not in selected:
                        selected.append(d)
                current = chosen
                logger.debug("chooseleaf %d type %s: %s", n, failure_domain, chosen)
            case StepEmit():
                ...

    return sorted(selected)
