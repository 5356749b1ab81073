"""
device: device <N> osd.<N> [weight <FLOAT>] [class <STR>]

bucket: [bucket-type] [bucket-name] {
    "alg" [straw | straw2 | ...]
    "item" [item-name]
}

rule: "rule" <rulename> {
    step take <bucket-name> [class <class-name>]
    step chooseleaf firstn <N> type <bucket-type>
    step emit
}

Devices come first, then buckets (children before parents), then rules.
Everything after `#` on a line is a comment.
"""

import logging
import re
from dataclasses import dataclass
from enum import IntEnum
from typing import NoReturn

from topology import (
    OSD_PREFIX,
    CrushMap,
    StepChooseLeaf,
    StepEmit,
    StepT,
    StepTake,
    TopologyError,
)

logger = logging.getLogger(__name__)

DEFAULT_ALG = "straw"
ROOT_TYPE = "root"

TOKEN_RE = re.compile(r"[{}]|[^\s{}]+")
WORD_RE = re.compile(r"[A-Za-z][A-Za-z0-9_.-]*")
NUM_RE = re.compile(r"[0-9]+")
# no leading zeros, so `osd.<n>` is spelled the same way buckets refer to it
DEVICE_NUM_RE = re.compile(r"0|[1-9][0-9]*")
FLOAT_RE = re.compile(r"[0-9]+\.?[0-9]*|\.[0-9]+")


class Section(IntEnum):
    devices = 0
    buckets = 1
    rules = 2


@dataclass
class Token:
    col: int  # 1-based
    text: str


class ParsingError(Exception):
    def __init__(self, msg: str, row: int, col: int, line: str):
        col_prefix = f"{row} | "
        super().__init__(
            "{}{}\n{}^\n{}{}".format(
                col_prefix,
                line,
                " " * (len(col_prefix) + col - 1),
                " " * len(col_prefix),
                msg,
            )
        )
        self.msg = msg
        self.row = row
        self.col = col


class Parser:
    def __init__(self, text: str):
        self.lines = text.splitlines()
        self.row = 0  # 1-based number of the current line, 0 before the first
        self.tokens: list[Token] = []
        self.pos = 0

    def parse(self) -> CrushMap:
        cmap = CrushMap()
        section = Section.devices
        root: str | None = None
        parents: set[str] = set()

        while self.next_line():
            head = self.peek()
            if head.text == "device":
                if section > Section.devices:
                    self.report_error("devices have to be declared before buckets")
                self.parse_device(cmap)
            elif head.text == "rule":
                section = Section.rules
                self.parse_rule(cmap)
            else:
                if section > Section.buckets:
                    self.report_error("buckets have to be declared before rules")
                section = Section.buckets
                b_type = head.text
                b_name = self.parse_bucket(cmap)
                parents.update(cmap.buckets[b_name].items)
                if b_type == ROOT_TYPE:
                    if root is not None:
                        self.report_error(f"root node already registered: {root}")
                    root = b_name

        if len(cmap.buckets) == 0:
            return cmap

        if root is None:
            self.report_error("no root node found")
        cmap.set_root(root)

        disconnected = [b for b in cmap.buckets if b != root and b not in parents]
        if len(disconnected) > 0:
            self.report_error("found disconnected nodes: " + ",".join(disconnected))
        logger.info(
            "parsed map: %d devices, %d buckets, %d rules, root %s",
            len(cmap.devices),
            len(cmap.buckets),
            len(cmap.rules),
            root,
        )
        return cmap

    def next_line(self) -> bool:
        while self.row < len(self.lines):
            line = self.lines[self.row].split("#", 1)[0]
            self.row += 1
            self.tokens = [
                Token(m.start() + 1, m.group()) for m in TOKEN_RE.finditer(line)
            ]
            self.pos = 0
            if len(self.tokens) > 0:
                return True
        self.tokens = []
        self.pos = 0
        return False

    def peek(self) -> Token:
        return self.tokens[self.pos]

    def at_eol(self) -> bool:
        return self.pos >= len(self.tokens)

    def read(self, what: str, pattern: re.Pattern[str] | None = None) -> str:
        if self.at_eol():
            self.report_error(f"expected {what}")
        t = self.peek()
        if pattern is not None and pattern.fullmatch(t.text) is None:
            self.report_error(f"expected {what}")
        self.pos += 1
        return t.text

    def expect(self, keyword: str) -> None:
        if self.at_eol() or self.peek().text != keyword:
            self.report_error(f"expected `{keyword}`")
        self.pos += 1

    def expect_eol(self) -> None:
        if not self.at_eol():
            self.report_error("unexpected token")

    def report_error(self, msg: str) -> NoReturn:
        if self.row == 0:
            raise ParsingError(msg, 1, 1, "")

        line = self.lines[self.row - 1]
        if self.at_eol():
            col = len(line.split("#", 1)[0].rstrip()) + 1
        else:
            col = self.peek().col
        raise ParsingError(msg, self.row, col, line)

    def parse_device(self, cmap: CrushMap) -> None:
        self.expect("device")
        num = self.read("a device number", DEVICE_NUM_RE)

        osd = self.read("osd id declaration")
        if not osd.startswith(OSD_PREFIX) or DEVICE_NUM_RE.fullmatch(osd[len(OSD_PREFIX) :]) is None:
            self.pos -= 1
            self.report_error("bad osd declaration: expected osd.<number>")
        if osd[len(OSD_PREFIX) :] != num:
            self.pos -= 1
            self.report_error(f"device number {num} does not match {osd}")

        weight = 1.0
        device_class: str | None = None
        while not self.at_eol():
            key = self.read("a device attribute", WORD_RE)
            if key == "weight":
                weight = float(self.read("a float number", FLOAT_RE))
            elif key == "class":
                device_class = self.read("a device class", WORD_RE)
            else:
                self.pos -= 1
                self.report_error("unexpected attribute")

        self.register(cmap.add_device, int(num), weight, device_class)

    def parse_bucket(self, cmap: CrushMap) -> str:
        b_type = self.read("a bucket type", WORD_RE)
        b_name = self.read("a bucket name", WORD_RE)
        self.expect("{")
        self.expect_eol()

        alg: str | None = None
        items: list[str] = []
        while True:
            if not self.next_line():
                self.report_error("expected a bucket block end")

            field = self.read("a bucket field")
            if field == "}":
                self.expect_eol()
                break
            if field == "alg":
                if alg is not None:
                    self.pos -= 1
                    self.report_error("found double declaration of a field")
                alg = self.read("an algorithm name", WORD_RE)
            elif field == "item":
                items.append(self.read("an item name", WORD_RE))
            else:
                self.pos -= 1
                self.report_error("unknown field")
            self.expect_eol()

        if len(items) == 0:
            self.report_error("found bucket with no children")

        self.register(cmap.add_bucket, b_name, b_type, alg or DEFAULT_ALG, items)
        return b_name

    def parse_rule(self, cmap: CrushMap) -> None:
        self.expect("rule")
        name = self.read("a rule name", WORD_RE)
        self.expect("{")
        self.expect_eol()

        steps: list[StepT] = []
        while True:
            if not self.next_line():
                self.report_error("expected an end of rule declaration")

            if self.peek().text == "}":
                self.pos += 1
                self.expect_eol()
                break
            self.expect("step")
            steps.append(self.parse_step(cmap))
            self.expect_eol()

        if len(steps) == 0:
            self.report_error("rule with no steps")
        elif not isinstance(steps[-1], StepEmit):
            self.report_error("last step of rule has to be emit")

        self.register(cmap.add_rule, name, steps)

    def parse_step(self, cmap: CrushMap) -> StepT:
        op = self.read("step type", WORD_RE)
        match op:
            case "take":
                bucket = self.read("bucket name", WORD_RE)
                if bucket not in cmap.buckets:
                    self.pos -= 1
                    self.report_error("unknown bucket name")
                if self.at_eol():
                    return StepTake(bucket)
                self.expect("class")
                return StepTake(bucket, self.read("a device class", WORD_RE))
            case "chooseleaf":
                if self.read("`firstn` option") != "firstn":
                    self.pos -= 1
                    self.report_error("only `firstn` option is supported")
                n = int(self.read("a number", NUM_RE))
                self.expect("type")
                return StepChooseLeaf(n, self.read("a bucket type", WORD_RE))
            case "emit":
                return StepEmit()
            case _:
                self.pos -= 1
                self.report_error("unexpected step type")

    def register(self, add, *args) -> None:  # type: ignore
        try:
            add(*args)
        except TopologyError as e:
            self.report_error(str(e))
