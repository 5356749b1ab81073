import argparse
import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from websockets.asyncio.server import serve

from crush import CrushError, place_object
from main import setup_logging
from parser import Parser, ParsingError
from topology import CrushMap

logger = logging.getLogger(__name__)


@dataclass
class ServerParams:
    host: str = "localhost"
    port: int = 8080
    # map every new connection starts with
    map_path: Path | None = None


def load_map(text: str) -> CrushMap:
    return Parser(text).parse()


def hierarchy(cmap: CrushMap) -> dict[str, Any] | None:
    if cmap.root is None:
        return None
    return cmap.to_json(cmap.root.name)


class BadRequest(Exception):
    pass


def field(m: dict[str, Any], name: str, kind: type) -> Any:
    value = m.get(name)
    # bool is an int subclass; true/false never pass as a field value
    if not isinstance(value, kind) or isinstance(value, bool):
        raise BadRequest(f"`{name}` has to be a {kind.__name__}")
    return value


def pg_list(m: dict[str, Any]) -> list[int]:
    pgs = field(m, "pgs", list)
    if not all(isinstance(pg, int) and not isinstance(pg, bool) for pg in pgs):
        raise BadRequest("`pgs` has to be a list of integers")
    return pgs


def handle_message(cmap: CrushMap | None, m: dict[str, Any]) -> tuple[CrushMap | None, dict[str, Any]]:
    match m.get("type"):
        case "map":
            text = field(m, "message", str)
            try:
                cmap = load_map(text)
            except ParsingError as e:
                return cmap, {"type": "hierarchy_fail", "data": str(e)}
            return cmap, {"type": "hierarchy_success", "data": hierarchy(cmap)}
        case "place":
            rule = field(m, "rule", str)
            pgs = pg_list(m)
            if cmap is None:
                return cmap, {"type": "placement_fail", "data": "no crush map loaded"}
            try:
                data = {str(pg): place_object(pg, cmap, rule) for pg in pgs}
            except CrushError as e:
                return cmap, {"type": "placement_fail", "data": str(e)}
            return cmap, {"type": "placement_success", "data": data}
        case other:
            logger.warning("unknown message type: %r", other)
            return cmap, {"type": "unknown_message", "data": other}


def make_handler(initial: CrushMap | None):
    async def handler(websocket):  # type: ignore
        cmap = initial
        async for message in websocket:  # type: ignore
            try:
                m = json.loads(message)  # type: ignore
            except json.JSONDecodeError as e:
                await websocket.send(  # type: ignore
                    json.dumps({"type": "bad_request", "data": str(e)})
                )
                continue
            if not isinstance(m, dict):
                await websocket.send(  # type: ignore
                    json.dumps({"type": "bad_request", "data": "expected a JSON object"})
                )
                continue

            try:
                cmap, reply = handle_message(cmap, m)
            except BadRequest as e:
                reply = {"type": "bad_request", "data": str(e)}
            await websocket.send(json.dumps(reply))  # type: ignore

    return handler


async def run(params: ServerParams) -> None:
    initial = None
    if params.map_path is not None:
        initial = load_map(params.map_path.read_text())

    async with serve(make_handler(initial), params.host, params.port) as server:  # type: ignore
        logger.info("serving placements on ws://%s:%d", params.host, params.port)
        await server.serve_forever()  # type: ignore


def main(argv: list[str] | None = None) -> None:
    ap = argparse.ArgumentParser(description="Websocket placement service")
    ap.add_argument("--host", default=ServerParams.host)
    ap.add_argument("--port", type=int, default=ServerParams.port)
    ap.add_argument("--map", type=Path, default=None, help="crush map to preload")
    ap.add_argument("-v", "--verbose", action="store_true")
    args = ap.parse_args(argv)

    setup_logging(args.verbose, logging.INFO)
    asyncio.run(run(ServerParams(args.host, args.port, args.map)))


if __name__ == "__main__":
    main()
