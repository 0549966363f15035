from __future__ import annotations

import argparse
import asyncio
import json
import os


async def run(url: str, cmd: str, args: argparse.Namespace):
    import websockets  # type: ignore

    async with websockets.connect(url) as ws:
        # Drain hello/state
        for _ in range(2):
            await ws.recv()
        if cmd == "pause":
            msg = {"type": "setPaused", "payload": {"paused": True}}
        elif cmd == "resume":
            msg = {"type": "setPaused", "payload": {"paused": False}}
        elif cmd == "seek":
            msg = {"type": "seek", "payload": {"index": int(args.index)}}
        elif cmd == "volume":
            msg = {"type": "setVolume", "payload": {"volume": float(args.value)}}
        elif cmd == "load":
            msg = {"type": "loadFile", "payload": {"path": os.path.abspath(args.path)}}
        else:
            msg = {"type": "getState"}
        msg["id"] = 1
        await ws.send(json.dumps(msg))
        # Print the reply (skipping periodic state broadcasts)
        for _ in range(10):
            try:
                raw = await asyncio.wait_for(ws.recv(), timeout=2.0)
            except asyncio.TimeoutError:
                break
            obj = json.loads(raw)
            if obj.get("id") == 1:
                print(raw)
                break


def main():
    ap = argparse.ArgumentParser(description="Simple WS controller for the Pianola player")
    ap.add_argument("--url", default="ws://127.0.0.1:8765")
    sub = ap.add_subparsers(dest="cmd", required=True)
    sub.add_parser("pause")
    sub.add_parser("resume")
    sub.add_parser("state")
    p_seek = sub.add_parser("seek"); p_seek.add_argument("index")
    p_vol = sub.add_parser("volume"); p_vol.add_argument("value")
    p_load = sub.add_parser("load"); p_load.add_argument("path")
    args = ap.parse_args()
    asyncio.run(run(args.url, args.cmd, args))


if __name__ == "__main__":
    main()
