from __future__ import annotations

import argparse
import asyncio
import json
import signal
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Set

from pianola.clock import LoopClock
from pianola.decode import decode_json, load_decoded
from pianola.model import DecodedMidi
from pianola.sinks import CoreSink, MidoSink, open_mido_output
from pianola.transport import Transport
from pianola.validator import ValidationError


"""Scheduling actor and WebSocket control surface.

One asyncio task owns the Transport and its pending timer. Commands queue up
and are applied one at a time between timer firings, so no locks are needed.
"""


@dataclass
class LoadFile:
    decoded: Optional[DecodedMidi]
    paused: bool = False
    reply: Optional[asyncio.Future] = field(default=None, repr=False)


@dataclass
class SetPaused:
    paused: bool
    reply: Optional[asyncio.Future] = field(default=None, repr=False)


@dataclass
class Seek:
    index: int
    reply: Optional[asyncio.Future] = field(default=None, repr=False)


@dataclass
class SetVolume:
    volume: float
    reply: Optional[asyncio.Future] = field(default=None, repr=False)


@dataclass
class Stop:
    reply: Optional[asyncio.Future] = field(default=None, repr=False)


@dataclass
class _TimerFailed:
    error: BaseException


class PlayerService:
    def __init__(self, sink: CoreSink, volume: float = 1.0):
        self.sink = sink
        self.initial_volume = volume
        self.transport: Optional[Transport] = None
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._finished = asyncio.Event()
        self._started = asyncio.Event()

    # --- Commands (safe to call before run() starts) ---
    async def load_file(self, decoded: Optional[DecodedMidi], paused: bool = False) -> Dict[str, Any]:
        return await self._request(LoadFile(decoded, paused))

    async def set_paused(self, paused: bool) -> Dict[str, Any]:
        return await self._request(SetPaused(bool(paused)))

    async def seek(self, index: int) -> Dict[str, Any]:
        return await self._request(Seek(int(index)))

    async def set_volume(self, volume: float) -> Dict[str, Any]:
        return await self._request(SetVolume(float(volume)))

    async def stop(self) -> Dict[str, Any]:
        return await self._request(Stop())

    async def wait_finished(self) -> None:
        await self._finished.wait()

    async def wait_started(self) -> None:
        await self._started.wait()

    def get_state(self) -> Dict[str, Any]:
        if self.transport is None:
            return {"paused": True, "cursor": 0, "total": 0, "pressedNotes": [], "sustain": False,
                    "volume": self.initial_volume, "elapsed": 0.0, "finished": True}
        return self.transport.state()

    def get_metrics(self) -> Dict[str, Any]:
        return self.transport.get_metrics() if self.transport else {}

    # --- Actor loop ---
    async def run(self) -> None:
        """Process commands until Stop. Re-raises a failure from a timer callback."""
        loop = asyncio.get_running_loop()
        clock = LoopClock(loop, on_error=lambda e: self._inbox.put_nowait(_TimerFailed(e)))
        self.transport = Transport(self.sink, clock, volume=self.initial_volume, on_change=self._on_change)
        self._started.set()
        while True:
            msg = await self._inbox.get()
            if isinstance(msg, _TimerFailed):
                print(f"[player] dispatch failed: {msg.error}", flush=True)
                self.transport.stop()
                self._finished.set()
                raise msg.error
            try:
                result = self._apply(msg)
            except (IndexError, ValueError) as e:
                self._fail(msg, e)
                continue
            except Exception as e:
                self._fail(msg, e)
                raise
            if msg.reply is not None and not msg.reply.done():
                msg.reply.set_result(result)
            if isinstance(msg, Stop):
                return

    @staticmethod
    def _fail(msg: Any, error: BaseException) -> None:
        if msg.reply is not None and not msg.reply.done():
            msg.reply.set_exception(error)

    def _apply(self, msg: Any) -> Dict[str, Any]:
        tr = self.transport
        if isinstance(msg, LoadFile):
            tr.load(msg.decoded, paused=msg.paused)
            print(f"[player] loaded {len(tr.context.actions)} actions", flush=True)
        elif isinstance(msg, SetPaused):
            tr.set_paused(msg.paused)
        elif isinstance(msg, Seek):
            tr.seek(msg.index)
        elif isinstance(msg, SetVolume):
            tr.set_volume(msg.volume)
        elif isinstance(msg, Stop):
            tr.stop()
            self._finished.set()
        return tr.state()

    def _on_change(self, tr: Transport) -> None:
        if tr.finished:
            self._finished.set()
        else:
            self._finished.clear()

    async def _request(self, msg: Any) -> Dict[str, Any]:
        msg.reply = asyncio.get_running_loop().create_future()
        self._inbox.put_nowait(msg)
        return await msg.reply


async def serve_ws(service: PlayerService, host: str, port: int, interval: float = 0.25):
    import websockets

    clients: Set[Any] = set()

    async def broadcast(obj: Dict[str, Any]):
        if not clients:
            return
        msg = json.dumps(obj)
        await asyncio.gather(*[c.send(msg) for c in list(clients)], return_exceptions=True)

    async def state_task():
        while True:
            await asyncio.sleep(interval)
            await broadcast({"type": "state", "ts": time.time(), "payload": service.get_state()})

    async def _reply(ws, req_id, ok: bool, payload: Dict[str, Any]):
        await ws.send(json.dumps({"type": "ack" if ok else "error", "ts": time.time(), "id": req_id, "payload": payload}))

    async def _command(obj: Dict[str, Any]) -> Dict[str, Any]:
        t = obj.get("type")
        payload = obj.get("payload") or {}
        if t == "loadFile":
            if isinstance(payload.get("doc"), dict):
                decoded = decode_json(payload["doc"])
            elif isinstance(payload.get("path"), str):
                decoded = load_decoded(payload["path"])
            else:
                raise ValueError("loadFile requires payload.path or payload.doc")
            return await service.load_file(decoded, paused=bool(payload.get("paused", False)))
        if t == "setPaused":
            return await service.set_paused(bool(payload.get("paused", True)))
        if t == "seek":
            return await service.seek(int(payload["index"]))
        if t == "setVolume":
            return await service.set_volume(float(payload["volume"]))
        raise ValueError(f"unknown command type: {t}")

    async def handler(ws, *maybe_path):
        ra = getattr(ws, "remote_address", None)
        print(f"[ws] client connected: {ra}", flush=True)
        clients.add(ws)
        await ws.send(json.dumps({"type": "hello", "ts": time.time(), "payload": {"protocol": 1}}))
        await ws.send(json.dumps({"type": "state", "ts": time.time(), "payload": service.get_state()}))
        try:
            async for message in ws:
                try:
                    obj = json.loads(message)
                except json.JSONDecodeError:
                    continue
                t = obj.get("type")
                req_id = obj.get("id")
                if t == "ping":
                    await ws.send(json.dumps({"type": "pong", "ts": time.time(), "id": req_id}))
                elif t == "getState":
                    await ws.send(json.dumps({"type": "state", "ts": time.time(), "id": req_id, "payload": service.get_state()}))
                elif t == "getMetrics":
                    await ws.send(json.dumps({"type": "metrics", "ts": time.time(), "id": req_id, "payload": service.get_metrics()}))
                else:
                    print(f"[ws] recv type={t}", flush=True)
                    try:
                        state = await _command(obj)
                    except ValidationError as e:
                        await _reply(ws, req_id, False, {"ok": False, "error": "validation", "details": e.errors})
                    except (KeyError, TypeError, ValueError, IndexError, OSError) as e:
                        await _reply(ws, req_id, False, {"ok": False, "error": type(e).__name__, "details": str(e)})
                    else:
                        await _reply(ws, req_id, True, {"ok": True, "state": state})
        finally:
            clients.discard(ws)

    async with websockets.serve(handler, host, port):
        print(f"[ws] player listening on ws://{host}:{port}", flush=True)
        task = asyncio.create_task(state_task())
        try:
            await asyncio.Future()
        finally:
            task.cancel()


async def _run_server(args) -> None:
    out = open_mido_output(args.port)
    service = PlayerService(MidoSink(out, channel=args.channel), volume=args.volume)
    player = asyncio.create_task(service.run())
    if args.file:
        await service.load_file(load_decoded(args.file), paused=args.paused)
    server = asyncio.create_task(serve_ws(service, args.ws_host, args.ws_port))

    loop = asyncio.get_running_loop()
    stopping = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stopping.set)
        except NotImplementedError:
            pass

    stop_wait = asyncio.create_task(stopping.wait())
    done, _ = await asyncio.wait({player, stop_wait}, return_when=asyncio.FIRST_COMPLETED)
    stop_wait.cancel()
    if player not in done:
        await service.stop()
    server.cancel()
    print("[ws] shutting down", flush=True)
    await player


def main():
    ap = argparse.ArgumentParser(description="Pianola player server (transport over WebSocket, output to MIDI)")
    ap.add_argument("--file", help="MIDI (.mid) or decoded JSON (.json) file to load at startup")
    ap.add_argument("--port", help="Substring to match MIDI output port")
    ap.add_argument("--channel", type=int, default=0, help="MIDI channel for output (0-15)")
    ap.add_argument("--volume", type=float, default=1.0, help="Initial volume 0..1")
    ap.add_argument("--paused", action="store_true", help="Load the startup file paused")
    ap.add_argument("--ws-host", default="127.0.0.1")
    ap.add_argument("--ws-port", type=int, default=8765)
    args = ap.parse_args()
    asyncio.run(_run_server(args))


if __name__ == "__main__":
    main()
