from __future__ import annotations

import argparse
import asyncio
import signal
from typing import Optional

from pianola.decode import load_decoded
from pianola.player_server import PlayerService, serve_ws
from pianola.sinks import MidoSink, open_mido_output


async def run(path: str, port_filter: Optional[str], volume: float = 1.0, start: int = 0,
              paused: bool = False, print_metrics: bool = False, ws: bool = False, channel: int = 0) -> None:
    decoded = load_decoded(path)
    out = open_mido_output(port_filter)
    sink = MidoSink(out, channel=channel)
    service = PlayerService(sink, volume=volume)
    player = asyncio.create_task(service.run())

    state = await service.load_file(decoded, paused=paused)
    print(f"[player] {path}: {state['total']} actions", flush=True)
    if start > 0:
        await service.seek(start)

    loop = asyncio.get_running_loop()
    interrupted = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, interrupted.set)
        except NotImplementedError:
            pass

    tasks = []
    if ws:
        tasks.append(asyncio.create_task(serve_ws(service, "127.0.0.1", 8765)))

    async def metrics_printer():
        while True:
            await asyncio.sleep(1.0)
            m = service.get_metrics()
            s = service.get_state()
            print(f"[metrics] progress={s['cursor']}/{s['total']} fired={m.get('actions_fired', 0)} "
                  f"lateP95={m.get('latenessMsP95', 0)}ms lateP99={m.get('latenessMsP99', 0)}ms", flush=True)

    if print_metrics:
        tasks.append(asyncio.create_task(metrics_printer()))

    finished = asyncio.create_task(service.wait_finished())
    stop_wait = asyncio.create_task(interrupted.wait())
    await asyncio.wait({finished, stop_wait, player}, return_when=asyncio.FIRST_COMPLETED)
    for t in tasks + [finished, stop_wait]:
        t.cancel()
    if not player.done():
        # Releases anything still held, then ends the actor
        await service.stop()
    await player
    sink.panic()
    print("[player] done", flush=True)


def main():
    ap = argparse.ArgumentParser(description="Play a MIDI (.mid) or decoded JSON file to a MIDI output port")
    ap.add_argument("file", help="Path to .mid or decoded .json file")
    ap.add_argument("--port", help="Substring to match MIDI port")
    ap.add_argument("--channel", type=int, default=0, help="MIDI channel for output (0-15)")
    ap.add_argument("--volume", type=float, default=1.0, help="Volume multiplier 0..1 (clamped)")
    ap.add_argument("--start", type=int, default=0, help="Action index to start from")
    ap.add_argument("--paused", action="store_true", help="Load paused (useful with --ws)")
    ap.add_argument("--metrics", action="store_true", help="Print progress and timing metrics once per second")
    ap.add_argument("--ws", action="store_true", help="Start a local WS control server (ws://127.0.0.1:8765)")
    args = ap.parse_args()
    asyncio.run(run(
        args.file,
        args.port,
        volume=args.volume,
        start=args.start,
        paused=bool(args.paused),
        print_metrics=bool(args.metrics),
        ws=bool(args.ws),
        channel=args.channel,
    ))


if __name__ == "__main__":
    main()
