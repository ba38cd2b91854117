# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Worker process: ``python -m relikit.worker [config.json]``.

Builds the runtime from config (file, then RELIKIT_* env) and runs the three
queue loops until SIGINT/SIGTERM.
"""

import asyncio
import signal
import sys

from ..core.config import AppConfig
from ..core.log import bind_context, configure_from_env, get_logger
from ..runtime import build_runtime

log = get_logger("worker.main")


def _install_signal_handlers(loop: asyncio.AbstractEventLoop, stop) -> None:
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop)
        except NotImplementedError:
            log.debug("worker.signal.unsupported", event="worker.signal.unsupported", signal=sig.name)


async def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    configure_from_env()
    bind_context(role="worker")
    cfg = AppConfig.load(argv[0] if argv else None)
    rt = await build_runtime(cfg)
    _install_signal_handlers(asyncio.get_running_loop(), rt.worker.request_stop)
    try:
        await rt.worker.start()
        await rt.worker.wait_stopped()
    finally:
        await rt.close()
    log.info("worker.exit", event="worker.exit", stats=rt.worker.snapshot())
    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
