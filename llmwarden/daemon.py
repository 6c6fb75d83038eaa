"""
Main daemon entry point: starts the kopf operator and the webhook server.

Runs as: python -m llmwarden.daemon

Subsystems:
- kopf operator (LLMAccess and LLMProvider handlers, timers, fan-out)
- Admission webhook server (FastAPI on port 9443)
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

from llmwarden import __version__
from llmwarden.config import Config, get_config
from llmwarden.context import Context
from llmwarden.controller.operator import build_memo, build_registry, run_operator
from llmwarden.eso.v1beta1 import V1Beta1Adapter
from llmwarden.events import EventRecorder
from llmwarden.kube.client import KubeClient, load_kube_config
from llmwarden.metrics import Metrics
from llmwarden.webhook.app import serve_webhook

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


async def _wait_for_signal(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop.set)
    await stop.wait()
    logger.info("Received shutdown signal")


async def main(
    config: Config | None = None,
    *,
    controller: bool = True,
    webhook: bool = True,
) -> None:
    """Start the selected subsystems and run until one of them stops."""
    config = config or get_config()
    configure_logging(config.log_level)
    logger.info("Starting llmwarden %s...", __version__)
    logger.info("Watch namespace: %s", config.controller.watch_namespace or "all")
    logger.info("Webhook: %s", f"{config.webhook.host}:{config.webhook.port}" if webhook else "disabled")

    load_kube_config(config.kubeconfig or None)
    client = KubeClient()
    metrics = Metrics()
    ctx = Context(metrics=metrics, recorder=EventRecorder())

    stop = asyncio.Event()
    tasks = [asyncio.create_task(_wait_for_signal(stop), name="signals")]
    ready = None
    if controller:
        adapter = V1Beta1Adapter()
        ready_flag = asyncio.Event()
        ready = ready_flag.is_set
        operator = run_operator(
            build_registry(config.controller, adapter),
            build_memo(client, ctx, config.controller, adapter),
            config.controller,
            ready_flag=ready_flag,
            stop_flag=stop,
        )
        tasks.append(asyncio.create_task(operator, name="controller"))
    if webhook:
        tasks.append(
            asyncio.create_task(serve_webhook(config.webhook, client, ctx, ready=ready), name="webhook")
        )

    logger.info("All subsystems started")

    done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)

    for task in done:
        if task.exception():
            logger.error("Task %s failed: %s", task.get_name(), task.exception())
        else:
            logger.info("Task %s completed", task.get_name())

    logger.info("Shutting down subsystems...")
    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)
    logger.info("llmwarden stopped")


def run(*, controller: bool = True, webhook: bool = True) -> None:
    """Entry point for python -m llmwarden.daemon"""
    try:
        asyncio.run(main(controller=controller, webhook=webhook))
    except KeyboardInterrupt:
        pass
    except Exception as e:
        logger.error("llmwarden crashed: %s", e, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    run()
