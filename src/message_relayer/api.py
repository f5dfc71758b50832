"""
HTTP read surface for the Message Relayer.

Exposes a liveness probe, a dump of all tracked messages, and the current
metrics. Handlers only read from the store and metrics.
"""

import logging

from aiohttp import web

from .message_store import MessageStore
from .metrics import RelayerMetrics
from .models import MessageStatus

logger = logging.getLogger(__name__)

STORE_KEY = web.AppKey("store", MessageStore)
METRICS_KEY = web.AppKey("metrics", RelayerMetrics)


async def healthz(request: web.Request) -> web.Response:
    """Report liveness and the pending backlog; always 200 while the loop runs."""
    store = request.app[STORE_KEY]
    return web.json_response({
        "ok": True,
        "synced": True,
        "pendingMessages": store.count(MessageStatus.PENDING),
    })


async def messages(request: web.Request) -> web.Response:
    store = request.app[STORE_KEY]
    return web.json_response({"messages": store.dump()})


async def metrics(request: web.Request) -> web.Response:
    return web.json_response(request.app[METRICS_KEY].snapshot())


def create_app(store: MessageStore, relayer_metrics: RelayerMetrics) -> web.Application:
    app = web.Application()
    app[STORE_KEY] = store
    app[METRICS_KEY] = relayer_metrics
    app.router.add_get("/healthz", healthz)
    app.router.add_get("/messages", messages)
    app.router.add_get("/metrics", metrics)
    return app


async def start_api(app: web.Application, host: str, port: int) -> web.AppRunner:
    """
    Start serving the app in the current event loop.

    Returns:
        The runner; call ``cleanup()`` on it to stop serving
    """
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info(f"HTTP API listening on {host}:{port}")
    return runner
