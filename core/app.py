import asyncio
import signal

from dotenv import load_dotenv

from runtime import version
from services.external.prober import ExternalStatusProber
from services.liveness_api import LivenessApiServer
from services.youtube.resolver import LivenessResolver
from shared.config.liveness import LivenessConfig, load_liveness_config
from shared.logging.logger import get_logger
from shared.runtime.quotas import QuotaTracker
from shared.runtime.ttl_cache import TTLCache

log = get_logger("core.app")


def build_server(config: LivenessConfig) -> LivenessApiServer:
    """
    Wire caches, quota tracking, resolver and prober into the API server.

    Caches are created here (process start) and injected; nothing below
    holds module-level state.
    """
    batch_cache = TTLCache(name="batch")
    last_good_cache = TTLCache(name="last_known_good")
    quota = QuotaTracker(platform="youtube", policy=config.youtube.quota)

    resolver = LivenessResolver(
        config.youtube,
        batch_cache=batch_cache,
        last_good_cache=last_good_cache,
        quota=quota,
        batch_deadline=config.api.request_deadline,
    )
    prober = ExternalStatusProber(
        config.external,
        cache=batch_cache,
        concurrency=config.youtube.concurrency,
        batch_deadline=config.api.request_deadline,
    )
    return LivenessApiServer(
        config.api,
        resolver=resolver,
        prober=prober,
        quota=quota,
    )


async def main(stop_event: asyncio.Event):
    # --------------------------------------------------
    # ENV + CONFIG
    # --------------------------------------------------
    load_dotenv()
    log.info("Environment variables loaded")
    log.info(f"{version.as_string()} booting")

    config = load_liveness_config()

    # --------------------------------------------------
    # API SERVER
    # --------------------------------------------------
    server = build_server(config)
    server.start()

    # --------------------------------------------------
    # BLOCK UNTIL SHUTDOWN SIGNAL
    # --------------------------------------------------
    await stop_event.wait()

    log.info("Shutdown initiated")
    try:
        server.stop()
    except Exception as e:
        log.warning(f"Server shutdown error ignored: {e}")

    log.info("LiveWall stopped")


# ----------------------------------------------------------------------
# SIGNAL HANDLING
# ----------------------------------------------------------------------

def _install_signal_handlers(
    loop: asyncio.AbstractEventLoop,
    stop_event: asyncio.Event,
):
    """
    Uses signal.signal + asyncio.Event so Ctrl+C unwinds cleanly on
    platforms without loop.add_signal_handler.
    """

    def _handler(signum, frame):
        loop.call_soon_threadsafe(stop_event.set)

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


# ----------------------------------------------------------------------
# ENTRYPOINT
# ----------------------------------------------------------------------

def run():
    stop_event = asyncio.Event()

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    _install_signal_handlers(loop, stop_event)

    try:
        loop.run_until_complete(main(stop_event))
    except KeyboardInterrupt:
        log.info("KeyboardInterrupt received; shutdown initiated")
    finally:
        loop.close()


if __name__ == "__main__":
    run()
