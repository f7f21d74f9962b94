"""Explicit wiring of the session, transport and queue services."""

from __future__ import annotations

from dataclasses import dataclass

from nightbot_sr.auth import AuthSession, TokenStore
from nightbot_sr.client import ApiTransport
from nightbot_sr.config import Config
from nightbot_sr.services.queue import QueueClient
from nightbot_sr.services.settings_store import SettingsStore
from nightbot_sr.services.sync import SyncCoordinator
from nightbot_sr.utils.events import EventBus
from nightbot_sr.utils.workers import Scheduler, WorkerPool


@dataclass
class NightbotContext:
    config: Config
    bus: EventBus
    tokens: TokenStore
    settings_store: SettingsStore
    auth: AuthSession
    transport: ApiTransport
    pool: WorkerPool
    scheduler: Scheduler
    queue: QueueClient
    sync: SyncCoordinator

    def close(self) -> None:
        """Cancel timers and loops, finish queued work, close HTTP clients."""
        self.sync.close()
        self.scheduler.shutdown()
        self.auth.close()
        self.pool.shutdown(wait=True)
        self.transport.close()


def build_context(config: Config, restore: bool = True) -> NightbotContext:
    """Construct every service once and hand each its collaborators.

    With ``restore`` a token saved by an earlier run is loaded into the session.
    """
    bus = EventBus()
    tokens = TokenStore()
    settings_store = SettingsStore(config.settings.settings_file)
    auth = AuthSession(config, tokens, bus, settings_store)
    transport = ApiTransport(config, tokens, bus)
    pool = WorkerPool(config.settings.max_workers)
    scheduler = Scheduler()
    queue = QueueClient(transport, pool, bus)
    sync = SyncCoordinator(config, queue, auth, settings_store, scheduler, bus)

    if restore:
        auth.restore()

    return NightbotContext(
        config=config,
        bus=bus,
        tokens=tokens,
        settings_store=settings_store,
        auth=auth,
        transport=transport,
        pool=pool,
        scheduler=scheduler,
        queue=queue,
        sync=sync,
    )
