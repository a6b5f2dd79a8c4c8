"""
poapbot.runtime — Process-scoped state
=======================================

One :class:`PoapBotRuntime` per process.  It owns every long-lived
collaborator (engine, Slack gateway, HTTP client, issuer, notifier,
evaluator) and the background tasks that evaluate reaction events.

The FastAPI lifespan builds it with :meth:`PoapBotRuntime.build`, stores it
on ``app.state.runtime``, and calls :meth:`close` on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import httpx

from poapbot.bot.gateway import SlackGateway
from poapbot.engine.evaluator import DeliveryEvaluator, DeliveryOutcome
from poapbot.engine.locks import KeyedLock
from poapbot.services.claim_service import ClaimLinkIssuer
from poapbot.services.email_service import EmailService
from poapbot.services.notification_service import Notifier

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from poapbot.config import PoapBotConfig
    from poapbot.engine.events import ReactionEvent

logger = logging.getLogger(__name__)

HTTP_TIMEOUT_SECONDS = 10


class PoapBotRuntime:
    def __init__(
        self,
        cfg: PoapBotConfig,
        engine: Engine,
        slack: SlackGateway,
        http: httpx.AsyncClient,
        issuer: ClaimLinkIssuer,
        email: EmailService,
    ) -> None:
        self.cfg = cfg
        self.engine = engine
        self.slack = slack
        self.http = http
        self.issuer = issuer
        self.email = email
        self.notifier = Notifier(email, slack)
        self.locks = KeyedLock()
        self.delivery_slots = asyncio.Semaphore(cfg.max_concurrent_deliveries)
        self.evaluator = DeliveryEvaluator(
            engine,
            slack,
            issuer,
            self.notifier,
            locks=self.locks,
            delivery_slots=self.delivery_slots,
        )
        self._tasks: set[asyncio.Task[DeliveryOutcome]] = set()

    @classmethod
    def build(cls, cfg: PoapBotConfig, engine: Engine) -> PoapBotRuntime:
        """Wire the runtime from config + environment secrets."""
        transport = httpx.AsyncHTTPTransport(retries=1)
        http = httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS, transport=transport)
        return cls(
            cfg,
            engine,
            SlackGateway.from_env(),
            http,
            ClaimLinkIssuer.from_env(cfg, http),
            EmailService.from_env(cfg),
        )

    @property
    def pending(self) -> int:
        """Number of reaction events still being evaluated."""
        return len(self._tasks)

    def submit(self, event: ReactionEvent) -> asyncio.Task[DeliveryOutcome]:
        """Schedule *event* for evaluation and return immediately."""
        task = asyncio.create_task(
            self.evaluator.evaluate(event),
            name=f"reaction:{event.channel_id}:{event.message_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def close(self) -> None:
        """Drain in-flight evaluations, then release the HTTP client."""
        if self._tasks:
            logger.info("Waiting for %d in-flight reaction event(s)", len(self._tasks))
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.http.aclose()
