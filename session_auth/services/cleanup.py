# session_auth/services/cleanup.py
import asyncio
from contextlib import suppress
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from loguru import logger

from session_auth.core.clock import Clock, utc_now
from session_auth.core.config import Settings
from session_auth.crud.base import FamilyRegistry, RefreshStore


@dataclass(frozen=True)
class SweepReport:
    expired_tokens: int
    pruned_blacklist: int
    pruned_families: int


class CleanupSweep:
    """
    Tarefa periódica que remove registros expirados.

    Entradas da blacklist e famílias só são mantidas por refresh TTL + skew:
    detecção de reuso só faz sentido enquanto um token poderia estar vivo.
    """

    def __init__(
        self,
        settings: Settings,
        store: RefreshStore,
        families: FamilyRegistry,
        clock: Clock = utc_now,
    ):
        self._store = store
        self._families = families
        self._clock = clock
        self._interval = settings.CLEANUP_INTERVAL_SECONDS
        self._retention = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS) + timedelta(
            seconds=settings.CLOCK_SKEW_SECONDS
        )
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def retention_cutoff(self, now: datetime) -> datetime:
        return now - self._retention

    async def run_once(self, now: Optional[datetime] = None) -> SweepReport:
        now = now or self._clock()
        cutoff = self.retention_cutoff(now)
        # Ordem importa: registros expirados saem antes das famílias que referenciam
        expired = await self._store.purge_expired(now)
        pruned_blacklist = await self._store.prune_blacklist(cutoff)
        pruned_families = await self._families.purge_inactive(cutoff)
        report = SweepReport(expired, pruned_blacklist, pruned_families)
        if expired or pruned_blacklist or pruned_families:
            logger.info(
                f"Cleanup: {expired} refresh token(s) expirado(s), "
                f"{pruned_blacklist} entrada(s) de blacklist, {pruned_families} família(s) removida(s)."
            )
        return report

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.run_once()
            except Exception as e:
                # Uma passada com falha não derruba a tarefa; a próxima tenta de novo
                logger.error(f"Erro no cleanup sweep: {e}")

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="session_auth.cleanup_sweep")
        logger.info(f"Cleanup sweep iniciado (intervalo {self._interval}s).")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        logger.info("Cleanup sweep parado.")
