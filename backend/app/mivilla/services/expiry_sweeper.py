"""Grant expiry sweeper.

后台定时清理已过期的授权（expiration_date <= now）。
- 固定间隔运行（默认 10 秒），每次全量扫描
- 没有过期记录时不写入
- 单次清理失败只记录日志，下个周期继续
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from mivilla.core.config import settings
from mivilla.models.grant_schemas import GrantRecord
from mivilla.services.grant_store import GrantStore
from mivilla.utils.time import utc_now

logger = logging.getLogger(__name__)

ExpiredCallback = Callable[[list[GrantRecord]], None]


class ExpirySweeper:
    """授权过期清理器"""

    def __init__(
        self,
        store: GrantStore,
        *,
        interval: float | None = None,
        clock: Callable[[], datetime] = utc_now,
        on_expired: Optional[ExpiredCallback] = None,
    ) -> None:
        self.store = store
        self.interval = interval if interval is not None else settings.GRANT_SWEEP_INTERVAL_SECONDS
        self._clock = clock
        self._on_expired = on_expired
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def sweep_once(self) -> int:
        """执行一次清理，返回删除数量"""
        removed = self.store.remove_expired(self._clock())
        if not removed:
            logger.debug("Grant sweep: nothing expired")
            return 0

        logger.info(f"Grant sweep removed {len(removed)} expired grant(s)")
        for grant in removed:
            logger.info(f"Grant expired: tenant={grant.tenant_id} id={grant.id} unit={grant.unit}")
        if self._on_expired:
            self._on_expired(removed)
        return len(removed)

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="grant-expiry-sweeper", daemon=True)
        self._thread.start()
        logger.info(f"Grant sweeper started (interval={self.interval}s)")

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
            logger.info("Grant sweeper stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.sweep_once()
            except Exception as e:
                logger.exception(f"Grant sweep failed: {e}")
