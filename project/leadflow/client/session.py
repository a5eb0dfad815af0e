# leadflow/client/session.py

"""
Клиентский контроллер сессии LeadFlow.

Отвечает за:
  - восстановление входа после перезапуска клиента (token + lastActivity в хранилище),
  - выход по неактивности (одноразовый idle-таймер + периодическая проверка),
  - запись отметки активности в хранилище не чаще раза в throttle-окно,
  - heartbeat на сервер (POST /users/ping), только если пользователь был активен.

Всё работает в одном event loop asyncio: таймеры и сетевые вызовы не блокируют
друг друга, а общий источник правды: self.last_activity.
Контроллер создаётся на сессию: start() при входе, stop() при выходе.
"""

import asyncio
import enum
import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from leadflow.utils.log import Log

ACTIVITY_EVENTS = ("mousedown", "keydown", "scroll", "touchstart", "mousemove")
INACTIVITY_MESSAGE = "You have been logged out due to inactivity."


class SessionState(str, enum.Enum):
    CHECKING = "checking"
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class SessionTimings:
    """Все интервалы в секундах."""
    idle_timeout: float = 12 * 60 * 60
    heartbeat_interval: float = 5 * 60
    persist_throttle: float = 5
    expiry_check_interval: float = 60


class SessionController:
    def __init__(
        self,
        http: httpx.AsyncClient,
        storage,
        timings: Optional[SessionTimings] = None,
        clock: Callable[[], float] = time.time,
        on_expired: Optional[Callable[[str], None]] = None,
        log: Optional[Log] = None,
    ):
        self.http = http
        self.storage = storage
        self.timings = timings or SessionTimings()
        self.clock = clock
        self.on_expired = on_expired
        self.log = log or Log()

        self.state = SessionState.CHECKING
        self.token: Optional[str] = None
        self.user: Optional[dict] = None
        self.last_activity: Optional[float] = None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: list[asyncio.Task] = []
        self._idle_handle: Optional[asyncio.TimerHandle] = None
        self._throttle_handle: Optional[asyncio.TimerHandle] = None
        self._pending_write = False

    @property
    def authenticated(self) -> bool:
        return self.state == SessionState.AUTHENTICATED

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    # ==========================================================
    # ВХОД / ВОССТАНОВЛЕНИЕ / ВЫХОД
    # ==========================================================
    async def restore(self) -> SessionState:
        """
        checking -> authenticated, если в хранилище есть токен и последняя
        активность моложе idle_timeout; иначе устаревшая сессия сразу стирается.
        """
        self.state = SessionState.CHECKING
        token = self.storage.get("token")
        last = self.storage.get("lastActivity")

        fresh = False
        if token and last is not None:
            try:
                fresh = self.clock() - float(last) <= self.timings.idle_timeout
            except (TypeError, ValueError):
                fresh = False

        if not fresh:
            self._clear_storage()
            self.state = SessionState.ANONYMOUS
            self.log.log_info_sync("session", "Сохранённой сессии нет или она устарела", is_console=False)
            return self.state

        self.token = token
        self.user = self.storage.get("user")
        self.last_activity = float(last)
        self.state = SessionState.AUTHENTICATED
        self.start()
        self.log.log_info_sync("session", "Сессия восстановлена", is_console=False)
        return self.state

    async def login(self, email: str, password: str) -> dict:
        """
        POST /auth/login. Ошибки входа пробрасываются (httpx.HTTPStatusError).
        """
        response = await self.http.post("/auth/login", json={"email": email, "password": password})
        response.raise_for_status()
        data = response.json()

        self.token = data["token"]
        self.user = data
        self.last_activity = self.clock()
        self.storage.set("token", self.token)
        self.storage.set("user", data)
        self.storage.set("lastActivity", self.last_activity)

        self.state = SessionState.AUTHENTICATED
        self.start()
        self.log.log_info_sync("session", "Вход выполнен", {"user_id": data.get("id")}, is_console=False)
        return data

    def logout(self, reason: Optional[str] = None):
        """
        Явный выход или выход по таймауту (reason задан).
        Останавливает таймеры и стирает сохранённые данные.
        """
        self.stop()
        self._clear_storage()
        self.token = None
        self.user = None
        self.state = SessionState.ANONYMOUS

        self.log.log_info_sync("session", "Выход", {"reason": reason or "user"}, is_console=False)
        if reason and self.on_expired:
            self.on_expired(reason)

    def expire(self):
        self.logout(reason=INACTIVITY_MESSAGE)

    def _clear_storage(self):
        for key in ("token", "user", "lastActivity"):
            self.storage.remove(key)

    # ==========================================================
    # ЖИЗНЕННЫЙ ЦИКЛ ТАЙМЕРОВ
    # ==========================================================
    def start(self):
        """Запускает idle-таймер, периодическую проверку и heartbeat."""
        if self._tasks:
            return
        self._loop = asyncio.get_running_loop()
        self._arm_idle_timer()
        self._tasks = [
            self._loop.create_task(self._every(self.timings.expiry_check_interval, self.check_expiry)),
            self._loop.create_task(self._every(self.timings.heartbeat_interval, self.send_heartbeat)),
        ]

    def stop(self):
        """Снимает все таймеры и задачи; отложенная запись активности сбрасывается сразу."""
        for task in self._tasks:
            task.cancel()
        self._tasks = []

        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None

        if self._throttle_handle is not None:
            self._throttle_handle.cancel()
            self._throttle_handle = None
        if self._pending_write and self.authenticated:
            self._write_activity()
        self._pending_write = False

    async def _every(self, interval: float, callback):
        while True:
            await asyncio.sleep(interval)
            result = callback()
            if asyncio.iscoroutine(result):
                await result

    # ==========================================================
    # АКТИВНОСТЬ
    # ==========================================================
    def handle_event(self, name: str) -> bool:
        """Обработчик событий ввода; учитываются только ACTIVITY_EVENTS."""
        if name not in ACTIVITY_EVENTS or not self.authenticated:
            return False
        self.record_activity()
        return True

    def record_activity(self):
        self.last_activity = self.clock()
        self._arm_idle_timer()
        self._persist_activity()

    def _persist_activity(self):
        """
        Не чаще одной записи за persist_throttle.
        Запрос внутри открытого окна откладывается до его конца, а не теряется.
        """
        if self._loop is None:
            self._write_activity()
            return
        if self._throttle_handle is None:
            self._write_activity()
            self._throttle_handle = self._loop.call_later(
                self.timings.persist_throttle, self._close_throttle_window
            )
        else:
            self._pending_write = True

    def _close_throttle_window(self):
        self._throttle_handle = None
        if self._pending_write:
            self._pending_write = False
            self._persist_activity()

    def _write_activity(self):
        self.storage.set("lastActivity", self.last_activity)

    # ==========================================================
    # ТАЙМАУТ
    # ==========================================================
    def _arm_idle_timer(self, delay: Optional[float] = None):
        if self._loop is None:
            return
        if self._idle_handle is not None:
            self._idle_handle.cancel()
        self._idle_handle = self._loop.call_later(
            self.timings.idle_timeout if delay is None else delay, self._on_idle
        )

    def _on_idle(self):
        self._idle_handle = None
        if not self.authenticated:
            return
        # тот же источник правды, что и у heartbeat
        idle_for = self.clock() - (self.last_activity or 0)
        if idle_for >= self.timings.idle_timeout:
            self.log.log_info_sync("session", "Сработал idle-таймер", is_console=False)
            self.expire()
        else:
            self._arm_idle_timer(self.timings.idle_timeout - idle_for)

    def check_expiry(self) -> bool:
        """Периодическая проверка; True, если сессия была завершена."""
        if not self.authenticated or self.last_activity is None:
            return False
        if self.clock() - self.last_activity > self.timings.idle_timeout:
            self.log.log_info_sync("session", "Сессия устарела при проверке", is_console=False)
            self.expire()
            return True
        return False

    # ==========================================================
    # HEARTBEAT
    # ==========================================================
    async def send_heartbeat(self) -> bool:
        """
        Пинг сервера, если активность была в пределах heartbeat_interval.
        Сетевые и HTTP ошибки только логируются: сессию они не прерывают.
        """
        if not self.authenticated or self.last_activity is None:
            return False
        if self.clock() - self.last_activity > self.timings.heartbeat_interval:
            return False

        try:
            response = await self.http.post(
                "/users/ping", headers={"Authorization": f"Bearer {self.token}"}
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            self.log.log_warning_sync("session", f"Heartbeat не отправлен: {e}", is_console=False)
            return False
        return True
