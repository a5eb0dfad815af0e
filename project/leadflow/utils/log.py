# leadflow/utils/log.py
# Логирование событий

import os
import datetime
import enum
import logging
from aiologger import Logger
from aiologger.handlers.files import AsyncFileHandler


class Log:
    def __init__(self, log_dir: str | None = None, log_print: bool | None = None):
        # настройки читаем из окружения, чтобы Log работал и до загрузки Settings
        self.log_dir = log_dir or os.getenv("LOG_DIR", "leadflow/log")
        os.makedirs(self.log_dir, exist_ok=True)
        self.handlers = {}
        if log_print is None:
            log_print = os.getenv("LOG_PRINT", "0").lower() in ("1", "true", "yes")
        self.log_print = log_print

    def build_log_path(self, now: datetime.datetime) -> str:
        """
        Формируем путь к лог-файлу:
        leadflow/log/2025/10/04.log
        """
        base_dir = os.path.join(self.log_dir, f"{now.year}", f"{now:%m}")
        os.makedirs(base_dir, exist_ok=True)
        return os.path.join(base_dir, f"{now:%d}.log")

    async def get_logger(self, target: str, now: datetime.datetime) -> Logger:
        """Асинхронный логгер для target; пересоздаётся при смене дня."""
        log_path = self.build_log_path(now)

        if target not in self.handlers or self.handlers[target]["path"] != log_path:
            handler = AsyncFileHandler(filename=log_path, mode="a", encoding="utf-8")
            target_logger = Logger(name=f"leadflow_{target}")
            target_logger.add_handler(handler)

            if target in self.handlers:
                await self._close(self.handlers[target]["logger"])

            self.handlers[target] = {
                "path": log_path,
                "logger": target_logger,
            }

        return self.handlers[target]["logger"]

    def format_line(self, target: str, message: str, data: dict | None, now: datetime.datetime) -> str:
        line = f"{now:%d.%m.%Y %H:%M:%S} {target}: {message}"
        if data:
            line += f": {self.safe_serialize(data)}"
        return line

    # Асинхронное
    async def log_info(
        self,
        target: str = "",
        message: str = "",
        data: dict | None = None,
        is_console: bool = None,
    ):
        now = datetime.datetime.now()
        line = self.format_line(target, message, data, now)

        target_logger = await self.get_logger(target, now)
        await target_logger.info(line)

        should_print = self.log_print if is_console is None else is_console
        if should_print:
            print(line)

    async def log_warning(self, target: str = "", message: str = "", data: dict | None = None, is_console: bool = None):
        await self.log_info(target, f"WARNING: {message}", data, is_console)

    async def log_error(
        self, target: str = "", message: str = "", data: dict | None = None, is_console: bool = True
    ):
        await self.log_info(target, f"ERROR: {message}", data, is_console)

    # Синхронное
    def log_info_sync(
        self, target: str = "", message: str = "", data: dict | None = None, is_console: bool = None
    ):
        now = datetime.datetime.now()
        log_path = self.build_log_path(now)
        line = self.format_line(target, message, data, now)

        logger = logging.getLogger(f"leadflow_sync_{target}")
        logger.setLevel(logging.INFO)
        logger.propagate = False

        # при смене дня или каталога меняем файл
        current = logger.handlers[0] if logger.handlers else None
        if current is None or getattr(current, "baseFilename", None) != os.path.abspath(log_path):
            if current is not None:
                logger.removeHandler(current)
                current.close()
            handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
            handler.setFormatter(logging.Formatter("%(message)s"))
            logger.addHandler(handler)

        logger.info(line)

        should_print = self.log_print if is_console is None else is_console
        if should_print:
            print(line)

    def log_warning_sync(self, target: str = "", message: str = "", data: dict | None = None, is_console: bool = None):
        self.log_info_sync(target, f"WARNING: {message}", data, is_console)

    def log_error_sync(
        self, target: str = "", message: str = "", data: dict | None = None, is_console: bool = None
    ):
        self.log_info_sync(target, f"ERROR: {message}", data, is_console)

    def safe_serialize(self, obj):
        """
        Преобразуем объект в сериализуемый вид для лога:
        - dict, list, tuple рекурсивно
        - Enum -> значение, datetime/date -> ISO строка
        - Pydantic модели через model_dump
        - ORM объекты через публичные атрибуты (пароль не выводим)
        - любые несериализуемые объекты → строка с типом
        """
        if obj is None:
            return None
        elif isinstance(obj, enum.Enum):
            return obj.value
        elif isinstance(obj, (str, int, float, bool)):
            return obj
        elif isinstance(obj, (datetime.datetime, datetime.date)):
            return obj.isoformat()
        elif isinstance(obj, dict):
            return {k: self.safe_serialize(v) for k, v in obj.items() if k != "password"}
        elif isinstance(obj, (list, tuple, set, frozenset)):
            return [self.safe_serialize(v) for v in obj]
        elif hasattr(obj, "model_dump"):  # Pydantic
            return self.safe_serialize(obj.model_dump())
        elif hasattr(obj, "__table__"):  # SQLAlchemy: только колонки, без связей
            return {
                c.name: self.safe_serialize(getattr(obj, c.key, None))
                for c in obj.__table__.columns
                if c.name != "password"
            }
        elif hasattr(obj, "__dict__"):
            # игнорируем приватные атрибуты
            return {k: self.safe_serialize(v) for k, v in vars(obj).items() if not k.startswith("_")}
        else:
            # для всего остального выводим тип объекта
            return f"<{type(obj).__name__}>"

    async def _close(self, logger: Logger):
        try:
            await logger.shutdown()
        except Exception as e:
            self.log_error_sync("log", f"Не удалось закрыть логгер: {e}", is_console=False)

    async def shutdown(self):
        for h in list(self.handlers.values()):
            await self._close(h["logger"])
        self.handlers = {}
