# leadflow/client/storage.py

"""
Хранилища состояния клиентской сессии (аналог localStorage):
ключи token, user, lastActivity.
"""

import json
import os


class MemoryStorage:
    """Хранилище в памяти; удобно для тестов и коротких скриптов."""

    def __init__(self, initial: dict | None = None):
        self.data = dict(initial or {})
        self.writes = 0

    def get(self, key: str, default=None):
        return self.data.get(key, default)

    def set(self, key: str, value):
        self.data[key] = value
        self.writes += 1

    def remove(self, key: str):
        self.data.pop(key, None)


class JsonFileStorage:
    """
    Долговременное хранилище в JSON файле: сессия переживает перезапуск клиента.
    Каждая запись переписывает файл целиком через временный файл.
    """

    def __init__(self, path: str):
        self.path = path

    def _read(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError:
                return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False)
        os.replace(tmp_path, self.path)

    def get(self, key: str, default=None):
        return self._read().get(key, default)

    def set(self, key: str, value):
        data = self._read()
        data[key] = value
        self._write(data)

    def remove(self, key: str):
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)
