"""本地凭据存储（按 API 源隔离）。

- 路径默认：`$MICROHIRE_HOME/<origin>/credentials.json`，未设置时为 `~/.microhire`；
  目录不可写时回退到系统临时目录（可通过初始化参数覆盖）。
- 两个逻辑键：token（不透明字符串）与 fallback_user（本地模式身份记录），总是一起清除。
- 不做业务校验：
  - 文件不存在 → load() 返回空凭据
  - 解析失败 → ValueError（视为损坏，由调用方清除）
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlsplit


logger = logging.getLogger(__name__)

TOKEN_KEY = "token"
FALLBACK_USER_KEY = "fallback_user"


def _dir_writable(path: str) -> bool:
    try:
        os.makedirs(path, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            dir=path,
            prefix=".microhire_write_test_",
            suffix=".tmp",
            delete=True,
        ) as f:
            f.write(b"ok")
            f.flush()
        return True
    except OSError:
        return False


def origin_key(api_url: str) -> str:
    """scheme://host:port → 可作目录名的片段，例如 http_localhost_5000。"""

    parts = urlsplit(api_url)
    scheme = parts.scheme or "http"
    host = parts.hostname or "localhost"
    port = parts.port or (443 if scheme == "https" else 80)
    return re.sub(r"[^A-Za-z0-9_.-]", "_", f"{scheme}_{host}_{port}")


def default_store_path(api_url: str, home: Optional[str] = None) -> str:
    base = home or os.environ.get("MICROHIRE_HOME") or os.path.join(os.path.expanduser("~"), ".microhire")
    preferred_dir = os.path.join(base, origin_key(api_url))
    if _dir_writable(preferred_dir):
        return os.path.join(preferred_dir, "credentials.json")
    fallback_dir = os.path.join(tempfile.gettempdir(), "microhire", origin_key(api_url))
    return os.path.join(fallback_dir, "credentials.json")


@dataclass(frozen=True)
class StoredCredentials:
    token: Optional[str] = None
    fallback_user: Optional[Dict[str, Any]] = None

    @property
    def empty(self) -> bool:
        return self.token is None and self.fallback_user is None


class CredentialStore:
    def __init__(self, path: str) -> None:
        self.path = path

    # --- Public API ---
    def load(self) -> StoredCredentials:
        if not os.path.exists(self.path):
            return StoredCredentials()

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                content = f.read()
        except OSError as exc:
            raise ValueError(f"failed to read credential file: {exc}") from exc

        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            raise ValueError("credential file is not valid JSON") from exc
        if not isinstance(data, dict):
            raise ValueError("credential file must hold an object")

        token = data.get(TOKEN_KEY)
        fallback_user = data.get(FALLBACK_USER_KEY)
        return StoredCredentials(
            token=token if isinstance(token, str) and token else None,
            fallback_user=fallback_user if isinstance(fallback_user, dict) else None,
        )

    def save(self, token: str, fallback_user: Optional[Dict[str, Any]] = None) -> None:
        """整体覆盖写入；未传 fallback_user 即清除旧的本地身份缓存。"""

        payload: Dict[str, Any] = {TOKEN_KEY: token}
        if fallback_user is not None:
            payload[FALLBACK_USER_KEY] = fallback_user

        parent = os.path.dirname(self.path) or "."
        os.makedirs(parent, exist_ok=True)
        content = json.dumps(payload, ensure_ascii=False)

        # 原子写入：避免读到被截断的半截 JSON 导致误判损坏。
        tmp_fd, tmp_path = tempfile.mkstemp(prefix=".microhire_credentials_", suffix=".tmp", dir=parent)
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as exc:
            logger.error("failed to write credential file %s: %s", self.path, exc)
            raise
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    def clear(self) -> None:
        try:
            os.remove(self.path)
        except FileNotFoundError:
            return


__all__ = ["CredentialStore", "StoredCredentials", "default_store_path", "origin_key"]
