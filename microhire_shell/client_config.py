from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional


logger = logging.getLogger(__name__)

CONFIG_FILENAME = "microhire-client.json"
DEFAULT_API_URL = "http://localhost:5000/api"


def default_config_path() -> str:
    base_dir = os.environ.get("MICROHIRE_HOME") or os.path.join(os.path.expanduser("~"), ".microhire")
    return os.path.join(base_dir, CONFIG_FILENAME)


def derive_socket_url(api_url: str) -> str:
    """实时通道默认与 API 同源，去掉末尾的 /api 前缀。"""

    url = api_url.rstrip("/")
    if url.endswith("/api"):
        url = url[: -len("/api")]
    return url


@dataclass
class ClientConfig:
    api_url: str = DEFAULT_API_URL
    socket_url: Optional[str] = None
    home: Optional[str] = None
    request_timeout: float = 10.0
    socket_timeout: float = 10.0
    reconnection_attempts: int = 5
    reconnection_delay: float = 2.0
    health_check_interval: float = 30.0

    def __post_init__(self) -> None:
        if not self.socket_url:
            self.socket_url = derive_socket_url(self.api_url)


def _read_json(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, dict) else {}
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as exc:
        logger.warning("ignoring unreadable client config %s: %s", path, exc)
        return {}


def load_config(
    path: str = "",
    env: Optional[Dict[str, str]] = None,
    api_url: Optional[str] = None,
) -> ClientConfig:
    """读取 JSON 配置，再用环境变量覆盖，最后应用命令行给出的 api_url；未知键忽略。

    socket_url 只在文件和环境变量都没给出时才由最终的 api_url 推导。
    """

    env = os.environ if env is None else env
    p = (path or "").strip() or default_config_path()
    data = _read_json(p)

    known = {f.name for f in fields(ClientConfig)}
    values = {k: v for k, v in data.items() if k in known}

    if env.get("MICROHIRE_API_URL"):
        values["api_url"] = env["MICROHIRE_API_URL"]
    if env.get("MICROHIRE_SOCKET_URL"):
        values["socket_url"] = env["MICROHIRE_SOCKET_URL"]
    if env.get("MICROHIRE_HOME"):
        values["home"] = env["MICROHIRE_HOME"]
    if api_url:
        values["api_url"] = api_url

    return ClientConfig(**values)


__all__ = ["ClientConfig", "default_config_path", "derive_socket_url", "load_config"]
