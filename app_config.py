from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Optional

from dotenv import load_dotenv

DEFAULT_DATA_SOURCE = "data.xlsx"
DEFAULT_TEMPLATES_DIR = "templates"
DEFAULT_STORE_DIR = ".contract_store"
DEFAULT_HTTP_TIMEOUT_S = 30.0
DEFAULT_LOG_LEVEL = "INFO"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# key -> stripped value ("" when missing)
Reader = Callable[[str], str]


@dataclass(frozen=True)
class AppConfig:
    data_source: str
    templates_dir: Path
    store_dir: Path
    retain_portability: bool
    http_timeout_s: float
    log_level: str

    @property
    def data_source_is_url(self) -> bool:
        return is_url(self.data_source)


def is_url(source: str) -> bool:
    return (source or "").strip().lower().startswith(("http://", "https://"))


def _truthy(value: str, *, default: bool) -> bool:
    v = (value or "").strip().lower()
    if not v:
        return default
    return v not in {"0", "false", "no", "off"}


def _positive_float(value: str, *, default: float) -> float:
    try:
        f = float((value or "").strip())
    except ValueError:
        return default
    return f if f > 0 else default


def env_reader(environ: Optional[Mapping[str, str]] = None) -> Reader:
    env = os.environ if environ is None else environ

    def read(key: str) -> str:
        val = env.get(key, "")
        return val.strip() if isinstance(val, str) else ""

    return read


def load_app_config(read: Optional[Reader] = None, *, dotenv_path: Optional[Path] = None) -> AppConfig:
    """
    Build the app configuration from environment variables.

    `.env` in the working directory is loaded first (without overriding variables that are
    already set). The UI passes a reader that prefers Streamlit secrets over the environment.
    """
    if read is None:
        # Explicit path: dotenv's auto discovery can fail without a calling frame (stdin, -c).
        load_dotenv(dotenv_path=dotenv_path or (Path.cwd() / ".env"))
        read = env_reader()

    return AppConfig(
        data_source=read("CONTRACT_DATA_SOURCE") or DEFAULT_DATA_SOURCE,
        templates_dir=Path(read("CONTRACT_TEMPLATES_DIR") or DEFAULT_TEMPLATES_DIR),
        store_dir=Path(read("CONTRACT_STORE_DIR") or DEFAULT_STORE_DIR),
        retain_portability=_truthy(read("CONTRACT_RETAIN_PORTABILITY"), default=True),
        http_timeout_s=_positive_float(read("CONTRACT_HTTP_TIMEOUT_S"), default=DEFAULT_HTTP_TIMEOUT_S),
        log_level=(read("CONTRACT_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
    )


def configure_logging(level: str = DEFAULT_LOG_LEVEL) -> None:
    resolved = logging.getLevelName((level or DEFAULT_LOG_LEVEL).upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
