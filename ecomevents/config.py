"""Runtime settings read from the environment (and a .env file, if present)."""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

DEFAULT_PUBLISH_INTERVAL_SEC = 5.0
DEFAULT_PAYMENT_DELAY_SEC = 2.0
DEFAULT_PAYMENT_SUCCESS_RATE = 0.9
DEFAULT_LOW_STOCK_THRESHOLD = 10
DEFAULT_STOCK_DELTA_MIN = -10
DEFAULT_STOCK_DELTA_MAX = 20
DEFAULT_STATUS_INTERVAL_SEC = 30.0
DEFAULT_HEARTBEAT_INTERVAL_SEC = 30.0
DEFAULT_SAMPLE_TOPIC = "sample/topic"
DEFAULT_SAMPLE_COUNT = 10


@dataclass
class Settings:
    """Everything the roles and the broker server need to know at startup."""

    broker_url: Optional[str] = None
    api_key: Optional[str] = None
    publish_interval_sec: float = DEFAULT_PUBLISH_INTERVAL_SEC
    payment_delay_sec: float = DEFAULT_PAYMENT_DELAY_SEC
    payment_success_rate: float = DEFAULT_PAYMENT_SUCCESS_RATE
    low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD
    stock_delta_min: int = DEFAULT_STOCK_DELTA_MIN
    stock_delta_max: int = DEFAULT_STOCK_DELTA_MAX
    status_interval_sec: float = DEFAULT_STATUS_INTERVAL_SEC
    heartbeat_interval_sec: float = DEFAULT_HEARTBEAT_INTERVAL_SEC
    sample_topic: str = DEFAULT_SAMPLE_TOPIC
    sample_count: int = DEFAULT_SAMPLE_COUNT


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    try:
        return float(env.get(name, default))
    except (ValueError, TypeError):
        return default


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    try:
        return int(env.get(name, default))
    except (ValueError, TypeError):
        return default


def _str(env: Mapping[str, str], name: str) -> Optional[str]:
    return (env.get(name) or "").strip() or None


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from env (defaults to os.environ after load_dotenv()).
    Unparseable numbers fall back to their defaults.
    """
    if env is None:
        load_dotenv()
        env = os.environ
    rate = _float(env, "PAYMENT_SUCCESS_RATE", DEFAULT_PAYMENT_SUCCESS_RATE)
    if not 0.0 <= rate <= 1.0:
        rate = DEFAULT_PAYMENT_SUCCESS_RATE
    delta_min = _int(env, "STOCK_DELTA_MIN", DEFAULT_STOCK_DELTA_MIN)
    delta_max = _int(env, "STOCK_DELTA_MAX", DEFAULT_STOCK_DELTA_MAX)
    if delta_min > delta_max:
        delta_min, delta_max = DEFAULT_STOCK_DELTA_MIN, DEFAULT_STOCK_DELTA_MAX
    return Settings(
        broker_url=_str(env, "BROKER_URL"),
        api_key=_str(env, "API_KEY"),
        publish_interval_sec=_float(env, "PUBLISH_INTERVAL_SEC", DEFAULT_PUBLISH_INTERVAL_SEC),
        payment_delay_sec=_float(env, "PAYMENT_DELAY_SEC", DEFAULT_PAYMENT_DELAY_SEC),
        payment_success_rate=rate,
        low_stock_threshold=_int(env, "LOW_STOCK_THRESHOLD", DEFAULT_LOW_STOCK_THRESHOLD),
        stock_delta_min=delta_min,
        stock_delta_max=delta_max,
        status_interval_sec=_float(env, "STATUS_INTERVAL_SEC", DEFAULT_STATUS_INTERVAL_SEC),
        heartbeat_interval_sec=_float(env, "HEARTBEAT_INTERVAL_SEC", DEFAULT_HEARTBEAT_INTERVAL_SEC),
        sample_topic=_str(env, "SAMPLE_TOPIC") or DEFAULT_SAMPLE_TOPIC,
        sample_count=_int(env, "SAMPLE_COUNT", DEFAULT_SAMPLE_COUNT),
    )
