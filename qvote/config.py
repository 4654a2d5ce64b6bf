"""Protocol configuration.

Defaults match the reference deployment; each value can be overridden from the
environment (QVOTE_CREDIT_BUDGET, QVOTE_SLOT_COUNT, QVOTE_SERVER_URL).
"""

from dataclasses import dataclass
from typing import Mapping, Optional
import os


DEFAULT_CREDIT_BUDGET = 100
DEFAULT_SLOT_COUNT = 10_000
DEFAULT_SERVER_URL = "http://127.0.0.1:5000"


@dataclass(frozen=True)
class ProtocolConfig:
    """Tunable protocol parameters

    Attributes
    - credit_budget: quadratic credits each voter may spend (1 means one
      vote per option)
    - slot_count: length of the VoteHolder; larger values make slot
      collisions rarer at the cost of longer masking passes
    - server_url: base URL of the reference transport server
    """

    credit_budget: int = DEFAULT_CREDIT_BUDGET
    slot_count: int = DEFAULT_SLOT_COUNT
    server_url: str = DEFAULT_SERVER_URL


def _positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < 1:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def load_config(env: Optional[Mapping[str, str]] = None) -> ProtocolConfig:
    """Build a ProtocolConfig from `env` (defaults to os.environ)."""

    if env is None:
        env = os.environ
    return ProtocolConfig(
        credit_budget=_positive_int(env, "QVOTE_CREDIT_BUDGET", DEFAULT_CREDIT_BUDGET),
        slot_count=_positive_int(env, "QVOTE_SLOT_COUNT", DEFAULT_SLOT_COUNT),
        server_url=env.get("QVOTE_SERVER_URL") or DEFAULT_SERVER_URL,
    )
