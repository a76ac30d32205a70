"""Runtime configuration read from the environment (and an optional .env file)."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()

IN_PROGRESS_POLICIES = ("allow", "resume", "block")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./cbt_practice.db"
    secret_key: str = "CHANGE_ME_TO_A_RANDOM_SECRET"
    questions_per_attempt: int = 40
    timer_flush_interval: float = 5.0
    timer_flush_threshold: int = 5
    # What to do when the user already has an unsubmitted attempt for the subject:
    # allow -> create another one, resume -> hand back the open one, block -> refuse.
    in_progress_policy: str = "allow"
    seed_default_users: bool = True
    log_level: str = "INFO"

    def __post_init__(self):
        if self.in_progress_policy not in IN_PROGRESS_POLICIES:
            raise ValueError(
                f"in_progress_policy must be one of {', '.join(IN_PROGRESS_POLICIES)}, "
                f"got {self.in_progress_policy!r}"
            )
        if self.questions_per_attempt < 1:
            raise ValueError("questions_per_attempt must be at least 1")

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("CBT_DATABASE_URL", cls.database_url),
            secret_key=os.getenv("CBT_SECRET_KEY", cls.secret_key),
            questions_per_attempt=int(
                os.getenv("CBT_QUESTIONS_PER_ATTEMPT", cls.questions_per_attempt)
            ),
            timer_flush_interval=float(
                os.getenv("CBT_TIMER_FLUSH_INTERVAL", cls.timer_flush_interval)
            ),
            timer_flush_threshold=int(
                os.getenv("CBT_TIMER_FLUSH_THRESHOLD", cls.timer_flush_threshold)
            ),
            in_progress_policy=os.getenv(
                "CBT_IN_PROGRESS_POLICY", cls.in_progress_policy
            ).strip().lower(),
            seed_default_users=_env_bool("CBT_SEED_DEFAULT_USERS", cls.seed_default_users),
            log_level=os.getenv("CBT_LOG_LEVEL", cls.log_level).upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, built once from the environment."""
    return Settings.from_env()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(levelname)s: %(name)s: %(message)s",
    )
