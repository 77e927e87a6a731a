"""Settings via pydantic-settings with TURNKEEPER_ env prefix.

One Settings object drives the engine: budget defaults, continuation
behaviour, session policy and the optional state store.
"""

import logging
from datetime import timedelta
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from turnkeeper.schemas import BudgetConfig, ContinuationConfig, ProgressMode


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TURNKEEPER_", env_file=".env")

    log_level: str = "info"

    # Budget defaults
    thinking_budget: int = 4096
    answer_budget: int = 4096
    max_continuations: int = 5
    max_duration_seconds: float = 600.0
    min_progress_tokens: int = 100

    # Continuation
    progress_mode: Literal["both", "answer", "thinking"] = "both"
    continuation_prompt: str = "Please continue from where you left off."
    include_previous_response: bool = True
    continuation_delay_seconds: float = 0.0
    enable_json_recovery: bool = True
    enable_code_block_recovery: bool = True

    # Classifier
    heuristic_min_length: int = 100  # mid-sentence check only above this length

    # Session tracking
    session_policy: Literal["serialize", "reject"] = "serialize"
    state_store: Literal["none", "memory", "sql"] = "none"
    state_db_url: str = ""
    state_ttl_seconds: int = 0  # 0 = no expiry

    @model_validator(mode="after")
    def _validate_budget(self) -> "Settings":
        if self.thinking_budget <= 0 or self.answer_budget <= 0:
            raise ValueError("thinking_budget and answer_budget must be positive")
        if self.max_continuations < 0:
            raise ValueError("max_continuations must be >= 0")
        if self.max_duration_seconds <= 0:
            raise ValueError("max_duration_seconds must be positive")
        if self.min_progress_tokens < 0:
            raise ValueError("min_progress_tokens must be >= 0")
        if self.state_store == "sql" and not self.state_db_url:
            raise ValueError("state_db_url is required when state_store is 'sql'")
        return self

    def budget(self) -> BudgetConfig:
        return BudgetConfig(
            thinking_budget=self.thinking_budget,
            answer_budget=self.answer_budget,
            max_continuations=self.max_continuations,
            max_duration=timedelta(seconds=self.max_duration_seconds),
            min_progress_tokens=self.min_progress_tokens,
        )

    def continuation(self) -> ContinuationConfig:
        return ContinuationConfig(
            prompt=self.continuation_prompt,
            include_previous_response=self.include_previous_response,
            delay_seconds=self.continuation_delay_seconds,
            enable_json_recovery=self.enable_json_recovery,
            enable_code_block_recovery=self.enable_code_block_recovery,
            progress_mode=ProgressMode(self.progress_mode),
        )

    @property
    def state_ttl(self) -> timedelta | None:
        return timedelta(seconds=self.state_ttl_seconds) if self.state_ttl_seconds > 0 else None


def configure_logging(settings: Settings) -> None:
    """Apply the configured log level to the root logger."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
