"""
Configuration for LinkUp.

The config file is YAML, validated with pydantic. Secrets stay in the
environment (ANTHROPIC_API_KEY, optionally via a .env file).

Example:
    data_dir: data
    poll_interval_seconds: 10
    groups:
      - chat_id: chat123456
        name: The Besties
        hangout_threshold_days: 7
        members:
          - name: Ayah
            contact: "+15145550101"
          - name: Balawal
            contact: balawal@example.com
"""

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from linkup.domain import GroupId, MemberId


class ConfigError(Exception):
    """Missing or invalid configuration. Fatal at startup."""


class Member(BaseModel):
    """A person in a group's roster."""
    model_config = ConfigDict(frozen=True)

    name: str
    contact: MemberId


class GroupConfig(BaseModel):
    """A monitored group chat and its roster."""
    model_config = ConfigDict(frozen=True)

    chat_id: GroupId
    name: str
    members: tuple[Member, ...]
    hangout_threshold_days: int = 7

    @field_validator("members")
    @classmethod
    def _roster_not_empty(cls, members: tuple[Member, ...]) -> tuple[Member, ...]:
        if not members:
            raise ValueError("group has no members")
        return members

    def member(self, member_id: str) -> Member | None:
        for m in self.members:
            if m.contact == member_id:
                return m
        return None

    def display_name(self, member_id: str) -> str:
        m = self.member(member_id)
        return m.name if m else member_id


class LimitsConfig(BaseModel):
    """Rate limits and cooldowns."""
    model_config = ConfigDict(frozen=True)

    plan_message_limit: int = 2
    post_plan_cooldown_seconds: int = 60
    nudge_interval_hours: int = 24


class AnthropicConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    group_model: str = "claude-sonnet-4-5-20250929"
    dm_model: str = "claude-sonnet-4-5-20250929"
    max_tokens: int = 2048
    web_search: bool = True
    web_search_max_uses: int = 5


class IMessageConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    chat_db: Path = Path("~/Library/Messages/chat.db")


class LinkUpConfig(BaseModel):
    """Top-level configuration."""
    model_config = ConfigDict(frozen=True)

    data_dir: Path = Path("data")
    poll_interval_seconds: float = 10.0
    groups: tuple[GroupConfig, ...]
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    anthropic: AnthropicConfig = Field(default_factory=AnthropicConfig)
    imessage: IMessageConfig = Field(default_factory=IMessageConfig)

    @field_validator("groups")
    @classmethod
    def _has_groups(cls, groups: tuple[GroupConfig, ...]) -> tuple[GroupConfig, ...]:
        if not groups:
            raise ValueError("no group chats configured")
        return groups

    @property
    def state_path(self) -> Path:
        return self.data_dir / "state.json"

    @property
    def memory_db_path(self) -> Path:
        return self.data_dir / "memory.db"

    @property
    def threads_dir(self) -> Path:
        return self.data_dir / "threads"


def load_config(path: Path | str) -> LinkUpConfig:
    """Load and validate the YAML config file.

    Raises:
        ConfigError: if the file is missing, unreadable, or invalid
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"No config file found at {path}")

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {path}: {e}") from e

    try:
        return LinkUpConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config in {path}:\n{e}") from e


def require_api_key(env_var: str = "ANTHROPIC_API_KEY") -> str:
    """Return the decision service API key from the environment."""
    key = os.environ.get(env_var, "").strip()
    if not key:
        raise ConfigError(f"{env_var} is not set (add it to your environment or .env)")
    return key
