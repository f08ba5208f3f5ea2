#!/usr/bin/env python3
"""
LinkUp - the group chat's planner.

Watches configured iMessage group chats and plans hangouts through DMs.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

from linkup.adapters import AgentProfile, AnthropicDecisionService, IMessageTransport, web_search_tool
from linkup.adapters.prompts import DM_SYSTEM_PROMPT, GROUP_SYSTEM_PROMPT
from linkup.config import ConfigError, LinkUpConfig, load_config, require_api_key
from linkup.engine import DM_AGENT, GROUP_AGENT, PlanningEngine
from linkup.logging_config import setup_logging
from linkup.poller import PollDriver
from linkup.runtime import DM_TOOLS, GROUP_TOOLS
from linkup.storage import MemoryStore, SessionStore


def build_profiles(config: LinkUpConfig) -> dict[str, AgentProfile]:
    anthropic_cfg = config.anthropic
    server_tools = []
    if anthropic_cfg.web_search:
        server_tools.append(web_search_tool(anthropic_cfg.web_search_max_uses))

    return {
        GROUP_AGENT: AgentProfile(
            system_prompt=GROUP_SYSTEM_PROMPT,
            tools=GROUP_TOOLS.definitions(),
            model=anthropic_cfg.group_model,
            max_tokens=anthropic_cfg.max_tokens,
            server_tools=server_tools,
        ),
        DM_AGENT: AgentProfile(
            system_prompt=DM_SYSTEM_PROMPT,
            tools=DM_TOOLS.definitions(),
            model=anthropic_cfg.dm_model,
            max_tokens=anthropic_cfg.max_tokens,
        ),
    }


async def run(config: LinkUpConfig, api_key: str, once: bool) -> None:
    store = SessionStore(config.state_path)
    store.load()

    memory = MemoryStore(config.memory_db_path)
    await memory.connect()

    service = AnthropicDecisionService(
        profiles=build_profiles(config),
        threads_dir=config.threads_dir,
        api_key=api_key,
    )
    transport = IMessageTransport(config.imessage.chat_db)

    engine = PlanningEngine(config, store, service, transport, memory)
    await engine.initialize()

    driver = PollDriver(engine.poll_cycle, config.poll_interval_seconds)
    try:
        if once:
            await driver.run_once()
        else:
            await driver.run()
    finally:
        await memory.close()


def main():
    parser = argparse.ArgumentParser(
        description="LinkUp - the group chat's planner"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("linkup.yaml"),
        help="Path to config file (default: ./linkup.yaml)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single poll cycle and exit",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    try:
        config = load_config(args.config)
        api_key = require_api_key()
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    # Configure logging - always log DEBUG to file, console level depends on --debug
    console_level = logging.DEBUG if args.debug else logging.WARNING
    log_path = setup_logging(config.data_dir, console_level=console_level)
    print(f"Logging to: {log_path}")

    print("=== LinkUp ===")
    for group in config.groups:
        members = ", ".join(m.name for m in group.members)
        print(f"  {group.name}: {members}")

    try:
        asyncio.run(run(config, api_key, once=args.once))
    except KeyboardInterrupt:
        print("\nStopped.")


if __name__ == "__main__":
    main()
