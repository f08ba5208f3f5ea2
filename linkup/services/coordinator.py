"""
Preference aggregation and reschedule seeding.

Pure functions over sessions and agents; the engine does the I/O around
them. Whether availabilities actually conflict is the group agent's call,
nothing here compares times.
"""

from linkup.adapters.prompts import group_header, opening_prompt, reschedule_prompt
from linkup.config import GroupConfig
from linkup.domain import Agent, ConversationHandle, MemberId
from linkup.storage import MemorySummary


SUMMARY_INSTRUCTIONS = """CRITICAL INSTRUCTIONS (follow this exact order):
1. FIRST: check whether everyone's times overlap. If they DON'T, call request_reschedule with the conflict details. Do NOT send the plan to the group until times are compatible.
2. If times ARE compatible: use web search to find REAL venues, restaurants, theaters or activity spots for these preferences. Search BEFORE sending any message.
3. Then send EXACTLY 2 messages with send_group_message. Message 1: plan summary (what, when, where). Message 2: real links from your search results, each URL on its own line.
4. Do NOT send more than 2 messages. Do NOT make up URLs."""


def build_summary(group: GroupConfig, agents: dict[MemberId, Agent]) -> str:
    """The compiled-preferences turn sent to the group agent once everyone is done."""
    blocks = []
    for agent in agents.values():
        prefs = agent.preferences
        if prefs is None:
            continue
        blocks.append(
            f"{agent.display_name}:\n"
            f"  Available: {prefs.availability}\n"
            f"  Wants: {prefs.activity}\n"
            f"  Notes: {prefs.notes}"
        )
    summary = "[ALL PREFERENCES COLLECTED]\n\n" + "\n\n".join(blocks)
    return f"{group_header(group)}\n\n{summary}\n\n{SUMMARY_INSTRUCTIONS}"


def seed_agents(
    group: GroupConfig,
    handles: dict[MemberId, ConversationHandle],
    previous: dict[MemberId, Agent] | None = None,
) -> dict[MemberId, Agent]:
    """Fresh Chatting agents for every roster member.

    With `previous` (a reschedule), each member's last submitted activity is
    carried forward; availability is always asked again.
    """
    previous = previous or {}
    agents = {}
    for member in group.members:
        agents[member.contact] = Agent(
            member_id=member.contact,
            display_name=member.name,
            conversation_handle=handles[member.contact],
            previous_activity=carried_activity(previous.get(member.contact)),
        )
    return agents


def carried_activity(agent: Agent | None) -> str | None:
    if agent is None:
        return None
    if agent.preferences is not None and agent.preferences.activity.strip():
        return agent.preferences.activity
    return agent.previous_activity


def resolve_activity(agent: Agent, activity: str) -> str:
    """A blank activity during a reschedule falls back to the carried one."""
    if not activity.strip() and agent.previous_activity:
        return agent.previous_activity
    return activity


def first_prompt(
    group: GroupConfig,
    agent: Agent,
    conflict_summary: str | None = None,
    memory: MemorySummary | None = None,
) -> str:
    """Opening message for an agent's DM thread."""
    if conflict_summary is None:
        return opening_prompt(group, agent.display_name, memory)
    return reschedule_prompt(group, agent.display_name, conflict_summary, agent.previous_activity)


def availability_report(agents: dict[MemberId, Agent]) -> dict[str, dict | str]:
    """Per-member preferences collected so far, keyed by display name."""
    return {
        agent.display_name: (
            agent.preferences.model_dump() if agent.preferences else "still chatting..."
        )
        for agent in agents.values()
    }
