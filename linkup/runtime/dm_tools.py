"""
DM agent tools.

A DM agent chats privately with one member until it has their availability,
activity and notes. Submitting is the only way an agent becomes Done; the
last submission of a round hands the session to the group agent.
"""

import logging
import random

from pydantic import BaseModel, Field

from linkup.domain import AgentStatus, Preferences
from linkup.services import resolve_activity
from linkup.storage import ALL_CATEGORIES

from .context import ToolContext
from .registry import ToolRegistry


logger = logging.getLogger(__name__)


DM_TOOLS = ToolRegistry("dm")

SUPERSEDED = "This conversation was replaced by a newer one for the same member."


ACTIVITY_IDEAS: dict[str, tuple[str, ...]] = {
    "food": ("a new ramen spot", "korean bbq", "a brunch crawl", "a dessert run"),
    "movies": ("whatever just opened in theaters", "a throwback screening", "an imax night"),
    "sports": ("pickup basketball", "a rock climbing gym", "bowling", "a rec volleyball game"),
    "outdoors": ("a sunset hike", "a picnic in the park", "a beach day", "a bike ride"),
    "games": ("an escape room", "arcade night", "trivia night", "mini golf"),
    "nightlife": ("karaoke", "a rooftop bar", "a comedy club", "a brewery"),
    "chill": ("a potluck", "game night at someone's place", "a sleepover movie marathon"),
    "shopping": ("a thrift crawl", "a flea market", "a night market"),
    "creative": ("a pottery class", "a museum", "a paint and sip", "a concert"),
}


# =============================================================================
# Argument Models
# =============================================================================


class SendReplyArgs(BaseModel):
    message: str = Field(description="The message text to send")


class SubmitPreferencesArgs(BaseModel):
    availability: str = Field(description='e.g. "Friday 7pm-11pm, Saturday all day"')
    activity: str = Field(description='e.g. "wants Korean BBQ or sushi"')
    notes: str = Field(default="none", description='e.g. "no shellfish, budget ~$30"')


class NoArgs(BaseModel):
    pass


# =============================================================================
# Tool Processors
# =============================================================================


async def process_send_reply(args: SendReplyArgs, ctx: ToolContext) -> dict:
    if ctx.is_superseded():
        logger.info(f"Dropping reply from stale DM thread {ctx.handle}")
        return {"success": False, "error": SUPERSEDED}
    await ctx.engine.transport.send_direct_message(ctx.member_id, args.message)
    return {"success": True}


async def process_submit_preferences(args: SubmitPreferencesArgs, ctx: ToolContext) -> dict:
    engine = ctx.engine
    agent = ctx.current_agent()

    if agent is None:
        return {"success": False, "error": "No preference collection is active for this person."}
    if agent.conversation_handle != ctx.handle:
        return {"success": False, "error": SUPERSEDED}
    if agent.is_done:
        return {"success": False, "error": "Preferences were already submitted."}

    preferences = Preferences(
        availability=args.availability,
        activity=resolve_activity(agent, args.activity),
        notes=args.notes or "none",
    )
    done_agent = agent.model_copy(update={"status": AgentStatus.DONE, "preferences": preferences})
    session = engine.store.put(ctx.session.with_agent(done_agent))
    logger.info(f"{agent.display_name} submitted preferences for {ctx.group.name}")

    await engine.memory.record_preference(
        ctx.group.chat_id,
        agent.member_id,
        agent.display_name,
        preferences.activity,
        preferences.availability,
        preferences.notes,
        now=engine.now(),
    )

    all_done = session.event.all_done
    if all_done:
        await engine.complete_collection(ctx.group)
    return {"success": True, "all_done": all_done}


async def process_get_group_memory(args: NoArgs, ctx: ToolContext) -> dict:
    memory = await ctx.engine.memory.query_memory(ctx.group.chat_id, ctx.member_id, now=ctx.engine.now())
    return memory.model_dump(mode="json")


async def process_suggest_activities(args: NoArgs, ctx: ToolContext) -> dict:
    """Ideas biased toward categories the group has never tried."""
    memory = await ctx.engine.memory.query_memory(ctx.group.chat_id, ctx.member_id, now=ctx.engine.now())
    fresh = [c for c in ALL_CATEGORIES if c in memory.never_tried] if memory.has_history else []
    ordered = fresh + [c for c in ALL_CATEGORIES if c not in fresh]

    suggestions = [
        {"category": category, "idea": random.choice(ACTIVITY_IDEAS[category])}
        for category in ordered[:5]
    ]
    return {"suggestions": suggestions, "never_tried": list(memory.never_tried)}


# =============================================================================
# Registration
# =============================================================================


DM_TOOLS.register(
    name="send_reply",
    description="Send a DM reply to the person you're chatting with",
    args_model=SendReplyArgs,
    processor=process_send_reply,
)

DM_TOOLS.register(
    name="submit_preferences",
    description=(
        "Submit this person's finalized preferences. Only call when you have availability, "
        "activity, and any extras."
    ),
    args_model=SubmitPreferencesArgs,
    processor=process_submit_preferences,
)

DM_TOOLS.register(
    name="get_group_memory",
    description=(
        "Look up the group's history: favorite activity categories, what they've never tried, "
        "what this person usually picks, hangout streak."
    ),
    args_model=NoArgs,
    processor=process_get_group_memory,
)

DM_TOOLS.register(
    name="suggest_activities",
    description="Get a few activity ideas when the person doesn't know what they want to do.",
    args_model=NoArgs,
    processor=process_suggest_activities,
)
