"""
Group agent tools.

The group agent talks to the group chat, kicks off preference collection,
keeps the hangout log and asks for reschedules when availabilities clash.
"""

import logging

from pydantic import BaseModel, Field

from linkup.domain import CollectingEvent, HangoutRecord, ReadyEvent
from linkup.services import availability_report

from .context import ToolContext
from .registry import ToolRegistry


logger = logging.getLogger(__name__)


GROUP_TOOLS = ToolRegistry("group")

QUOTA_REACHED = "Plan message limit reached. Plan has been delivered."

PLAN_PENDING = "Everyone has answered and the plan is being put together. Nothing can be sent to the group until it is."


# =============================================================================
# Argument Models
# =============================================================================


class SendGroupMessageArgs(BaseModel):
    message: str = Field(description="The message text to send to the group chat")


class NoArgs(BaseModel):
    pass


class LogHangoutArgs(BaseModel):
    description: str = Field(
        default="Hangout",
        description='Brief description of the hangout (e.g. "dinner at Olive Garden")',
    )


class RequestRescheduleArgs(BaseModel):
    conflict_summary: str = Field(
        description=(
            'Brief description of the conflict, e.g. "ayah is free at 2pm but balawal is free '
            'at 6pm, need a time that works for both"'
        ),
    )


# =============================================================================
# Tool Processors
# =============================================================================


async def process_send_group_message(args: SendGroupMessageArgs, ctx: ToolContext) -> dict:
    """Send to the group chat, enforcing the plan-delivery quota."""
    engine = ctx.engine
    session = ctx.session

    if isinstance(session.event, CollectingEvent):
        return {
            "success": False,
            "error": "Preferences are still being collected. Nothing can be sent to the group until everyone has answered.",
        }

    if isinstance(session.event, ReadyEvent):
        if engine.guard.quota_reached(session):
            logger.info(f"Blocked send_group_message for {ctx.group.name}: plan quota reached")
            engine.close_plan(ctx.group, reason="plan quota reached")
            ctx.plan_closed = True
            return {"success": False, "error": QUOTA_REACHED}

        if not ctx.delivers_plan():
            logger.info(f"Blocked send_group_message for {ctx.group.name}: not the plan exchange for this cycle")
            return {"success": False, "error": PLAN_PENDING}

        await engine.transport.send_group_message(ctx.group.chat_id, args.message)
        session = engine.store.put(ctx.session.with_plan_message_sent())
        sent = session.plan_message_count
        if engine.guard.quota_reached(session):
            engine.close_plan(ctx.group, reason=f"plan delivered in {sent} messages")
            ctx.plan_closed = True
        return {"success": True, "plan_messages_sent": sent}

    if ctx.plan_closed:
        logger.info(f"Blocked send_group_message for {ctx.group.name}: plan already delivered")
        return {"success": False, "error": QUOTA_REACHED}

    await engine.transport.send_group_message(ctx.group.chat_id, args.message)
    return {"success": True}


async def process_start_collecting(args: NoArgs, ctx: ToolContext) -> dict:
    if not ctx.session.is_idle:
        return {"success": False, "error": f"A planning cycle is already {ctx.session.state}."}
    return await ctx.engine.start_collecting(ctx.group)


async def process_log_hangout(args: LogHangoutArgs, ctx: ToolContext) -> dict:
    engine = ctx.engine
    record = HangoutRecord(timestamp=engine.now(), description=args.description or "Hangout")
    engine.store.update(ctx.group.chat_id, lambda s: s.with_hangout(record))
    await engine.memory.record_hangout(ctx.group.chat_id, ctx.group.name, record.description, now=record.timestamp)
    logger.info(f"Logged hangout for {ctx.group.name}: {record.description}")
    return {"success": True, "hangout": record.model_dump(mode="json")}


async def process_check_last_hangout(args: NoArgs, ctx: ToolContext) -> dict:
    engine = ctx.engine
    last = ctx.session.last_hangout
    stats = await engine.memory.hangout_stats(ctx.group.chat_id, now=engine.now())

    if last is None:
        result = {"last_hangout": None, "message": "No hangouts recorded yet!"}
    else:
        result = {
            "last_hangout": last.model_dump(mode="json"),
            "days_ago": (engine.now() - last.timestamp).days,
        }
    if stats is not None:
        result["total_hangouts"] = stats.total_hangouts
        result["streak_weeks"] = stats.streak
    return result


async def process_get_member_availability(args: NoArgs, ctx: ToolContext) -> dict:
    return {"availability": availability_report(ctx.session.agents)}


async def process_request_reschedule(args: RequestRescheduleArgs, ctx: ToolContext) -> dict:
    session = ctx.session
    if ctx.delivers_plan() and session.plan_message_count == 0 and not ctx.plan_closed:
        return await ctx.engine.reschedule(ctx.group, args.conflict_summary)
    if isinstance(session.event, CollectingEvent):
        return await ctx.engine.reschedule(ctx.group, args.conflict_summary)
    return {
        "success": False,
        "error": "Nothing to reschedule: no preferences are pending or the plan was already sent.",
    }


# =============================================================================
# Registration
# =============================================================================


GROUP_TOOLS.register(
    name="send_group_message",
    description="Send a message to the group chat. Use this to respond to the group.",
    args_model=SendGroupMessageArgs,
    processor=process_send_group_message,
)

GROUP_TOOLS.register(
    name="start_collecting",
    description=(
        "Start collecting preferences from all group members via DM. Call this after hyping "
        "the group. Individual DM conversations are spun up with each member automatically."
    ),
    args_model=NoArgs,
    processor=process_start_collecting,
)

GROUP_TOOLS.register(
    name="log_hangout",
    description="Record that the group hung out. Call this when someone confirms a hangout happened.",
    args_model=LogHangoutArgs,
    processor=process_log_hangout,
)

GROUP_TOOLS.register(
    name="check_last_hangout",
    description="Check when the group last hung out, how many days ago it was, and their streak.",
    args_model=NoArgs,
    processor=process_check_last_hangout,
)

GROUP_TOOLS.register(
    name="get_member_availability",
    description="Check the collected availability responses from group members.",
    args_model=NoArgs,
    processor=process_get_member_availability,
)

GROUP_TOOLS.register(
    name="request_reschedule",
    description=(
        "When members' availability times DON'T overlap, call this to DM them back and "
        "negotiate a new time. Do NOT send the plan to the group until times work for everyone."
    ),
    args_model=RequestRescheduleArgs,
    processor=process_request_reschedule,
)
