from datetime import date, datetime

import discord

from .errors import DomainError
from .models import UNSET, Identity, Session, SessionDetail, SessionPatch, User
from .timezones import (
    DISPLAY_OFFSETS,
    format_minutes,
    local_today,
    parse_date_label,
    parse_user_time,
    to_display,
)

HISTORY_PAGE_SIZE = 10


def format_instant(instant: datetime | None, zone_id: str | None) -> str:
    if instant is None:
        return "ongoing"
    return to_display(instant, zone_id).strftime("%Y-%m-%d %H:%M")


def format_session_line(session: Session | SessionDetail, zone_id: str | None) -> str:
    span = f"{format_instant(session.started_at, zone_id)} -> {format_instant(session.ended_at, zone_id)}"
    duration = format_minutes(session.duration) if session.duration is not None else "in progress"
    line = f"`#{session.id}` {span} ({duration})"
    if session.description:
        line += f" - {session.description}"
    return line


def _zone_label(user: User) -> str:
    return user.timezone or "UTC"


def register_commands(bot):
    """Register all slash commands on the bot. Called once during setup."""
    guild_scope = discord.Object(id=bot.config.guild_id)
    users = bot.container.users
    tracker = bot.container.tracker
    reporter = bot.container.reporter

    def actor_for(interaction) -> User:
        # Resolve the caller once here; services only ever see the User record.
        member = interaction.user
        return users.resolve(Identity(external_id=str(member.id), name=member.display_name))

    async def reply(interaction, content: str) -> None:
        if interaction.response.is_done():
            await interaction.followup.send(content, ephemeral=True)
        else:
            await interaction.response.send_message(content, ephemeral=True)

    @bot.tree.error
    async def on_command_error(interaction, error):
        original = getattr(error, "original", error)
        if isinstance(original, DomainError):
            await reply(interaction, f"Could not complete that: {original}")
            return

        bot.logger.error("Command %s failed", getattr(interaction.command, "name", "?"), exc_info=original)
        await reply(interaction, "Something went wrong. Nothing was changed.")

    @bot.tree.command(name="clock-in", description="Start a work session", guild=guild_scope)
    async def clock_in(interaction, description: str | None = None):
        user = actor_for(interaction)
        session = tracker.start_session(user.id, description=description)
        await reply(
            interaction,
            f"Clocked in at `{format_instant(session.started_at, user.timezone)}` ({_zone_label(user)}).",
        )

    @bot.tree.command(name="clock-out", description="End your current work session", guild=guild_scope)
    async def clock_out(interaction):
        user = actor_for(interaction)
        current = tracker.get_current_session(user.id)
        if current is None:
            await reply(interaction, "You are not clocked in.")
            return

        session = tracker.end_session(current.id)
        await reply(
            interaction,
            f"Clocked out at `{format_instant(session.ended_at, user.timezone)}`. "
            f"Worked `{format_minutes(session.duration)}`.",
        )

    @bot.tree.command(name="log-time", description="Record a past time range (HH:MM in your timezone)", guild=guild_scope)
    async def log_time(
        interaction,
        start: str,
        end: str,
        description: str | None = None,
        day: str | None = None,
    ):
        user = actor_for(interaction)
        on_day = date.fromisoformat(parse_date_label(day, "day")) if day else local_today(bot.clock.now(), user.timezone)
        session = tracker.create_manual_session(
            user.id,
            parse_user_time(start, user.timezone, on_day=on_day),
            parse_user_time(end, user.timezone, on_day=on_day),
            description=description,
        )
        await reply(interaction, f"Logged {format_session_line(session, user.timezone)}")

    @bot.tree.command(name="status", description="Show your current session", guild=guild_scope)
    async def status(interaction):
        user = actor_for(interaction)
        current = tracker.get_current_session(user.id)
        if current is None:
            await reply(interaction, f"Not clocked in. Timezone: `{_zone_label(user)}`.")
            return

        await reply(
            interaction,
            f"Clocked in since `{format_instant(current.started_at, user.timezone)}` ({_zone_label(user)}).",
        )

    async def send_day_stats(interaction, user: User, stats, title: str) -> None:
        if stats.total_sessions == 0:
            await reply(interaction, f"No sessions for {stats.date}.")
            return

        lines = [
            f"{title} ({stats.date}):",
            f"Sessions: `{stats.total_sessions}` (completed `{stats.completed_sessions}`, ongoing `{stats.ongoing_sessions}`)",
            f"Total: `{format_minutes(stats.total_duration)}` | Average: `{format_minutes(stats.average_duration)}`",
            f"Completion rate: `{stats.completion_rate}%`",
        ]
        lines.extend(format_session_line(detail, user.timezone) for detail in stats.sessions)
        await reply(interaction, "\n".join(lines))

    @bot.tree.command(name="today", description="Show today's sessions", guild=guild_scope)
    async def today(interaction):
        user = actor_for(interaction)
        await send_day_stats(interaction, user, reporter.get_today_stats(user.id), "Today")

    @bot.tree.command(name="yesterday", description="Show yesterday's sessions", guild=guild_scope)
    async def yesterday(interaction):
        user = actor_for(interaction)
        await send_day_stats(interaction, user, reporter.get_last_day_stats(user.id), "Yesterday")

    @bot.tree.command(name="summary", description="Summarize your sessions (dates as YYYY-MM-DD)", guild=guild_scope)
    async def summary(interaction, start_date: str | None = None, end_date: str | None = None):
        user = actor_for(interaction)
        result = reporter.get_session_summary(user.id, start_date, end_date)
        window = f"{start_date or 'beginning'} to {end_date or 'now'}"
        lines = [
            f"Summary ({window}):",
            f"Sessions: `{result.total_sessions}` (completed `{result.completed_sessions}`)",
            f"Total: `{format_minutes(result.total_duration)}` | Average: `{format_minutes(result.average_duration)}`",
            f"Completion rate: `{result.completion_rate:.1f}%`",
        ]
        await reply(interaction, "\n".join(lines))

    @bot.tree.command(name="history", description="List your recent sessions", guild=guild_scope)
    async def history(interaction, before: int | None = None):
        user = actor_for(interaction)
        sessions, next_cursor = tracker.list_user_sessions(user.id, limit=HISTORY_PAGE_SIZE, cursor=before)
        if not sessions:
            await reply(interaction, "No sessions recorded.")
            return

        lines = [format_session_line(session, user.timezone) for session in sessions]
        if next_cursor is not None:
            lines.append(f"More: `/history before:{next_cursor}`")
        await reply(interaction, "\n".join(lines))

    @bot.tree.command(name="edit-session", description="Change a session's description or times", guild=guild_scope)
    async def edit_session(
        interaction,
        session_id: int,
        description: str | None = None,
        start: str | None = None,
        end: str | None = None,
    ):
        user = actor_for(interaction)
        existing = tracker.get_owned_session(session_id, user)
        # HH:MM values are read on the session's own day in the caller's timezone.
        on_day = to_display(existing.started_at, user.timezone).date()
        patch = SessionPatch(
            description=description if description is not None else UNSET,
            start=parse_user_time(start, user.timezone, on_day=on_day) if start else UNSET,
            end=parse_user_time(end, user.timezone, on_day=on_day) if end else UNSET,
        )
        session = tracker.update_session(session_id, user, patch)
        await reply(interaction, f"Updated {format_session_line(session, user.timezone)}")

    @bot.tree.command(name="delete-session", description="Delete one of your sessions", guild=guild_scope)
    async def delete_session(interaction, session_id: int):
        user = actor_for(interaction)
        tracker.delete_session(session_id, user)
        await reply(interaction, f"Deleted session `#{session_id}`.")

    @bot.tree.command(name="timezone", description="Show or set your display timezone", guild=guild_scope)
    async def set_timezone(interaction, zone: str | None = None):
        user = actor_for(interaction)
        if zone is None:
            supported = ", ".join(sorted(DISPLAY_OFFSETS))
            await reply(interaction, f"Your timezone: `{_zone_label(user)}`.\nSupported: {supported}")
            return

        updated = users.update_user(user.id, user, timezone=zone)
        await reply(interaction, f"Display timezone set to `{updated.timezone}`.")

    @bot.tree.command(name="team-today", description="Show today's totals for everyone", guild=guild_scope)
    async def team_today(interaction):
        viewer = actor_for(interaction)
        stats = reporter.get_all_users_today_stats()
        if not stats.users_stats:
            await reply(interaction, f"No tracked activity for {stats.start_date}.")
            return

        lines = [f"Team activity ({stats.start_date}), {stats.total_active_users} active:"]
        for row in stats.users_stats:
            who = row.name or row.email or f"User {row.user_id}"
            marker = " (clocked in)" if row.has_ongoing_session else ""
            lines.append(f"- {who}: `{format_minutes(row.summary.total_duration)}`{marker}")
        bot.logger.debug("team-today requested by user %s", viewer.id)
        await reply(interaction, "\n".join(lines))
