from __future__ import annotations

import asyncio
import logging
from datetime import time, timezone
from typing import List, Optional, Set

import discord
from discord import app_commands
from discord.ext import commands, tasks

from config import (
    THREADPULSE_ANNOUNCE_HOUR,
    THREADPULSE_BANK_FILE,
    THREADPULSE_CHANNEL,
    THREADPULSE_DATA_FILE,
)
from threadpulse.clues import CommunityClue
from threadpulse.daily_engine import MAX_GUESSES, DailyEngine, DailyGame, DailySnapshot, GameStatus
from threadpulse.events import GameCompleted, GameEvent
from threadpulse.puzzles import load_puzzle_bank
from threadpulse.storage import JsonFileStore

log = logging.getLogger(__name__)

ANNOUNCE_AT = time(hour=THREADPULSE_ANNOUNCE_HOUR, tzinfo=timezone.utc)

# ============================================================
# RENDERING
# ============================================================

def render_game(game: DailyGame) -> str:
    state = game.state
    lines = [
        f"🧩 **ThreadPulse Daily — {game.day_key}**",
        f"**{game.puzzle.title}** · _{game.puzzle.category}_",
        "",
    ]

    for i, hint in enumerate(game.hints, start=1):
        lines.append(f"💡 Hint {i}: {hint}")

    if state.guesses:
        lines.append("")
        for entry in state.guesses:
            mark = "🟩" if entry.correct else "🟥"
            lines.append(f"{mark} `{entry.text}`")

    lines.append("")
    if game.status is GameStatus.COMPLETED:
        lines.append(f"🎉 **Solved!** Score: **{state.score}** · Streak: 🔥{state.streak}")
    elif game.status is GameStatus.EXHAUSTED:
        lines.append(f"❌ **Out of guesses.** The answer was **{game.puzzle.answer}**")
    else:
        lines.append(f"📊 Guesses remaining: {state.guesses_left}/{MAX_GUESSES}")

    return "\n".join(lines)


def render_clues(clues: List[CommunityClue]) -> str:
    if not clues:
        return "🗒️ No community clues yet. Add one with `/pulse_clue`."

    lines = ["🗒️ **Community Clues**"]
    for i, clue in enumerate(clues, start=1):
        boost = f" · ⭐x{clue.mod_boost}" if clue.mod_boost else ""
        lines.append(f"**{i}.** {clue.text} — 👍 {clue.upvotes}{boost}")
    return "\n".join(lines)


def render_announcement(snapshot: DailySnapshot) -> str:
    tags = " ".join(snapshot.subreddit_tags)
    return (
        f"🧩 **ThreadPulse Daily {snapshot.day_key} is live!**\n"
        f"**{snapshot.title}** · _{snapshot.category}_ {tags}\n"
        f"💡 {snapshot.public_hint}\n"
        "Play with `/pulse`."
    )


def render_event(event: GameEvent, mention: str) -> str:
    if isinstance(event, GameCompleted):
        return (
            f"🏁 {mention} solved ThreadPulse {event.day_key} in "
            f"**{event.guesses}** guess{'es' if event.guesses != 1 else ''} "
            f"for **{event.score}** points (🔥{event.streak})"
        )
    return f"🗒️ {mention} added a community clue for {event.day_key}."


# ============================================================
# EVENT SINK
# ============================================================

class ChannelEventSink:
    """
    Posts engine events to the games channel of every guild.
    Sends are scheduled, never awaited by the engine.
    """

    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self._tasks: Set[asyncio.Task] = set()

    def publish(self, event: GameEvent) -> None:
        task = asyncio.create_task(self._send(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _send(self, event: GameEvent) -> None:
        mention = f"<@{event.player_id}>"
        message = render_event(event, mention)

        for guild in self.bot.guilds:
            channel = discord.utils.get(guild.text_channels, name=THREADPULSE_CHANNEL)
            if not channel:
                continue
            try:
                await channel.send(message, allowed_mentions=discord.AllowedMentions.none())
            except discord.HTTPException as e:
                log.warning("Could not post %s to #%s: %s", type(event).__name__, channel, e)


# ============================================================
# COG
# ============================================================

class ThreadPulseDaily(commands.Cog):
    """
    Discord-facing wrapper for the ThreadPulse Daily engine.

    Responsibilities:
    - Announce each day's puzzle
    - Route guesses, hints and clues to the engine
    - Report solves and clues to the games channel
    """

    def __init__(self, bot: commands.Bot, engine: Optional[DailyEngine] = None):
        self.bot = bot
        self.engine = engine or DailyEngine(
            bank=load_puzzle_bank(THREADPULSE_BANK_FILE),
            store=JsonFileStore(THREADPULSE_DATA_FILE),
            events=ChannelEventSink(bot),
        )

        self.daily_announcement.start()

    def cog_unload(self):
        self.daily_announcement.cancel()

    # -----------------------------
    # Scheduler tasks
    # -----------------------------

    @tasks.loop(time=ANNOUNCE_AT)
    async def daily_announcement(self):
        message = render_announcement(self.engine.snapshot())

        for guild in self.bot.guilds:
            channel = discord.utils.get(guild.text_channels, name=THREADPULSE_CHANNEL)
            if not channel:
                continue
            try:
                await channel.send(message)
            except discord.HTTPException as e:
                log.warning("Could not announce in #%s (%s): %s", channel, guild, e)

    @daily_announcement.before_loop
    async def _wait_until_ready(self):
        await self.bot.wait_until_ready()

    # -----------------------------
    # Slash commands
    # -----------------------------

    @app_commands.command(name="pulse", description="Show today's ThreadPulse puzzle")
    async def pulse(self, interaction: discord.Interaction):
        game = self.engine.start_day(str(interaction.user.id))
        await interaction.response.send_message(render_game(game), ephemeral=True)

    @app_commands.command(name="pulse_guess", description="Guess today's ThreadPulse answer")
    @app_commands.describe(guess="Your answer")
    async def pulse_guess(self, interaction: discord.Interaction, guess: str):
        player_id = str(interaction.user.id)
        outcome = self.engine.submit_guess(player_id, guess)
        game = self.engine.start_day(player_id)

        if not outcome.accepted:
            await interaction.response.send_message(f"⚠️ {outcome.reason}", ephemeral=True)
            return

        await interaction.response.send_message(
            f"{outcome.reason}\n\n{render_game(game)}",
            ephemeral=True,
        )

    @app_commands.command(name="pulse_hint", description="Unlock the next hint")
    async def pulse_hint(self, interaction: discord.Interaction):
        player_id = str(interaction.user.id)
        outcome = self.engine.unlock_hint(player_id)

        if not outcome.accepted:
            await interaction.response.send_message(f"⚠️ {outcome.reason}", ephemeral=True)
            return

        await interaction.response.send_message(
            f"💡 Hint {outcome.hints_unlocked}: {outcome.hints[-1]}",
            ephemeral=True,
        )

    @app_commands.command(name="pulse_share", description="Get your shareable result")
    async def pulse_share(self, interaction: discord.Interaction):
        text = self.engine.share_text(str(interaction.user.id))
        if text is None:
            await interaction.response.send_message(
                "⚠️ Finish today's puzzle before sharing.",
                ephemeral=True,
            )
            return
        await interaction.response.send_message(f"```\n{text}\n```", ephemeral=True)

    # -----------------------------
    # Community clues
    # -----------------------------

    @app_commands.command(name="pulse_clue", description="Leave one clue for everyone today")
    @app_commands.describe(text="8 to 180 characters, no links, no answer")
    async def pulse_clue(self, interaction: discord.Interaction, text: str):
        outcome = self.engine.submit_clue(str(interaction.user.id), text)

        if not outcome.accepted:
            await interaction.response.send_message(f"⚠️ {outcome.reason}", ephemeral=True)
            return

        await interaction.response.send_message(
            f"✅ {outcome.reason}\n\n{render_clues(list(outcome.clues))}",
            ephemeral=True,
        )

    @app_commands.command(name="pulse_clues", description="Show today's top community clues")
    async def pulse_clues(self, interaction: discord.Interaction):
        await interaction.response.send_message(render_clues(self.engine.clues()), ephemeral=True)

    @app_commands.command(name="pulse_upvote", description="Upvote a community clue")
    @app_commands.describe(number="Clue number from /pulse_clues")
    async def pulse_upvote(self, interaction: discord.Interaction, number: app_commands.Range[int, 1, 5]):
        clue = self._clue_by_number(number)
        if clue is None:
            await interaction.response.send_message("⚠️ No clue with that number.", ephemeral=True)
            return

        outcome = self.engine.upvote_clue(str(interaction.user.id), clue.id)
        prefix = "👍" if outcome.accepted else "⚠️"
        await interaction.response.send_message(f"{prefix} {outcome.reason}", ephemeral=True)

    @app_commands.command(name="pulse_boost", description="[MOD] Boost a community clue")
    @app_commands.describe(number="Clue number from /pulse_clues", amount="Boost points (each counts as 3 upvotes)")
    @app_commands.checks.has_permissions(manage_messages=True)
    async def pulse_boost(
        self,
        interaction: discord.Interaction,
        number: app_commands.Range[int, 1, 5],
        amount: app_commands.Range[int, 1, 10] = 1,
    ):
        clue = self._clue_by_number(number)
        if clue is None:
            await interaction.response.send_message("⚠️ No clue with that number.", ephemeral=True)
            return

        outcome = self.engine.boost_clue(clue.id, amount)
        if not outcome.accepted:
            await interaction.response.send_message(f"⚠️ {outcome.reason}", ephemeral=True)
            return

        await interaction.response.send_message(
            f"⭐ {outcome.reason}\n\n{render_clues(list(outcome.clues))}",
            ephemeral=True,
        )

    def _clue_by_number(self, number: int) -> Optional[CommunityClue]:
        clues = self.engine.clues()
        if 1 <= number <= len(clues):
            return clues[number - 1]
        return None


async def setup(bot: commands.Bot):
    await bot.add_cog(ThreadPulseDaily(bot))
