# bot.py
from __future__ import annotations
import asyncio
import logging
import traceback
import discord
from discord import app_commands
from discord.ext import commands
from config import LOG_LEVEL, THREADPULSE_CHANNEL, TOKEN
from threadpulse.puzzles import PuzzleBankError

# =========================
# LOGGING
# =========================
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format='[%(asctime)s] [%(levelname)s] %(message)s',
    datefmt='%H:%M:%S'
)
logger = logging.getLogger("threadpulse")

EXTENSIONS = ("cogs.threadpulse_daily",)

# Slash command errors a player can fix themselves
USER_ERRORS = {
    app_commands.MissingPermissions: "❌ Only moderators can boost clues.",
    app_commands.NoPrivateMessage: "❌ Boosting only works inside a server.",
}

bot = commands.Bot(command_prefix="!", intents=discord.Intents.default())


async def load_extensions(bot: commands.Bot):
    """
    Loads the ThreadPulse cog. A broken puzzle bank aborts startup:
    there is nothing to serve without one.
    """
    for name in EXTENSIONS:
        try:
            await bot.load_extension(name)
        except commands.ExtensionFailed as e:
            if isinstance(e.original, PuzzleBankError):
                logger.critical(f"🧩 Puzzle bank unusable: {e.original}")
            raise
        logger.info(f"🧩 Loaded {name}")


def user_message(error: app_commands.AppCommandError) -> str:
    for kind, message in USER_ERRORS.items():
        if isinstance(error, kind):
            return message
    return "❌ Something went wrong with ThreadPulse. Try again in a moment."


# =========================
# EVENTS
# =========================
@bot.event
async def setup_hook():
    synced = await bot.tree.sync()
    logger.info(f"🔧 Synced {len(synced)} ThreadPulse commands")


@bot.event
async def on_ready():
    cog = bot.get_cog("ThreadPulseDaily")
    logger.info(f"✅ Logged in as {bot.user} in {len(bot.guilds)} guild(s)")
    if cog is not None:
        today = cog.engine.snapshot()
        logger.info(f"🧩 Today is {today.day_key}: {today.puzzle_id} ({today.category})")

    for guild in bot.guilds:
        if not discord.utils.get(guild.text_channels, name=THREADPULSE_CHANNEL):
            logger.warning(f"⚠️  {guild} has no #{THREADPULSE_CHANNEL} channel; announcements skipped there")


@bot.event
async def on_error(event: str, *args, **kwargs):
    logger.error(f"❌ Unhandled error in '{event}':\n{traceback.format_exc()}")


@bot.tree.error
async def on_app_command_error(interaction: discord.Interaction, error: app_commands.AppCommandError):
    cmd_name = interaction.command.name if interaction.command else "unknown"
    message = user_message(error)

    if message.startswith("❌ Something"):
        logger.error(f"❌ /{cmd_name} failed for {interaction.user.id}: {type(error).__name__}: {error}")
    else:
        logger.info(f"/{cmd_name} refused for {interaction.user.id}: {type(error).__name__}")

    try:
        if interaction.response.is_done():
            await interaction.followup.send(message, ephemeral=True)
        else:
            await interaction.response.send_message(message, ephemeral=True)
    except discord.HTTPException as e:
        logger.warning(f"Could not report /{cmd_name} error: {e}")


@bot.event
async def on_disconnect():
    logger.warning("⚠️  Disconnected from Discord")


@bot.event
async def on_resumed():
    logger.info("✅ Session resumed")


# =========================
# MAIN ENTRY
# =========================
async def main():
    if not TOKEN:
        raise RuntimeError("DISCORD_TOKEN is not set in environment or .env")

    async with bot:
        await load_extensions(bot)
        await bot.start(TOKEN)


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("👋 ThreadPulse shutting down")


if __name__ == "__main__":
    run()
