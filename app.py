import asyncio
import os
import platform

import discord
from colorama import init
from discord.ext import commands, tasks

import utils.func as func
from messaging import InboundMessage, init_pipeline

# Initialize colorama for colored logs
init(autoreset=True)

# For Windows compatibility with asyncio
if platform.system() == "Windows":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Set up Discord intents
intents = discord.Intents.default()
intents.message_content = True


class ChimpBot(commands.Bot):
    """Discord client wiring gateway events into the message pipeline"""

    def __init__(self):
        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            help_command=None
        )
        self.message_pipeline = None

    async def setup_hook(self):
        """Initial async setup"""

        # Ensure data directory exists
        os.makedirs("data", exist_ok=True)

        func.log.debug("Initializing message pipeline")
        self.message_pipeline = await init_pipeline()
        self.cleanup_relationships.start()

    async def close(self):
        """Cleanup when bot is shutting down"""
        if self.cleanup_relationships.is_running():
            self.cleanup_relationships.cancel()
        if self.message_pipeline is not None:
            await self.message_pipeline.shutdown()
            func.log.debug("Message pipeline shutdown complete")

        await super().close()

    async def on_ready(self):
        """Bot ready event handler"""
        func.log.info(f"Logged in as {self.user}!")

    @tasks.loop(hours=1)
    async def cleanup_relationships(self):
        self.message_pipeline.cleanup()


# Initialize bot instance
bot = ChimpBot()


@bot.event
async def on_message(message: discord.Message):
    """Handle incoming messages"""
    if bot.message_pipeline is None:
        return
    await bot.message_pipeline.handle_message(InboundMessage.from_discord(message))


@bot.event
async def on_raw_message_delete(payload: discord.RawMessageDeleteEvent):
    """Handle deleted messages, cached or not"""
    if bot.message_pipeline is None:
        return
    cached = payload.cached_message
    author_is_bot = bool(cached and cached.author.bot)
    await bot.message_pipeline.handle_delete(
        str(payload.channel_id),
        str(payload.message_id),
        author_is_bot=author_is_bot
    )


@bot.event
async def on_message_edit(before: discord.Message, after: discord.Message):
    """Keep conversation history in sync with edited messages"""
    if bot.message_pipeline is None or before.content == after.content:
        return
    await bot.message_pipeline.handle_edit(InboundMessage.from_discord(after))


# Start the bot
if __name__ == "__main__":
    try:
        bot.run(func.config_yaml["Discord"]["token"], log_handler=None)
    except discord.LoginFailure:
        func.log.critical("Invalid authentication token!")
    except KeyError:
        func.log.critical(f"Missing Discord.token in {func.CONFIG_FILE}")
    except Exception as e:
        func.log.critical(f"Fatal runtime error: {e}")
