from __future__ import annotations

import logging

import discord
from discord.ext import commands
from dotenv import load_dotenv

from .api import create_app
from .commands import register_commands
from .config import BotConfig, load_config, load_http_config
from .container import Container, build_container
from .timezones import SystemClock


class TimeClockBot(commands.Bot):
    def __init__(self, config: BotConfig, container: Container) -> None:
        # Slash commands only need guild metadata.
        intents = discord.Intents.none()
        intents.guilds = True

        super().__init__(command_prefix="!", intents=intents)

        self.config = config
        self.container = container
        self.clock = container.tracker.clock

        self.logger = logging.getLogger("timeclock-bot")

    async def setup_hook(self) -> None:
        register_commands(self)
        await self.tree.sync(guild=discord.Object(id=self.config.guild_id))

    async def on_ready(self) -> None:
        self.logger.info("Connected as %s (%s)", self.user, self.user.id if self.user else "unknown")

    async def close(self) -> None:
        self.container.db.close()
        await super().close()


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def main() -> None:
    load_dotenv()
    configure_logging()

    config = load_config()
    container = build_container(config.db_path, clock=SystemClock())

    bot = TimeClockBot(config=config, container=container)
    bot.run(config.discord_token)


def serve() -> None:
    load_dotenv()
    configure_logging()

    config = load_http_config()
    container = build_container(config.db_path, clock=SystemClock())

    app = create_app(container)
    logging.getLogger("timeclock-http").info("Serving stats API on %s:%s", config.host, config.port)
    try:
        app.run(host=config.host, port=config.port)
    finally:
        container.db.close()


if __name__ == "__main__":
    main()
