import discord
from discord.ext import commands
import logging
from typing import List, Optional
import os
from pathlib import Path

from .config_manager import ConfigManager
from .data_manager import QuestionProvider, create_question_provider
from .quiz_controller import QuizController, SessionNotFoundError
from .session_machine import Phase, Restart, SessionState
from .views import build_embed, build_screen

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO", log_directory: str = "logs"):
    """Set up console and file logging for the bot."""
    # Create logs directory if it doesn't exist
    logs_dir = Path(log_directory)
    logs_dir.mkdir(parents=True, exist_ok=True)

    # Configure root logger
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),  # Console output
            logging.FileHandler(logs_dir / "bot.log", encoding='utf-8'),  # File output
        ]
    )

    # Set up error-specific logging
    error_handler = logging.FileHandler(logs_dir / "errors.log", encoding='utf-8')
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))
    logging.getLogger().addHandler(error_handler)

    # Reduce discord.py noise
    logging.getLogger('discord').setLevel(logging.WARNING)
    logging.getLogger('discord.http').setLevel(logging.WARNING)

    return logging.getLogger(__name__)


class DiscordPresenter:
    """Renders one channel's quiz session into a single Discord message."""

    def __init__(
        self,
        channel: discord.abc.Messageable,
        controller: QuizController,
        channel_id: int,
        count_options: List[int],
        owner_id: Optional[int] = None
    ):
        self.channel = channel
        self.controller = controller
        self.channel_id = channel_id
        self.count_options = count_options
        self.owner_id = owner_id
        self.message: Optional[discord.Message] = None
        self.view: Optional[discord.ui.View] = None
        self._screen_key = None

    async def dispatch(self, event) -> None:
        try:
            await self.controller.dispatch(self.channel_id, event)
        except SessionNotFoundError:
            logger.debug(f"Dropped {type(event).__name__} for closed session in channel {self.channel_id}")

    async def render(self, state: SessionState) -> None:
        """Send or update the session message for ``state``."""
        screen_key = (state.phase, state.current_index)
        try:
            if self.message is not None and screen_key == self._screen_key:
                # Same screen, only the countdown changed; keep the buttons.
                embed = build_embed(state, self.count_options)
                await self.message.edit(embed=embed)
                return

            embed, view = build_screen(state, self.dispatch, self.count_options, self.owner_id)
            if self.message is None:
                self.message = await self.channel.send(embed=embed, view=view)
            else:
                await self.message.edit(embed=embed, view=view)

            if self.view is not None:
                self.view.stop()
            self.view = view
            self._screen_key = screen_key

        except discord.HTTPException as e:
            logger.error(f"Failed to render quiz for channel {self.channel_id}: {e}")

    async def detach(self) -> None:
        """Stop the current view and strip its buttons from the session message."""
        if self.view is not None:
            self.view.stop()
            self.view = None
        if self.message is None:
            return
        try:
            await self.message.edit(view=None)
        except discord.HTTPException as e:
            logger.warning(f"Failed to clear buttons for channel {self.channel_id}: {e}")


class QuizBot(commands.Bot):
    """Discord bot that runs interactive quiz sessions"""

    def __init__(self, config=None, provider: Optional[QuestionProvider] = None):
        intents = discord.Intents.none()
        intents.guilds = True  # Required for slash commands

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}
        self.config_manager = ConfigManager()
        self.provider = provider
        self.quiz_controller: Optional[QuizController] = None
        self.presenters = {}

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")

            errors = self.config_manager.apply_config(self.app_config)
            for error in errors:
                logger.warning(f"Ignoring invalid setting {error}")

            if self.provider is None:
                self.provider = create_question_provider(self.config_manager)
            self.quiz_controller = QuizController(self.provider)

            await self.setup_commands()

            logger.info("Bot setup completed successfully")

        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    async def setup_commands(self):
        """Register all slash commands"""

        @self.tree.command(name="help", description="Display available commands and their descriptions")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="quiz", description="Start a new quiz in this channel")
        async def quiz_command(interaction: discord.Interaction):
            await self.handle_quiz(interaction)

        @self.tree.command(name="restart", description="Discard the current quiz and start over")
        async def restart_command(interaction: discord.Interaction):
            await self.handle_restart(interaction)

        @self.tree.command(name="status", description="Show current quiz status and progress")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        logger.info("Slash commands registered successfully")

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user}")
        logger.info(f"Bot is in {len(self.guilds)} guilds")

        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    async def close(self):
        if self.quiz_controller is not None:
            await self.quiz_controller.close_all()
        await super().close()

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send error response to user with fallback handling"""
        try:
            embed = discord.Embed(
                title=title,
                description=message,
                color=0xff0000
            )

            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)

        except discord.HTTPException as e:
            logger.error(f"Failed to send error embed: {e}")
            # Fallback to simple message
            try:
                simple_message = f"{title}: {message}"
                if interaction.response.is_done():
                    await interaction.followup.send(simple_message, ephemeral=True)
                else:
                    await interaction.response.send_message(simple_message, ephemeral=True)
            except discord.HTTPException:
                logger.error("Failed to send fallback error message")

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send an ephemeral informational response"""
        try:
            embed = discord.Embed(
                title=title,
                description=message,
                color=0x3498db
            )

            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send info response to user")

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        try:
            help_embed = discord.Embed(
                title="🎯 Quiz Master Commands",
                description="Answer multiple-choice questions against the clock",
                color=0x00ff00
            )

            help_embed.add_field(
                name="🎮 Commands",
                value=(
                    "`/quiz` - Start a new quiz in this channel\n"
                    "`/restart` - Discard the current quiz and choose again\n"
                    "`/status` - Show the current quiz progress\n"
                    "`/help` - Show this message"
                ),
                inline=False
            )

            settings_summary = self.config_manager.get_settings_summary()
            help_embed.add_field(
                name="⚙️ Current Settings",
                value=f"```\n{settings_summary}\n```",
                inline=False
            )

            help_embed.set_footer(text="Use the buttons on the quiz message to play")

            await interaction.response.send_message(embed=help_embed, ephemeral=True)

        except discord.HTTPException as e:
            logger.error(f"Error in help command: {e}")
            await self.send_error_response(interaction, "Failed to display help information", "❌ Help Error")

    async def handle_quiz(self, interaction: discord.Interaction):
        """Handle /quiz command"""
        channel_id = interaction.channel_id

        if self.quiz_controller.has_active_session(channel_id):
            summary = self.quiz_controller.get_session_status_summary(channel_id)
            await self.send_error_response(
                interaction,
                f"A quiz is already running in this channel.\n{summary}\n\nUse `/restart` to discard it.",
                "❌ Quiz In Progress"
            )
            return

        presenter = DiscordPresenter(
            interaction.channel,
            self.quiz_controller,
            channel_id,
            self.config_manager.get_count_options(),
            owner_id=interaction.user.id
        )
        previous = self.presenters.pop(channel_id, None)
        runner = await self.quiz_controller.open_session(channel_id, presenter.render)
        self.presenters[channel_id] = presenter
        if previous is not None:
            # The old session is closed; its message must not keep live buttons.
            await previous.detach()

        await self.send_info_response(interaction, "Pick how many questions you want below.", "🎯 Quiz Opened")
        await presenter.render(runner.state)

    async def handle_restart(self, interaction: discord.Interaction):
        """Handle /restart command"""
        try:
            await self.quiz_controller.dispatch(interaction.channel_id, Restart())
        except SessionNotFoundError:
            await self.send_error_response(
                interaction,
                "There is no quiz in this channel. Use `/quiz` to start one.",
                "❌ No Quiz"
            )
            return

        await self.send_info_response(interaction, "The quiz was reset.", "🔄 Restarted")

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        channel_id = interaction.channel_id
        progress = self.quiz_controller.get_session_progress(channel_id)

        if progress is None:
            await self.send_info_response(
                interaction,
                "No quiz in this channel. Use `/quiz` to start one.",
                "📊 Quiz Status"
            )
            return

        embed = discord.Embed(
            title="📊 Quiz Status",
            description=self.quiz_controller.get_session_status_summary(channel_id),
            color=0x00ff00 if progress['phase'] == Phase.ACTIVE.value else 0x3498db
        )
        embed.add_field(
            name="Details",
            value=(
                f"Questions: {progress['total_questions'] or progress['requested_count'] or '-'}\n"
                f"Answered: {progress['answered']}\n"
                f"Score: {progress['score']}"
            ),
            inline=False
        )
        try:
            await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException as e:
            logger.error(f"Error in status command: {e}")


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    # Fall back to environment variable if no token provided
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = QuizBot(config)

    try:
        logger.info("Starting Quiz Master bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
