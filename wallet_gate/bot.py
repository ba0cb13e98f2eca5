"""
Discord gateway bot: slash commands and the persistent verification buttons.

All logic lives in ``wallet_gate.commands``; this module only adapts
interactions to handler calls. Handlers block on the store and chain RPCs, so
they run in worker threads.
"""

import asyncio
import logging
from typing import Callable, Optional

import discord
from discord import app_commands

from wallet_gate.commands import CommandHandlers, Reply
from wallet_gate.errors import GateError

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Something went wrong. Please try again later."


def build_reply_view(reply: Reply) -> Optional[discord.ui.View]:
    if not reply.url:
        return None
    view = discord.ui.View()
    view.add_item(discord.ui.Button(label=reply.url_label, style=discord.ButtonStyle.link, url=reply.url))
    return view


async def respond(interaction: discord.Interaction, handler: Callable[[], Reply], ephemeral: bool = True) -> None:
    """Run ``handler`` off the event loop and send its reply (or error) to the user."""
    await interaction.response.defer(ephemeral=ephemeral, thinking=True)
    try:
        reply = await asyncio.to_thread(handler)
    except GateError as e:
        await interaction.followup.send(e.message, ephemeral=True)
        return
    except Exception:
        logger.exception(f"Interaction {interaction.id} failed")
        await interaction.followup.send(GENERIC_FAILURE, ephemeral=True)
        return

    view = build_reply_view(reply)
    if view is None:
        await interaction.followup.send(reply.content, ephemeral=ephemeral)
    else:
        await interaction.followup.send(reply.content, view=view, ephemeral=ephemeral)


def _guild_id(interaction: discord.Interaction) -> Optional[str]:
    return str(interaction.guild_id) if interaction.guild_id else None


class StartView(discord.ui.View):
    """Buttons posted by ``/start``; persistent across restarts via fixed custom ids."""

    def __init__(self, handlers: CommandHandlers):
        super().__init__(timeout=None)
        self.handlers = handlers

    @discord.ui.button(label="Verify", style=discord.ButtonStyle.primary, custom_id="wallet_gate:verify")
    async def verify(self, interaction: discord.Interaction, button: discord.ui.Button):
        user_id, guild_id = str(interaction.user.id), _guild_id(interaction)
        await respond(interaction, lambda: self.handlers.verify(user_id, guild_id))

    @discord.ui.button(label="Add Wallet", style=discord.ButtonStyle.success, custom_id="wallet_gate:add_wallet")
    async def add_wallet(self, interaction: discord.Interaction, button: discord.ui.Button):
        user_id, guild_id = str(interaction.user.id), _guild_id(interaction)
        channel_id = str(interaction.channel_id) if interaction.channel_id else None
        application_id = str(interaction.application_id)
        token = interaction.token
        await respond(
            interaction,
            lambda: self.handlers.add_wallet(
                user_id,
                guild_id,
                channel_id=channel_id,
                application_id=application_id,
                interaction_token=token,
            ),
        )

    @discord.ui.button(label="List Wallets", style=discord.ButtonStyle.secondary, custom_id="wallet_gate:list_wallets")
    async def list_wallets(self, interaction: discord.Interaction, button: discord.ui.Button):
        user_id = str(interaction.user.id)
        await respond(interaction, lambda: self.handlers.list_wallets(user_id))


class GateBot(discord.Client):
    def __init__(self, handlers: CommandHandlers, sync_guild_id: Optional[str] = None):
        intents = discord.Intents.default()
        intents.guilds = True
        # Slash commands and buttons only; no message content needed.
        intents.message_content = False
        super().__init__(intents=intents)
        self.handlers = handlers
        self.sync_guild_id = sync_guild_id
        self.tree = app_commands.CommandTree(self)
        register_commands(self.tree, handlers)

    async def setup_hook(self) -> None:
        self.add_view(StartView(self.handlers))
        if self.sync_guild_id:
            guild_obj = discord.Object(id=int(self.sync_guild_id))
            self.tree.copy_global_to(guild=guild_obj)
            await self.tree.sync(guild=guild_obj)
            logger.info(f"Slash commands synced to guild {self.sync_guild_id}")
        else:
            await self.tree.sync()
            logger.info("Slash commands synced globally")

    async def on_ready(self):
        logger.info(f"Logged in as {self.user} (ID: {self.user.id})")


def register_commands(tree: app_commands.CommandTree, handlers: CommandHandlers) -> None:
    @tree.command(name="start", description="Post the wallet verification prompt")
    async def start_cmd(interaction: discord.Interaction):
        await interaction.response.send_message(handlers.start().content, view=StartView(handlers))

    @tree.command(name="add_role", description="Gate a role on holding a token (admin only)")
    @app_commands.describe(
        address="Token contract address",
        count="Minimum balance in raw token units",
        chain_id="Chain id of the token contract",
        role="Role to grant",
    )
    async def add_role_cmd(interaction: discord.Interaction, address: str, count: app_commands.Range[int, 0],
                           role: discord.Role, chain_id: Optional[int] = None):
        actor_id, guild_id = str(interaction.user.id), _guild_id(interaction)
        await respond(
            interaction,
            lambda: handlers.add_role(actor_id, guild_id, address, count, str(role.id), chain_id=chain_id),
        )

    @tree.command(name="list_roles", description="List token-gated roles (admin only)")
    @app_commands.describe(address="Only show roles gated on this token contract")
    async def list_roles_cmd(interaction: discord.Interaction, address: Optional[str] = None):
        actor_id, guild_id = str(interaction.user.id), _guild_id(interaction)
        await respond(interaction, lambda: handlers.list_roles(actor_id, guild_id, token_address=address))


def create_bot(cfg, services) -> GateBot:
    handlers = CommandHandlers(
        services,
        admin_user_ids=cfg.get("ADMIN_USER_IDS", []),
        verify_page_url=cfg["VERIFY_PAGE_URL"],
        default_chain_id=cfg["DEFAULT_CHAIN_ID"],
    )
    return GateBot(handlers, sync_guild_id=cfg.get("DEFAULT_GUILD_ID"))
