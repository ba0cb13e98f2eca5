"""
Unit tests for the chat command handlers and the Discord reply adapter.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs, urlparse

import discord
import pytest
from conftest import CHAIN_ID, GUILD_ID, MEMBER_ID, OTHER_TOKEN_ADDRESS, ROLE_ID, TOKEN_ADDRESS

from wallet_gate.bot import GENERIC_FAILURE, respond
from wallet_gate.commands import START_PROMPT, CommandHandlers, Reply
from wallet_gate.errors import NotAuthorized, ValidationError
from wallet_gate.models import ReplyRoute
from wallet_gate.verification import build_services

ADMIN_ID = "999"


@pytest.fixture
def gate(store, chains, platform):
    return build_services({}, store=store, chains=chains, platform=platform)


@pytest.fixture
def handlers(gate):
    return CommandHandlers(
        gate,
        admin_user_ids=[ADMIN_ID],
        verify_page_url="https://verify.example.com/sign",
        default_chain_id=CHAIN_ID,
    )


class TestAdminCommands:
    def test_add_role_requires_admin(self, handlers, gate):
        with pytest.raises(NotAuthorized):
            handlers.add_role(MEMBER_ID, GUILD_ID, TOKEN_ADDRESS, 1, ROLE_ID)
        assert gate.evaluator.rules(GUILD_ID) == []

    def test_add_role_uses_token_name(self, handlers, gate, chains):
        chains.names[TOKEN_ADDRESS] = "Honey"

        reply = handlers.add_role(ADMIN_ID, GUILD_ID, TOKEN_ADDRESS.lower(), 3, ROLE_ID)

        assert reply.content == f"Role <@&{ROLE_ID}> now requires 3 Honey on chain {CHAIN_ID}."
        rule = gate.evaluator.rules(GUILD_ID)[0]
        assert rule.chain_id == CHAIN_ID
        assert rule.minimum_balance == 3

    def test_add_role_falls_back_to_address(self, handlers):
        reply = handlers.add_role(ADMIN_ID, GUILD_ID, TOKEN_ADDRESS, 1, ROLE_ID, chain_id=1)

        assert TOKEN_ADDRESS in reply.content
        assert "chain 1." in reply.content

    def test_add_role_outside_guild(self, handlers):
        with pytest.raises(ValidationError, match="only be used in a server"):
            handlers.add_role(ADMIN_ID, None, TOKEN_ADDRESS, 1, ROLE_ID)

    def test_add_role_invalid_address(self, handlers):
        with pytest.raises(ValidationError, match="Invalid address"):
            handlers.add_role(ADMIN_ID, GUILD_ID, "0xnope", 1, ROLE_ID)

    def test_list_roles_empty(self, handlers):
        assert handlers.list_roles(ADMIN_ID, GUILD_ID).content == "No token-gated roles configured."

    def test_list_roles_filtered_by_token(self, handlers):
        handlers.add_role(ADMIN_ID, GUILD_ID, TOKEN_ADDRESS, 1, ROLE_ID)
        handlers.add_role(ADMIN_ID, GUILD_ID, OTHER_TOKEN_ADDRESS, 2, "2002")

        everything = handlers.list_roles(ADMIN_ID, GUILD_ID).content
        filtered = handlers.list_roles(ADMIN_ID, GUILD_ID, token_address=OTHER_TOKEN_ADDRESS).content

        assert len(everything.splitlines()) == 2
        assert filtered == f"<@&2002>: 2 of {OTHER_TOKEN_ADDRESS} (chain {CHAIN_ID})"

    def test_list_roles_requires_admin(self, handlers):
        with pytest.raises(NotAuthorized):
            handlers.list_roles(MEMBER_ID, GUILD_ID)


class TestMemberCommands:
    def test_start(self, handlers):
        assert handlers.start() == Reply(START_PROMPT)

    def test_add_wallet_returns_signing_link(self, handlers, store):
        reply = handlers.add_wallet(MEMBER_ID, GUILD_ID, channel_id="55", application_id="app",
                                    interaction_token="itok")

        assert reply.url_label == "Sign message"
        url = urlparse(reply.url)
        assert f"{url.scheme}://{url.netloc}{url.path}" == "https://verify.example.com/sign"
        query = parse_qs(url.query)
        assert query["subjectId"] == [MEMBER_ID]
        route = ReplyRoute.from_json(query["replyToken"][0], store.get_reply_route(query["replyToken"][0]))
        assert route.guild_id == GUILD_ID
        assert route.interaction_token == "itok"
        assert store.get_challenge(MEMBER_ID) is not None
        assert "5 minute(s)" in reply.content

    def test_verify_without_wallets(self, handlers):
        assert "No wallets linked yet" in handlers.verify(MEMBER_ID, GUILD_ID).content

    def test_verify_grants_then_reports_nothing_new(self, handlers, store, chains, wallet):
        handlers.add_role(ADMIN_ID, GUILD_ID, TOKEN_ADDRESS, 1, ROLE_ID)
        store.add_binding(MEMBER_ID, wallet.address, "0xsig")
        chains.set_balance(CHAIN_ID, TOKEN_ADDRESS, wallet.address, 1)

        assert handlers.verify(MEMBER_ID, GUILD_ID).content == "Granted 1 new role(s)."
        assert "already have every role" in handlers.verify(MEMBER_ID, GUILD_ID).content

    def test_verify_not_qualified(self, handlers, store, wallet):
        handlers.add_role(ADMIN_ID, GUILD_ID, TOKEN_ADDRESS, 1, ROLE_ID)
        store.add_binding(MEMBER_ID, wallet.address, "0xsig")

        assert "do not qualify" in handlers.verify(MEMBER_ID, GUILD_ID).content

    def test_list_wallets(self, handlers, store, wallet, other_wallet):
        store.add_binding(MEMBER_ID, other_wallet.address, "0xsig")
        store.add_binding(MEMBER_ID, wallet.address, "0xsig")

        lines = handlers.list_wallets(MEMBER_ID).content.splitlines()

        assert lines[0] == "Linked wallets:"
        assert lines[1:] == [f"- `{address}`" for address in sorted([wallet.address, other_wallet.address])]


def _interaction():
    interaction = MagicMock()
    interaction.response.defer = AsyncMock()
    interaction.followup.send = AsyncMock()
    return interaction


class TestRespond:
    def test_plain_reply(self):
        interaction = _interaction()

        asyncio.run(respond(interaction, lambda: Reply("done")))

        interaction.response.defer.assert_awaited_once_with(ephemeral=True, thinking=True)
        interaction.followup.send.assert_awaited_once_with("done", ephemeral=True)

    def test_reply_with_link_button(self):
        interaction = _interaction()

        asyncio.run(respond(interaction, lambda: Reply("go", url="https://x.example", url_label="Sign message")))

        view = interaction.followup.send.call_args.kwargs["view"]
        button = view.children[0]
        assert button.url == "https://x.example"
        assert button.style == discord.ButtonStyle.link

    def test_gate_error_message_is_shown(self):
        interaction = _interaction()

        def handler():
            raise NotAuthorized()

        asyncio.run(respond(interaction, handler))

        interaction.followup.send.assert_awaited_once_with(NotAuthorized.default_message, ephemeral=True)

    def test_unexpected_error_is_hidden(self):
        interaction = _interaction()

        def handler():
            raise RuntimeError("secret details")

        asyncio.run(respond(interaction, handler))

        interaction.followup.send.assert_awaited_once_with(GENERIC_FAILURE, ephemeral=True)
