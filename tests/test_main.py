"""CLI tests: flag placement, exit codes and commands that need no token."""

import json

import main
from errors import ChannelNotFoundError


class TestGlobalFlags:
    def test_json_before_subcommand(self, runner, cli_client):
        cli_client.list_channels.return_value = [{"id": "C1", "name": "general"}]
        result = runner.invoke(main.cli, ["--json", "channels", "list"])
        assert result.exit_code == 0
        assert json.loads(result.output)[0]["id"] == "C1"

    def test_json_after_subcommand(self, runner, cli_client):
        cli_client.list_channels.return_value = [{"id": "C1", "name": "general"}]
        result = runner.invoke(main.cli, ["channels", "list", "--json", "-l", "5"])
        assert result.exit_code == 0
        assert json.loads(result.output)[0]["name"] == "general"
        cli_client.list_channels.assert_awaited_once_with(limit=5)

    def test_quiet_json_outputs_only_payload(self, runner, cli_client):
        cli_client.auth_test.return_value = {"url": "u", "team": "t", "user": "x", "team_id": "T", "user_id": "U"}
        result = runner.invoke(main.cli, ["-q", "token", "test", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output) == {"url": "u", "team": "t", "user": "x", "team_id": "T", "user_id": "U"}

    def test_quiet_human_outputs_nothing(self, runner, cli_client):
        cli_client.list_channels.return_value = [{"id": "C1", "name": "general"}]
        result = runner.invoke(main.cli, ["channels", "list", "--quiet"])
        assert result.exit_code == 0
        assert result.output == ""

    def test_human_output(self, runner, cli_client):
        result = runner.invoke(main.cli, ["token", "test"])
        assert result.exit_code == 0
        assert "Team: Acme" in result.output
        assert "Authentication successful" in result.output


class TestCommands:
    def test_auth_test_is_alias_of_token_test(self, runner, cli_client):
        result = runner.invoke(main.cli, ["auth", "test", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output)["team_id"] == "T123"

    def test_me_channels_unread(self, runner, cli_client, monkeypatch):
        monkeypatch.setenv("UNREAD_CONCURRENCY", "2")
        cli_client.list_user_conversations.return_value = [
            {"id": "CA", "name": "alpha", "unread_count": 1},
            {"id": "CD", "name": "delta", "unread_count": 0},
            {"id": "CE", "name": "eps", "unread_count": 0},
        ]
        cli_client.get_last_read.side_effect = lambda channel_id: {"CD": "100.0", "CE": "300.0"}.get(channel_id)
        cli_client.get_latest_message_ts.return_value = "200.5"
        result = runner.invoke(main.cli, ["me", "channels", "--unread", "--dms", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert [c["id"] for c in data] == ["CA", "CD"]
        assert "has_unread" not in data[0]
        assert data[1]["has_unread"] is True

    def test_me_channels_empty_human(self, runner, cli_client):
        result = runner.invoke(main.cli, ["me", "channels"])
        assert result.exit_code == 0
        lines = result.output.splitlines()
        assert lines[0] == "My Channels"
        assert lines[-1] == "0 items"

    def test_history_default_limit(self, runner, cli_client):
        runner.invoke(main.cli, ["channels", "history", "C1", "--json"])
        cli_client.get_channel_history.assert_awaited_once_with("C1", limit=20)

    def test_search_messages(self, runner, cli_client):
        result = runner.invoke(main.cli, ["search", "messages", "from:@alice", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output) == []
        cli_client.search_messages.assert_awaited_once_with("from:@alice", count=20)

    def test_token_manifest_without_token(self, runner, no_token_env):
        result = runner.invoke(main.cli, ["token", "manifest", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output)["display_information"]["name"] == "Slackline CLI"

    def test_token_create_human_without_token(self, runner, no_token_env):
        result = runner.invoke(main.cli, ["token", "create"])
        assert result.exit_code == 0
        assert "CREATE A SLACK USER TOKEN FOR SLACKLINE" in result.output


class TestErrors:
    def test_missing_token_exits_with_error(self, runner, no_token_env):
        result = runner.invoke(main.cli, ["channels", "list", "--json", "--quiet"])
        assert result.exit_code == 1
        assert "No Slack token found" in result.output

    def test_api_error_exits_with_error(self, runner, cli_client):
        cli_client.get_channel_info.side_effect = ChannelNotFoundError("C404")
        result = runner.invoke(main.cli, ["channels", "info", "C404"])
        assert result.exit_code == 1
        assert "Channel not found: C404" in result.output

    def test_malformed_payload_exits_with_error(self, runner, cli_client):
        cli_client.list_channels.return_value = [{"name": "no-id"}]
        result = runner.invoke(main.cli, ["channels", "list", "--json"])
        assert result.exit_code == 1
        assert "missing field 'id'" in result.output
        assert "Traceback" not in result.output

    def test_token_flag_reaches_client(self, runner, no_token_env, monkeypatch, fake_client):
        seen = {}

        def make_client(config):
            seen["token"] = config.token
            return fake_client

        monkeypatch.setattr("main.SlackClient", make_client)
        result = runner.invoke(main.cli, ["--token", "xoxp-flag", "users", "list", "--json"])
        assert result.exit_code == 0
        assert seen["token"] == "xoxp-flag"
