#!/usr/bin/env python3
import asyncio
import logging
from typing import Optional

import click

import commands
from config import get_config
from errors import ApiError, SlackCliError
from output import Output
from slack_client import SlackClient

__version__ = "0.1.0"

logger = logging.getLogger(__name__)


def setup_logging(log_level: str, log_file: Optional[str] = None):
    """Setup logging configuration"""
    level = getattr(logging, log_level.upper(), logging.WARNING)
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def _enable_flag(name: str):
    def callback(ctx, param, value):
        if value:
            ctx.find_object(dict)[name] = True
        return value
    return callback


def output_options(f):
    """Accept --json/--quiet after the subcommand as well as before it"""
    f = click.option('-q', '--quiet', is_flag=True, expose_value=False, callback=_enable_flag('quiet'),
                     help='Suppress status messages and human-readable output')(f)
    f = click.option('--json', is_flag=True, expose_value=False, callback=_enable_flag('json'),
                     help='Output JSON instead of human-readable format')(f)
    return f


def get_output(ctx) -> Output:
    obj = ctx.find_object(dict)
    return Output(json=obj.get('json', False), quiet=obj.get('quiet', False))


def run_async(ctx, func, *args, **kwargs):
    """Run a command coroutine with a Slack client, reporting failures on stderr"""
    output = get_output(ctx)
    obj = ctx.find_object(dict)
    try:
        config = get_config(obj.get('token'))
        obj['config'] = config
        client = SlackClient(config)
        asyncio.run(func(client, output, *args, **kwargs))
    except (SlackCliError, OSError) as e:
        output.error(str(e))
        ctx.exit(1)
    except KeyError as e:
        logger.debug("Malformed Slack payload", exc_info=True)
        output.error(str(ApiError(f"unexpected response, missing field {e}")))
        ctx.exit(1)


def run_local(ctx, func, *args, **kwargs):
    """Run a command that needs no Slack token"""
    output = get_output(ctx)
    try:
        func(output, *args, **kwargs)
    except (SlackCliError, OSError) as e:
        output.error(str(e))
        ctx.exit(1)


@click.group()
@click.option('--token', help='Slack token (or set SLACK_TOKEN env var)')
@click.option('--json', 'json_output', is_flag=True, help='Output JSON instead of human-readable format')
@click.option('-q', '--quiet', is_flag=True, help='Suppress status messages and human-readable output')
@click.option('--log-level', default='WARNING', envvar='LOG_LEVEL', show_default=True,
              help='Logging level (DEBUG, INFO, WARNING, ERROR)')
@click.option('--log-file', type=click.Path(dir_okay=False), help='Also write logs to this file')
@click.version_option(__version__, prog_name='slackline')
@click.pass_context
def cli(ctx, token, json_output, quiet, log_level, log_file):
    """Read-only Slack CLI for AI agents.

    \b
    WORKFLOW:
      1. me channels                 # List channels you're in
      2. channels history <ID>       # Read messages, note 'ts' for threads
      3. messages replies <ID> <TS>  # Read thread if reply_count > 0
      4. search messages '<query>'   # Search (e.g., 'from:@user' or 'to:me')

    \b
    FIND MENTIONS:
      search messages 'to:me'                # Messages sent to you
      search messages 'from:@someone'        # Messages from someone
      search messages 'in:#channel keyword'  # Keyword in channel

    Use --json for machine-readable output.
    """
    ctx.ensure_object(dict)
    setup_logging(log_level, log_file)
    ctx.obj['token'] = token
    ctx.obj['json'] = json_output
    ctx.obj['quiet'] = quiet


# -- token / auth ----------------------------------------------------------------


@cli.group()
def token():
    """Test, create, and inspect Slack tokens"""


@token.command('test')
@output_options
@click.pass_context
def token_test(ctx):
    """Test token and show workspace/user info"""
    run_async(ctx, commands.token_test)


@token.command('create')
@output_options
@click.pass_context
def token_create(ctx):
    """Show how to create a Slack user token for slackline"""
    run_local(ctx, commands.token_create)


@token.command('manifest')
@output_options
@click.pass_context
def token_manifest(ctx):
    """Print the Slack app manifest with the scopes slackline needs"""
    run_local(ctx, commands.token_manifest)


@cli.group()
def auth():
    """Verify token and show workspace info"""


auth.add_command(token_test, 'test')


# -- channels --------------------------------------------------------------------


@cli.group()
def channels():
    """List channels, read messages, get members"""


@channels.command('list')
@click.option('-l', '--limit', type=int, default=100, show_default=True, help='Max channels to return')
@output_options
@click.pass_context
def channels_list(ctx, limit):
    """List channels (returns id, name, topic, member count)"""
    run_async(ctx, commands.channels_list, limit=limit)


@channels.command('info')
@click.argument('channel')
@output_options
@click.pass_context
def channels_info(ctx, channel):
    """Get channel details by ID (e.g., C1RCG46LS)"""
    run_async(ctx, commands.channels_info, channel)


@channels.command('history')
@click.argument('channel')
@click.option('-l', '--limit', type=int, default=20, show_default=True, help='Max messages to return')
@output_options
@click.pass_context
def channels_history(ctx, channel, limit):
    """Read recent messages from channel"""
    run_async(ctx, commands.channels_history, channel, limit=limit)


@channels.command('members')
@click.argument('channel')
@click.option('-l', '--limit', type=int, default=100, show_default=True, help='Max members to return')
@output_options
@click.pass_context
def channels_members(ctx, channel, limit):
    """List channel member user IDs"""
    run_async(ctx, commands.channels_members, channel, limit=limit)


# -- users -----------------------------------------------------------------------


@cli.group()
def users():
    """List users, get info and presence"""


@users.command('list')
@click.option('-l', '--limit', type=int, default=100, show_default=True, help='Max users to return')
@output_options
@click.pass_context
def users_list(ctx, limit):
    """List users (returns id, name, real_name, title)"""
    run_async(ctx, commands.users_list, limit=limit)


@users.command('info')
@click.argument('user')
@output_options
@click.pass_context
def users_info(ctx, user):
    """Get user details by ID (e.g., U032LQBJTH8)"""
    run_async(ctx, commands.users_info, user)


@users.command('search')
@click.argument('query')
@output_options
@click.pass_context
def users_search(ctx, query):
    """Find users by name, display name, real name or email"""
    run_async(ctx, commands.users_search, query)


@users.command('presence')
@click.argument('user')
@output_options
@click.pass_context
def users_presence(ctx, user):
    """Check if user is online or away"""
    run_async(ctx, commands.users_presence, user)


# -- messages --------------------------------------------------------------------


@cli.group()
def messages():
    """Read thread replies, get permalinks"""


@messages.command('replies')
@click.argument('channel')
@click.argument('thread_ts')
@click.option('-l', '--limit', type=int, default=100, show_default=True, help='Max replies to return')
@output_options
@click.pass_context
def messages_replies(ctx, channel, thread_ts, limit):
    """Read thread replies (use ts from parent message, e.g., 1769415774.159039)"""
    run_async(ctx, commands.messages_replies, channel, thread_ts, limit=limit)


@messages.command('permalink')
@click.argument('channel')
@click.argument('message_ts')
@output_options
@click.pass_context
def messages_permalink(ctx, channel, message_ts):
    """Get shareable URL for a message"""
    run_async(ctx, commands.messages_permalink, channel, message_ts)


# -- dms -------------------------------------------------------------------------


@cli.group()
def dms():
    """Direct messages (IMs and group DMs)"""


@dms.command('list')
@click.option('-l', '--limit', type=int, default=50, show_default=True, help='Max DMs to return')
@output_options
@click.pass_context
def dms_list(ctx, limit):
    """List DM conversations (returns channel ID for each)"""
    run_async(ctx, commands.dms_list, limit=limit)


@dms.command('history')
@click.argument('dm_channel')
@click.option('-l', '--limit', type=int, default=20, show_default=True, help='Max messages to return')
@output_options
@click.pass_context
def dms_history(ctx, dm_channel, limit):
    """Read DM history (use DM channel ID from 'dms list', e.g., D01234567)"""
    run_async(ctx, commands.dms_history, dm_channel, limit=limit)


# -- files -----------------------------------------------------------------------


@cli.group()
def files():
    """List, inspect and download files"""


@files.command('list')
@click.option('--channel', help='Only files shared in this channel ID')
@click.option('--user', help='Only files uploaded by this user ID')
@click.option('-l', '--limit', type=int, help='Max files to return')
@output_options
@click.pass_context
def files_list(ctx, channel, user, limit):
    """List files"""
    run_async(ctx, commands.files_list, channel=channel, user=user, limit=limit)


@files.command('info')
@click.argument('file_id')
@output_options
@click.pass_context
def files_info(ctx, file_id):
    """Get file info by ID"""
    run_async(ctx, commands.files_info, file_id)


@files.command('download')
@click.argument('file_id')
@click.option('-o', '--output', 'output_path', type=click.Path(dir_okay=False),
              help='Write to this path instead of stdout')
@output_options
@click.pass_context
def files_download(ctx, file_id, output_path):
    """Download a file to stdout or a path"""
    run_async(ctx, commands.files_download, file_id, output_path=output_path)


# -- me --------------------------------------------------------------------------


@cli.group()
def me():
    """Current user shortcuts"""


@me.command('channels')
@click.option('-l', '--limit', type=int, default=100, show_default=True, help='Max channels to return')
@click.option('--dms', is_flag=True, help='Include DMs in the list')
@click.option('--unread', is_flag=True, help='Only show channels with unread messages')
@output_options
@click.pass_context
def me_channels(ctx, limit, dms, unread):
    """List channels you're a member of"""
    def call(client, output):
        return commands.me_channels(client, output, limit=limit, include_dms=dms, unread_only=unread,
                                    concurrency=ctx.obj['config'].unread_concurrency)

    run_async(ctx, call)


# -- search ----------------------------------------------------------------------


@cli.group()
def search():
    """Search messages across workspace"""


@search.command('messages')
@click.argument('query')
@click.option('-l', '--limit', type=int, default=20, show_default=True, help='Max results to return')
@output_options
@click.pass_context
def search_messages(ctx, query, limit):
    """Search messages (supports Slack search syntax)

    \b
    Examples:
      'to:me'              - Messages sent to you
      'from:@username'     - Messages from a user
      'in:#channel word'   - Word in specific channel
      'has:link'           - Messages with links
      'before:today'       - Messages before today
    """
    run_async(ctx, commands.search_messages, query, limit=limit)


if __name__ == '__main__':
    cli()
