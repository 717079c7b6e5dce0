import asyncio
from unittest.mock import patch, AsyncMock, MagicMock

import pytest

from mqtt_tool.cli.main import build_parser, main_application_runner, shutdown
from mqtt_tool.errors import AuthenticationError


def test_parser_global_flags():
    args = build_parser().parse_args(["-v", "-b", "sub"])
    assert args.verbose is True
    assert args.batch == 100
    assert args.command == "sub"
    assert args.topic == "#"


def test_parser_pub_options():
    args = build_parser().parse_args(["pub", "-r", "-a", "a/b", "raw text"])
    assert (args.topic, args.message, args.retain, args.raw) == ("a/b", "raw text", True, True)


def test_parser_batch_value_and_defaults():
    args = build_parser().parse_args(["--batch", "250", "restore"])
    assert args.batch == 250
    assert args.file == ""
    assert build_parser().parse_args(["backup"]).batch is None


@pytest.fixture
def mock_session():
    session = MagicMock()
    session.start = AsyncMock()
    session.stop = AsyncMock()
    session.wait_ready = AsyncMock()
    return session


@pytest.mark.asyncio
@patch('mqtt_tool.cli.main.load_config', return_value={})
@patch('mqtt_tool.cli.main.resolve_connection_config')
@patch('mqtt_tool.cli.main.Session')
async def test_runs_one_shot_command_and_exits(MockSession, mock_resolve, mock_load_config, mock_session):
    MockSession.return_value = mock_session
    command = AsyncMock()

    with patch.dict('mqtt_tool.cli.main.COMMANDS', {'pub': command}):
        status = await main_application_runner(["pub", "a/b", "1"])

    assert status == 0
    mock_resolve.assert_called_once()
    mock_session.start.assert_awaited_once()
    mock_session.wait_ready.assert_awaited_once()
    command.assert_awaited_once()
    ctx = command.await_args.args[0]
    assert ctx.session is mock_session
    assert ctx.args.topic == "a/b"
    mock_session.stop.assert_awaited_once()


@pytest.mark.asyncio
@patch('mqtt_tool.cli.main.load_config', return_value={})
@patch('mqtt_tool.cli.main.resolve_connection_config')
@patch('mqtt_tool.cli.main.Session')
async def test_batch_timeout_stops_subscription_command(MockSession, mock_resolve, mock_load_config, mock_session):
    MockSession.return_value = mock_session

    async def forever(ctx):
        await asyncio.Future()

    with patch.dict('mqtt_tool.cli.main.COMMANDS', {'sub': forever}):
        status = await asyncio.wait_for(main_application_runner(["--batch", "20", "sub"]), timeout=2.0)

    assert status == 0
    mock_session.stop.assert_awaited_once()


@pytest.mark.asyncio
@patch('mqtt_tool.cli.main.load_config', return_value={})
@patch('mqtt_tool.cli.main.resolve_connection_config', side_effect=AuthenticationError("No authentication method found"))
@patch('mqtt_tool.cli.main.Session')
async def test_auth_failure_is_fatal(MockSession, mock_resolve, mock_load_config, caplog):
    status = await main_application_runner(["sub"])
    assert status == 1
    MockSession.assert_not_called()
    assert "No authentication method found" in caplog.text


@pytest.mark.asyncio
@patch('mqtt_tool.cli.main.load_config', return_value={})
@patch('mqtt_tool.cli.main.resolve_connection_config')
@patch('mqtt_tool.cli.main.Session')
async def test_missing_input_file_fails(MockSession, mock_resolve, mock_load_config, mock_session, tmp_path):
    MockSession.return_value = mock_session
    status = await main_application_runner(["restore", str(tmp_path / "absent.json")])
    assert status == 1
    mock_session.stop.assert_awaited_once()


@pytest.mark.asyncio
async def test_shutdown_cancels_command():
    command_task = MagicMock()
    await shutdown("SIGINT", command_task)
    command_task.cancel.assert_called_once()
