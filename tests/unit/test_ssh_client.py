import pytest
from unittest.mock import AsyncMock, Mock, patch

from core.exceptions import RemoteCommandError, RemoteConnectionError
from core.models.config import ConnectionConfig
from core.models.instance import InstanceHandle
from core.utils.polling import retry_async
from infrastructure.ssh.ssh_client import RemoteSession, SSHClient, strip_control_sequences


def make_connection(exit_status=0, stdout="", stderr=""):
    connection = Mock()
    connection.run = AsyncMock(
        return_value=Mock(exit_status=exit_status, stdout=stdout, stderr=stderr)
    )
    return connection


class TestStripControlSequences:
    """Test cases for terminal output cleanup."""

    def test_removes_colour_codes_and_carriage_returns(self):
        assert strip_control_sequences("\x1b[32mok\x1b[0m\r\n") == "ok\n"

    def test_removes_cursor_movement(self):
        assert strip_control_sequences("50%\x1b[2K\x1b[1G100%") == "50%100%"

    def test_plain_text_is_untouched(self):
        assert strip_control_sequences("Setting up nginx (1.18.0)") == "Setting up nginx (1.18.0)"

    def test_none_becomes_empty(self):
        assert strip_control_sequences(None) == ""


class TestRemoteSession:
    """Test cases for remote command execution."""

    @pytest.mark.asyncio
    async def test_run_commands_chains_with_and(self):
        connection = make_connection(stdout="done\n")
        session = RemoteSession(connection, "203.0.113.10", "ubuntu")

        result = await session.run_commands(["cd /tmp", "ls"])

        connection.run.assert_awaited_once_with("cd /tmp && ls", check=False)
        assert result.ok
        assert result.stdout == "done\n"

    @pytest.mark.asyncio
    async def test_non_zero_exit_raises(self):
        session = RemoteSession(make_connection(exit_status=2, stderr="boom"), "h", "ubuntu")

        with pytest.raises(RemoteCommandError) as exc_info:
            await session.run_commands(["false"])

        assert exc_info.value.exit_status == 2
        assert "boom" in exc_info.value.output

    @pytest.mark.asyncio
    async def test_execute_does_not_raise(self):
        session = RemoteSession(make_connection(exit_status=1), "h", "ubuntu")

        result = await session.execute("test -f /ready")

        assert not result.ok
        assert result.exit_status == 1

    @pytest.mark.asyncio
    async def test_upload_uses_scp(self):
        connection = make_connection()
        session = RemoteSession(connection, "h", "ubuntu")

        with patch("infrastructure.ssh.ssh_client.asyncssh.scp", new_callable=AsyncMock) as scp:
            await session.upload("files/www", "/tmp/mami-staging", recursive=True)

        scp.assert_awaited_once_with(
            ["files/www"], (connection, "/tmp/mami-staging"), recurse=True
        )


class TestSSHClient:
    """Test cases for connecting to build instances."""

    def make_handle(self):
        return InstanceHandle(
            build_id="b1",
            region="us-east-1",
            instance_id="i-123",
            key_name="mami-keypair-b1",
            key_material="KEY",
            public_ip="203.0.113.10",
        )

    @pytest.mark.asyncio
    async def test_connection_retries_are_bounded(self):
        client = SSHClient(ConnectionConfig(connect_timeout=1, retry_delay=0, max_attempts=3))

        with patch("infrastructure.ssh.ssh_client.asyncssh.import_private_key", return_value=Mock()), \
             patch("infrastructure.ssh.ssh_client.asyncssh.connect",
                   new_callable=AsyncMock, side_effect=OSError("Connection refused")) as connect:
            with pytest.raises(RemoteConnectionError):
                await client.connect(self.make_handle(), "ubuntu")

        assert connect.await_count == 3

    @pytest.mark.asyncio
    async def test_overall_deadline_stops_retries(self):
        client = SSHClient(ConnectionConfig(
            connect_timeout=1, retry_delay=5, max_attempts=5, total_timeout=1
        ))

        with patch("infrastructure.ssh.ssh_client.asyncssh.import_private_key", return_value=Mock()), \
             patch("infrastructure.ssh.ssh_client.asyncssh.connect",
                   new_callable=AsyncMock, side_effect=OSError("Connection refused")) as connect:
            with pytest.raises(RemoteConnectionError):
                await client.connect(self.make_handle(), "ubuntu")

        assert connect.await_count == 1

    @pytest.mark.asyncio
    async def test_connects_after_refusals(self):
        client = SSHClient(ConnectionConfig(connect_timeout=1, retry_delay=0, max_attempts=5))
        connection = make_connection()

        with patch("infrastructure.ssh.ssh_client.asyncssh.import_private_key", return_value=Mock()), \
             patch("infrastructure.ssh.ssh_client.asyncssh.connect", new_callable=AsyncMock,
                   side_effect=[OSError("refused"), OSError("refused"), connection]) as connect:
            session = await client.connect(self.make_handle(), "ubuntu")

        assert connect.await_count == 3
        assert session.host == "203.0.113.10"
        assert connect.call_args[1]["known_hosts"] is None

    @pytest.mark.asyncio
    async def test_missing_address_fails_immediately(self):
        handle = self.make_handle()
        handle.public_ip = None

        with pytest.raises(RemoteConnectionError):
            await SSHClient().connect(handle, "ubuntu")


class TestRetryAsync:
    """Test cases for the retry helper."""

    @pytest.mark.asyncio
    async def test_reraises_last_error(self):
        operation = AsyncMock(side_effect=[ValueError("one"), ValueError("two")])

        with pytest.raises(ValueError, match="two"):
            await retry_async(operation, attempts=2, delay=0)

        assert operation.await_count == 2

    @pytest.mark.asyncio
    async def test_does_not_retry_other_errors(self):
        operation = AsyncMock(side_effect=KeyError("nope"))

        with pytest.raises(KeyError):
            await retry_async(operation, attempts=5, delay=0, retry_on=(OSError,))

        assert operation.await_count == 1
