"""SSH channel to a build instance, built on asyncssh."""

import asyncio
import re
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional, Sequence, Union

import asyncssh

from core.exceptions import RemoteCommandError, RemoteConnectionError
from core.models.config import ConnectionConfig
from core.models.instance import InstanceHandle
from core.utils.logger import get_infrastructure_logger
from core.utils.polling import retry_async

SSH_PORT = 22

# CSI sequences (cursor movement, screen clears, colours), other escapes and
# carriage returns emitted by remote tools that assume a terminal.
_CONTROL_SEQUENCES = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b[@-Z\\-_]|[ \t]?\r")


def strip_control_sequences(text: str) -> str:
    """Remove terminal control and escape sequences from captured output."""
    return _CONTROL_SEQUENCES.sub("", text or "")


@dataclass
class RemoteResult:
    """Outcome of one remote invocation."""
    command: str
    exit_status: Optional[int]
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class RemoteSession:
    """A connected, authenticated channel bound to one build instance."""

    def __init__(self, connection: asyncssh.SSHClientConnection, host: str, username: str):
        self._connection = connection
        self.host = host
        self.username = username
        self.logger = get_infrastructure_logger(__name__)

    async def execute(self, command: str) -> RemoteResult:
        """Run one command and return its result without checking the exit status."""
        self.logger.debug(f"[{self.host}] $ {command}")
        completed = await self._connection.run(command, check=False)
        return RemoteResult(
            command=command,
            exit_status=completed.exit_status,
            stdout=strip_control_sequences(_as_text(completed.stdout)),
            stderr=strip_control_sequences(_as_text(completed.stderr)),
        )

    async def run_commands(self, commands: Sequence[str]) -> RemoteResult:
        """Run ``commands`` in order as a single remote invocation.

        Commands are chained with ``&&`` so the first failing command ends the
        invocation with its exit status.
        """
        command = " && ".join(commands)
        result = await self.execute(command)

        for line in result.stdout.splitlines():
            if line.strip():
                self.logger.info(f"[{self.host}] {line}")
        for line in result.stderr.splitlines():
            if line.strip():
                self.logger.warning(f"[{self.host}] {line}")

        if not result.ok:
            raise RemoteCommandError(command, result.exit_status, result.stdout + result.stderr)
        return result

    async def upload(
        self,
        local_paths: Union[str, List[str]],
        remote_dir: str,
        recursive: bool = False,
    ) -> None:
        """Copy local files (or trees, with ``recursive``) into ``remote_dir``."""
        if isinstance(local_paths, str):
            local_paths = [local_paths]

        self.logger.info(f"[{self.host}] uploading {', '.join(local_paths)} to {remote_dir}")
        await asyncssh.scp(local_paths, (self._connection, remote_dir), recurse=recursive)

    async def close(self) -> None:
        self._connection.close()
        await self._connection.wait_closed()


def _as_text(output: Union[str, bytes, None]) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output


class SSHClient:
    """Opens SSH sessions to build instances with bounded retries.

    The SSH daemon on a freshly booted instance usually refuses connections
    for a while, so each connect is retried with a fixed delay until
    ``max_attempts`` or the overall ``total_timeout`` is exhausted.
    """

    def __init__(self, connection_config: Optional[ConnectionConfig] = None, port: int = SSH_PORT):
        self.config = connection_config or ConnectionConfig()
        self.port = port
        self.logger = get_infrastructure_logger(__name__)

    async def connect(
        self, handle: InstanceHandle, username: str, timeout: Optional[float] = None
    ) -> RemoteSession:
        """Connect to the instance behind ``handle`` as ``username``."""
        if not handle.public_ip or not handle.key_material:
            raise RemoteConnectionError(
                f"Instance {handle.instance_id} has no public address or key material"
            )

        try:
            private_key = asyncssh.import_private_key(handle.key_material)
        except (asyncssh.KeyImportError, ValueError) as e:
            raise RemoteConnectionError(f"Unusable key material for {handle.key_name}: {e}") from e

        per_attempt = timeout or self.config.connect_timeout

        async def attempt() -> asyncssh.SSHClientConnection:
            return await asyncio.wait_for(
                asyncssh.connect(
                    handle.public_ip,
                    port=self.port,
                    username=username,
                    client_keys=[private_key],
                    known_hosts=None,
                ),
                timeout=per_attempt,
            )

        try:
            connection = await retry_async(
                attempt,
                attempts=self.config.max_attempts,
                delay=self.config.retry_delay,
                timeout=self.config.total_timeout,
                retry_on=(OSError, asyncssh.Error, asyncio.TimeoutError),
                description=f"SSH connect to {username}@{handle.public_ip}",
            )
        except (OSError, asyncssh.Error, asyncio.TimeoutError) as e:
            raise RemoteConnectionError(
                f"Could not connect to {username}@{handle.public_ip} within "
                f"{self.config.max_attempts} attempts or {self.config.total_timeout}s: {e}"
            ) from e

        self.logger.info(f"SSH session established to {username}@{handle.public_ip}")
        return RemoteSession(connection, handle.public_ip, username)

    @asynccontextmanager
    async def session(self, handle: InstanceHandle, username: str) -> AsyncIterator[RemoteSession]:
        """Open a session for the duration of one execution phase."""
        remote = await self.connect(handle, username)
        try:
            yield remote
        finally:
            await remote.close()
