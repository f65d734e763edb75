"""Remote execution over SSH."""

from .ssh_client import SSHClient, RemoteSession, RemoteResult, strip_control_sequences

__all__ = [
    'SSHClient',
    'RemoteSession',
    'RemoteResult',
    'strip_control_sequences'
]
