"""IPC module -- discovery, framing, broadcast server and viewer client."""

from .client import NoRunningInstanceError, ViewerConnection, connect_to_ipc
from .discovery import (
    DiscoveryInfo,
    default_discovery_path,
    read_discovery,
    remove_discovery,
    write_discovery,
)
from .protocol import FRAME_LIMIT, decode_frame, encode_frame
from .server import IpcHandle, IpcServer, start_ipc_server

__all__ = [
    "NoRunningInstanceError",
    "ViewerConnection",
    "connect_to_ipc",
    "DiscoveryInfo",
    "default_discovery_path",
    "read_discovery",
    "remove_discovery",
    "write_discovery",
    "FRAME_LIMIT",
    "decode_frame",
    "encode_frame",
    "IpcHandle",
    "IpcServer",
    "start_ipc_server",
]
