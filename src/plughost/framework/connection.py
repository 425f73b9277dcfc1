"""
Connection Bootstrap

Turns raw command line values into the ``ConnectionOptions`` the engine is
started with. Pipe and socket transports are mutually exclusive.
"""

import logging
from typing import Any, Dict, Mapping, Optional, Union

from ..domain.models import ConnectionOptions, PipeTransport, SocketTransport, Transport

logger = logging.getLogger(__name__)

PASSTHROUGH_FIELDS = ("engine_version", "engine_path", "engine_binary_path")


def parse_handle(value: Optional[str]) -> Union[int, str, None]:
    """Command line helper: all-digit handles are file descriptors, anything else a path."""
    if value is None:
        return None
    if value.isdigit():
        return int(value)
    return value


def _is_numeric(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and value != ""


def select_transport(raw_args: Mapping[str, Any]) -> Optional[Transport]:
    """
    Pick the transport described by ``raw_args``.

    Pipe wins when both handles are present and of the same kind; its password
    is dropped since pipes are not encrypted. Otherwise a socket needs a port,
    a host and a password. Anything else yields no transport.
    """
    input_handle = raw_args.get("input")
    output_handle = raw_args.get("output")
    if (_is_numeric(input_handle) and _is_numeric(output_handle)) or \
            (_is_text(input_handle) and _is_text(output_handle)):
        return PipeTransport(input_handle=input_handle, output_handle=output_handle)

    port = raw_args.get("port")
    host = raw_args.get("host")
    password = raw_args.get("password")
    if _is_numeric(port) and _is_text(host) and _is_text(password):
        return SocketTransport(host=host, port=port, password=password)

    return None


def build_options(
    raw_args: Mapping[str, Any],
    config: Optional[Dict[str, Any]] = None,
) -> ConnectionOptions:
    """Build the engine's connection options from raw arguments."""
    transport = select_transport(raw_args)
    if transport is None:
        logger.warning("No usable transport in the supplied arguments; the engine will reject the options")
    else:
        logger.info(f"Using {transport.kind} transport")

    passthrough = {}
    for name in PASSTHROUGH_FIELDS:
        value = raw_args.get(name)
        if _is_text(value):
            passthrough[name] = value

    return ConnectionOptions(transport=transport, config=dict(config or {}), **passthrough)
