"""
Test Connection Bootstrap

Tests for transport selection and connection option building.
"""

import pytest

from plughost.domain.models import PipeTransport, SocketTransport
from plughost.framework.connection import build_options, parse_handle, select_transport


class TestParseHandle:
    """Test command line handle parsing."""

    @pytest.mark.parametrize("raw,expected", [
        ("3", 3),
        ("/tmp/in.pipe", "/tmp/in.pipe"),
        (r"\\.\pipe\engine", r"\\.\pipe\engine"),
        (None, None),
    ])
    def test_parse(self, raw, expected):
        assert parse_handle(raw) == expected


class TestSelectTransport:
    """Test the pipe/socket decision."""

    def test_numeric_pipe_wins_and_drops_password(self):
        """Test numeric handles select a pipe even when socket values are present."""
        options = build_options({
            "input": 3, "output": 4,
            "port": 49494, "host": "127.0.0.1", "password": "secret",
        })

        assert isinstance(options.transport, PipeTransport)
        assert options.password is None
        flat = options.to_dict()
        assert flat["input_fd"] == 3
        assert flat["output_fd"] == 4
        assert "password" not in flat
        assert "port" not in flat

    def test_named_pipes(self):
        """Test two path handles select a pipe."""
        transport = select_transport({"input": "/tmp/in", "output": "/tmp/out"})

        assert transport == PipeTransport(input_handle="/tmp/in", output_handle="/tmp/out")

    def test_mixed_handle_kinds_fall_back_to_socket(self):
        """Test a number paired with a path is not a pipe."""
        transport = select_transport({
            "input": 3, "output": "/tmp/out",
            "port": 1234, "host": "localhost", "password": "pw",
        })

        assert isinstance(transport, SocketTransport)
        assert (transport.host, transport.port, transport.password) == ("localhost", 1234, "pw")

    @pytest.mark.parametrize("raw", [
        {},
        {"port": 1234, "host": "localhost"},
        {"port": 1234, "host": "", "password": "pw"},
        {"port": "1234", "host": "localhost", "password": "pw"},
        {"input": 3},
        {"input": "", "output": ""},
    ])
    def test_no_transport(self, raw):
        """Test incomplete arguments yield no transport."""
        assert select_transport(raw) is None

    def test_booleans_are_not_handles(self):
        """Test True/False are not taken as numeric file descriptors."""
        assert select_transport({"input": True, "output": False}) is None

    def test_password_hidden_from_repr(self):
        """Test the socket password does not leak into logs via repr."""
        transport = SocketTransport(host="localhost", port=1, password="hunter2")
        assert "hunter2" not in repr(transport)


class TestBuildOptions:
    """Test passthrough values and configuration."""

    def test_passthrough_fields_only_when_text(self):
        """Test engine hints are copied only when they are non-empty strings."""
        options = build_options({
            "input": 3, "output": 4,
            "engine_version": "25.0.1",
            "engine_path": "",
            "engine_binary_path": 12,
        })

        assert options.engine_version == "25.0.1"
        assert options.engine_path is None
        assert options.engine_binary_path is None
        flat = options.to_dict()
        assert flat["engine_version"] == "25.0.1"
        assert "engine_path" not in flat

    def test_config_is_copied(self):
        """Test configuration travels with the options."""
        config = {"plugins": {"demo": {"enabled": True}}}
        options = build_options({"input": 3, "output": 4}, config)

        assert options.config == config
        assert options.config is not config

    def test_missing_transport_is_logged(self, caplog):
        """Test building options without a transport warns instead of failing."""
        options = build_options({})

        assert options.transport is None
        assert "No usable transport" in caplog.text
