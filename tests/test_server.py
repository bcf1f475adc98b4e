"""
Tests for the frontend development server
"""

import socket

import httpx
import pytest
from structlog.testing import capture_logs

from devloop.dev.server import FrontendServer, advertised_host, bind_socket


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def dist_dir(tmp_path):
    dist = tmp_path / "dist" / "web-dev"
    dist.mkdir(parents=True)
    (dist / "index.html").write_text("<html><body>hello devloop</body></html>")
    (dist / "app.js").write_text("console.log('hi')")
    return dist


class TestBindSocket:
    """Port selection"""

    def test_binds_requested_port_when_free(self):
        port = _free_port()
        sock = bind_socket("127.0.0.1", port)
        try:
            assert sock.getsockname()[1] == port
        finally:
            sock.close()

    def test_falls_back_when_port_taken(self):
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(("127.0.0.1", 0))
        blocker.listen(1)
        taken = blocker.getsockname()[1]
        try:
            sock = bind_socket("127.0.0.1", taken)
            try:
                assert sock.getsockname()[1] != taken
            finally:
                sock.close()
        finally:
            blocker.close()


class TestAdvertisedHost:
    """Host used in the served URL"""

    @pytest.mark.parametrize("host", ["127.0.0.1", "localhost", "0.0.0.0"])
    def test_loopback_and_wildcard_use_localhost(self, host):
        assert advertised_host(host) == "localhost"

    def test_other_hosts_are_advertised_as_bound(self):
        assert advertised_host("192.168.1.20") == "192.168.1.20"
        assert advertised_host("dev.example.test") == "dev.example.test"


class TestFrontendServer:
    """Serving bundled assets"""

    @pytest.mark.asyncio
    async def test_serves_on_requested_port(self, dist_dir):
        port = _free_port()

        with capture_logs() as logs:
            result = await FrontendServer().serve(str(dist_dir), port)
        try:
            assert result.port == port
            assert result.url == f"http://localhost:{port}"
            assert not any("Could not use port" in log["event"] for log in logs)

            async with httpx.AsyncClient() as client:
                index = await client.get(f"http://127.0.0.1:{port}/")
                script = await client.get(f"http://127.0.0.1:{port}/app.js")

            assert index.status_code == 200
            assert "hello devloop" in index.text
            assert script.text == "console.log('hi')"
        finally:
            await result.cleanup()

    @pytest.mark.asyncio
    async def test_logs_port_fallback(self, dist_dir):
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(("127.0.0.1", 0))
        blocker.listen(1)
        taken = blocker.getsockname()[1]

        try:
            with capture_logs() as logs:
                result = await FrontendServer().serve(str(dist_dir), taken)
            try:
                assert result.port != taken
                assert result.url == f"http://localhost:{result.port}"
                assert any(
                    log["event"] == f"Could not use port:{taken}, using port:{result.port} instead"
                    for log in logs
                )
            finally:
                await result.cleanup()
        finally:
            blocker.close()

    @pytest.mark.asyncio
    async def test_cleanup_closes_listener(self, dist_dir):
        result = await FrontendServer().serve(str(dist_dir), _free_port())

        await result.cleanup()

        async with httpx.AsyncClient() as client:
            with pytest.raises(httpx.ConnectError):
                await client.get(f"http://127.0.0.1:{result.port}/")

    @pytest.mark.asyncio
    async def test_missing_dist_dir_is_created(self, tmp_path):
        dist = tmp_path / "not-built-yet"

        result = await FrontendServer().serve(str(dist), _free_port())
        try:
            assert dist.is_dir()
        finally:
            await result.cleanup()
