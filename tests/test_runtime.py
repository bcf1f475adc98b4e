"""
Tests for the reference runtime client
"""

import base64
import json
import os
import zipfile

import httpx
import pytest

from devloop.clients.runtime import OpenWhiskRuntime, select_units
from devloop.core.config import RuntimeCredentials
from devloop.core.schemas import DeployOptions
from devloop.exceptions import BuildError, ConfigurationError, CredentialsError, DeployError


class TestSelectUnits:
    """Unit filters"""

    def test_no_filter_selects_all(self, app_config):
        assert [u.name for u in select_units(app_config)] == ["action", "action-zip"]

    def test_filter_by_name_or_qualified_name(self, app_config):
        assert [u.name for u in select_units(app_config, ["action"])] == ["action"]
        assert [u.name for u in select_units(app_config, ["my-app/action-zip"])] == ["action-zip"]

    def test_no_backend(self, app_config):
        assert select_units(app_config.update(backend=None)) == []


class TestEndpointUrls:
    """URL computation per mode"""

    def test_remote_cdn(self, app_config):
        urls = OpenWhiskRuntime().get_endpoint_urls(app_config, use_cdn=True, is_local=False)

        assert urls == {
            "action": "https://my-ns.adobeio-static.net/api/v1/web/my-app/action",
            "action-zip": "https://my-ns.adobeio-static.net/api/v1/web/my-app/action-zip",
        }

    def test_remote_direct(self, app_config):
        urls = OpenWhiskRuntime().get_endpoint_urls(app_config, use_cdn=False, is_local=False)

        assert urls["action"] == "https://my-ns.runtime.example.com/api/v1/web/my-app/action"

    def test_local(self, app_config):
        config = app_config.update(runtime=RuntimeCredentials(
            namespace="guest", auth="a:b", apihost="http://localhost:3233"
        ))

        urls = OpenWhiskRuntime().get_endpoint_urls(config, use_cdn=True, is_local=True)

        assert urls["action"] == "http://localhost:3233/api/v1/web/guest/my-app/action"

    def test_non_web_unit(self, app_config):
        app_config.backend.units[0].web = False

        urls = OpenWhiskRuntime().get_endpoint_urls(app_config)

        assert urls["action"] == "https://runtime.example.com/api/v1/namespaces/my-ns/actions/my-app/action"

    def test_units_outside_default_group_are_qualified(self, app_config):
        config = app_config.update(runtime=RuntimeCredentials(
            namespace="my-ns", auth="a:b", apihost="https://runtime.example.com", package="other"
        ))

        urls = OpenWhiskRuntime().get_endpoint_urls(config)

        assert set(urls) == {"my-app/action", "my-app/action-zip"}


class TestCredentials:
    """Credential checks"""

    def test_complete_credentials_pass(self, app_config):
        OpenWhiskRuntime().check_credentials(app_config)

    def test_missing_credentials_are_named(self, app_config):
        config = app_config.update(runtime=RuntimeCredentials(namespace=None, auth=None, apihost="https://x"))

        with pytest.raises(CredentialsError) as exc_info:
            OpenWhiskRuntime().check_credentials(config)

        assert exc_info.value.missing == ["namespace", "auth"]

    def test_malformed_auth(self, app_config):
        config = app_config.update(runtime=RuntimeCredentials(namespace="ns", auth="no-colon", apihost="https://x"))

        with pytest.raises(ConfigurationError):
            OpenWhiskRuntime()._auth(config)


class TestBuild:
    """Packaging units"""

    @pytest.mark.asyncio
    async def test_builds_zip_per_unit(self, app_config):
        runtime = OpenWhiskRuntime()

        built = await runtime.build(app_config)

        assert built == ["action", "action-zip"]
        artifact = app_config.abs_path("dist/actions/my-app/action-zip.zip")
        with zipfile.ZipFile(artifact) as archive:
            assert archive.namelist() == ["index.js"]

    @pytest.mark.asyncio
    async def test_unchanged_units_are_skipped(self, app_config):
        runtime = OpenWhiskRuntime()
        await runtime.build(app_config)

        assert await runtime.build(app_config) == []
        assert await runtime.build(app_config, force_build=True) == ["action", "action-zip"]

    @pytest.mark.asyncio
    async def test_changed_unit_is_rebuilt(self, app_config):
        runtime = OpenWhiskRuntime()
        await runtime.build(app_config)

        with open(app_config.abs_path("actions/action.js"), "a") as f:
            f.write("// changed\n")

        assert await runtime.build(app_config) == ["action"]

    @pytest.mark.asyncio
    async def test_filter_limits_build(self, app_config):
        built = await OpenWhiskRuntime().build(app_config, unit_filter=["my-app/action"])

        assert built == ["action"]
        assert not os.path.exists(app_config.abs_path("dist/actions/my-app/action-zip.zip"))

    @pytest.mark.asyncio
    async def test_missing_source(self, app_config):
        os.remove(app_config.abs_path("actions/action.js"))

        with pytest.raises(BuildError) as exc_info:
            await OpenWhiskRuntime().build(app_config)

        assert exc_info.value.units == ["action"]


class TestDeploy:
    """Deploy through the REST API"""

    @pytest.mark.asyncio
    async def test_puts_packages_then_actions(self, app_config):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={})

        runtime = OpenWhiskRuntime(transport=httpx.MockTransport(handler))
        await runtime.build(app_config)

        result = await runtime.deploy(app_config, DeployOptions(is_local=False))
        await runtime.close()

        paths = [r.url.path for r in requests]
        assert paths == [
            "/api/v1/namespaces/my-ns/packages/my-app",
            "/api/v1/namespaces/my-ns/actions/my-app/action",
            "/api/v1/namespaces/my-ns/actions/my-app/action-zip",
        ]
        assert all(r.method == "PUT" and r.url.params["overwrite"] == "true" for r in requests)
        assert requests[1].headers["authorization"] == "Basic " + base64.b64encode(b"user:secret").decode()

        body = json.loads(requests[1].content)
        assert body["exec"]["kind"] == "nodejs:18"
        assert body["exec"]["binary"] is True
        assert {"key": "web-export", "value": True} in body["annotations"]

        assert [u.name for u in result.units] == ["my-app/action", "my-app/action-zip"]
        assert result.units[0].url == "https://my-ns.runtime.example.com/api/v1/web/my-app/action"
        assert result.units[0].is_web

    @pytest.mark.asyncio
    async def test_unbuilt_unit_fails(self, app_config):
        runtime = OpenWhiskRuntime(transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})))

        with pytest.raises(DeployError, match="has not been built"):
            await runtime.deploy(app_config, DeployOptions())
        await runtime.close()

    @pytest.mark.asyncio
    async def test_http_error_is_wrapped(self, app_config):
        runtime = OpenWhiskRuntime(transport=httpx.MockTransport(lambda r: httpx.Response(403, text="forbidden")))
        await runtime.build(app_config)

        with pytest.raises(DeployError) as exc_info:
            await runtime.deploy(app_config, DeployOptions())
        await runtime.close()

        assert "403" in str(exc_info.value)
        assert isinstance(exc_info.value.original_error, httpx.HTTPStatusError)


class TestFetchLogs:
    """Activation logs"""

    @pytest.mark.asyncio
    async def test_returns_next_since(self, app_config):
        activations = [
            {"activationId": "b", "name": "action", "start": 200, "logs": ["second"]},
            {"activationId": "a", "name": "action", "start": 100, "logs": ["first"]},
        ]
        seen = []

        def handler(request):
            seen.append(request.url.params)
            return httpx.Response(200, json=activations)

        runtime = OpenWhiskRuntime(transport=httpx.MockTransport(handler))

        since = await runtime.fetch_logs(app_config, limit=30, since=50)
        await runtime.close()

        assert since == 201
        assert seen[0]["limit"] == "30"
        assert seen[0]["since"] == "50"
