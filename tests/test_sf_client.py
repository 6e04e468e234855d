"""Unit tests for api/sf_client.py and api/sf_auth.py: REST calls and CLI auth lookup."""

from unittest.mock import MagicMock

import pytest
import requests

from sf_connector.api.process import ProcessResponse
from sf_connector.api.sf_auth import get_sf_auth_info, list_auth_orgs
from sf_connector.api.sf_client import OrgClient
from sf_connector.exceptions import (
    ProcessError,
    SFAPIError,
    SFAuthError,
    SFConnectionError,
    SFNetworkError,
    SFQueryError,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _response(status: int = 200, body=None) -> MagicMock:
    response = MagicMock(spec=requests.Response)
    response.status_code = status
    response.json.return_value = body if body is not None else {}
    response.text = str(body)
    if status >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(f"{status} error")
    return response


def _client(*responses) -> OrgClient:
    runner = MagicMock()
    client = OrgClient("token", "https://example.my.salesforce.com/", "60.0", "admin@example.com", runner)
    client.session = MagicMock()
    client.session.get.side_effect = list(responses)
    return client


# ---------------------------------------------------------------------------
# REST
# ---------------------------------------------------------------------------


class TestQuery:
    def test_follows_next_records_url_and_strips_attributes(self) -> None:
        client = _client(
            _response(body={"done": False, "nextRecordsUrl": "/services/data/v60.0/query/01g-2000",
                            "records": [{"attributes": {"type": "Account"}, "Id": "001A"}]}),
            _response(body={"done": True, "records": [{"attributes": {"type": "Account"}, "Id": "001B"}]}),
        )

        records = client.query("SELECT Id FROM Account")

        assert records == [{"Id": "001A"}, {"Id": "001B"}]
        first_call, second_call = client.session.get.call_args_list
        assert first_call.args[0] == "https://example.my.salesforce.com/services/data/v60.0/query"
        assert first_call.kwargs["params"] == {"q": "SELECT Id FROM Account"}
        assert second_call.args[0].endswith("/query/01g-2000")

    def test_tooling_endpoint(self) -> None:
        client = _client(_response(body={"done": True, "records": []}))

        client.query("SELECT Id FROM ApexClass", use_tooling=True)

        assert client.session.get.call_args.args[0].endswith("/services/data/v60.0/tooling/query")

    @pytest.mark.parametrize(
        "status, error",
        [(401, SFAuthError), (404, SFAPIError), (400, SFQueryError), (500, SFNetworkError)],
    )
    def test_http_errors_map_to_connection_errors(self, status, error) -> None:
        client = _client(_response(status, [{"message": "MALFORMED_QUERY"}]))

        with pytest.raises(error) as exc_info:
            client.query("SELECT")

        assert isinstance(exc_info.value, SFConnectionError)

    def test_request_exception_is_a_network_error(self) -> None:
        client = _client(requests.exceptions.ConnectionError("offline"))

        with pytest.raises(SFNetworkError):
            client.describe("Account")


class TestDescribe:
    def test_describe_global_and_describe(self) -> None:
        client = _client(
            _response(body={"sobjects": [{"name": "Account"}, {"name": "Contact"}]}),
            _response(body={"name": "Account", "fields": []}),
        )

        assert [s["name"] for s in client.describe_global()] == ["Account", "Contact"]
        assert client.describe("Account")["name"] == "Account"
        assert client.session.get.call_args.args[0].endswith("/sobjects/Account/describe/")


# ---------------------------------------------------------------------------
# Metadata through the CLI
# ---------------------------------------------------------------------------


class TestMetadataCalls:
    def test_metadata_describe_uses_org_and_version(self) -> None:
        client = _client()
        client.runner.run.return_value = ProcessResponse(0, {"metadataObjects": [{"xmlName": "Profile"}]})

        assert client.metadata_describe() == [{"xmlName": "Profile"}]
        args = client.runner.run.call_args.args[0]
        assert args[:3] == ["org", "list", "metadata-types"]
        assert args[args.index("--target-org") + 1] == "admin@example.com"
        assert args[args.index("--api-version") + 1] == "60.0"

    def test_metadata_list_with_folder_and_single_record(self) -> None:
        client = _client()
        client.runner.run.return_value = ProcessResponse(0, {"fullName": "Sales/Pipeline"})

        result = client.metadata_list("Report", folder="Sales")

        assert result == [{"fullName": "Sales/Pipeline"}]
        args = client.runner.run.call_args.args[0]
        assert args[args.index("--folder") + 1] == "Sales"

    def test_metadata_list_empty_result(self) -> None:
        client = _client()
        client.runner.run.return_value = ProcessResponse(0, None)

        assert client.metadata_list("Profile") == []


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class TestAuth:
    def test_get_sf_auth_info(self) -> None:
        runner = MagicMock()
        runner.run.return_value = ProcessResponse(0, {
            "accessToken": "00D!token", "instanceUrl": "https://example.my.salesforce.com",
            "id": "00D000000000001", "username": "admin@example.com", "alias": "dev", "apiVersion": "61.0",
        })

        info = get_sf_auth_info("dev", runner)

        assert runner.run.call_args.args[0] == ["org", "display", "--target-org", "dev"]
        assert info["access_token"] == "00D!token"
        assert info["api_version"] == "61.0"

    def test_missing_token_raises_auth_error(self) -> None:
        runner = MagicMock()
        runner.run.return_value = ProcessResponse(0, {"instanceUrl": "https://x"})

        with pytest.raises(SFAuthError):
            get_sf_auth_info(None, runner)

    def test_cli_failure_raises_auth_error(self) -> None:
        runner = MagicMock()
        runner.run.side_effect = ProcessError("No org configuration found", name="NoOrgFound")

        with pytest.raises(SFAuthError):
            get_sf_auth_info("missing", runner)

    def test_list_auth_orgs_merges_groups(self) -> None:
        runner = MagicMock()
        runner.run.return_value = ProcessResponse(0, {
            "nonScratchOrgs": [{"alias": "dev", "username": "a@x.com", "orgId": "1",
                                "instanceUrl": "https://a", "isDefaultUsername": True}],
            "sandboxes": [{"alias": "dev", "username": "a@x.com"}],
            "scratchOrgs": [{"username": "s@x.com"}],
        })

        orgs = list_auth_orgs(runner)

        assert [o["username"] for o in orgs] == ["a@x.com", "s@x.com"]
        assert orgs[0]["is_default"] is True
        assert orgs[1]["alias"] is None
