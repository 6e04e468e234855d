"""
Salesforce Org Client

REST API access (query, describe) through requests, and metadata
describe/list calls through the sf CLI, using credentials from the sf CLI
session.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from sf_connector.api.process import ProcessRunner
from sf_connector.api.sf_auth import get_sf_auth_info
from sf_connector.exceptions import SFAPIError, SFAuthError, SFNetworkError, SFQueryError

logger = logging.getLogger(__name__)


class OrgClient:
    """
    Client for one authorized org.

    REST endpoints live under ``/services/data/v{api_version}``; metadata
    listing is delegated to ``sf org list metadata*`` commands.
    """

    def __init__(
        self,
        access_token: str,
        instance_url: str,
        api_version: str = "65.0",
        target_org: Optional[str] = None,
        runner: Optional[ProcessRunner] = None,
    ):
        """
        Initialize org client.

        Args:
            access_token: OAuth access token from sf CLI
            instance_url: Salesforce instance URL (e.g., https://instance.salesforce.com)
            api_version: API version to use (default: 65.0)
            target_org: Username or alias passed to sf CLI metadata commands
            runner: ProcessRunner used for CLI calls
        """
        self.access_token = access_token
        self.instance_url = instance_url.rstrip('/')
        self.api_version = api_version
        self.target_org = target_org
        self.runner = runner or ProcessRunner()
        self.session = requests.Session()

        self.session.headers.update({
            'Authorization': f'Bearer {access_token}',
            'Content-Type': 'application/json'
        })

        logger.info(f"Initialized org client for: {instance_url}")

    @classmethod
    def from_org(cls, org_alias: Optional[str], runner: Optional[ProcessRunner] = None,
                 api_version: Optional[str] = None) -> "OrgClient":
        """Create a client from the sf CLI session of ``org_alias``."""
        runner = runner or ProcessRunner()
        auth_info = get_sf_auth_info(org_alias, runner)
        return cls(
            access_token=auth_info['access_token'],
            instance_url=auth_info['instance_url'],
            api_version=api_version or auth_info['api_version'],
            target_org=auth_info['username'] or org_alias,
            runner=runner,
        )

    @property
    def base_path(self) -> str:
        return f"/services/data/v{self.api_version}"

    def _get(self, path: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        url = path if path.startswith('http') else f"{self.instance_url}{path}"
        logger.debug(f"GET {url}")
        try:
            response = self.session.get(url, params=params)
        except requests.exceptions.RequestException as e:
            logger.error(f"Request failed for {path}: {e}")
            raise SFNetworkError(f"Request failed: {e}") from e

        if response.status_code == 401:
            raise SFAuthError("Session expired or invalid (401)")
        if response.status_code == 404:
            raise SFAPIError(f"Resource not found (404): {path}")
        if response.status_code == 400:
            raise SFQueryError(f"Bad request: {self._error_message(response)}")

        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            raise SFNetworkError(f"HTTP error: {e}") from e

        return response.json()

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text
        if isinstance(body, list) and body:
            return body[0].get('message', response.text)
        return response.text

    def query(self, soql: str, use_tooling: bool = False) -> List[Dict[str, Any]]:
        """
        Run a SOQL query and follow ``nextRecordsUrl`` until done.

        Args:
            soql: SOQL query string
            use_tooling: Query through the Tooling API

        Returns:
            All records, without the ``attributes`` key
        """
        endpoint = f"{self.base_path}/tooling/query" if use_tooling else f"{self.base_path}/query"
        logger.debug(f"Query preview: {soql[:150]}")

        records: List[Dict[str, Any]] = []
        data = self._get(endpoint, params={'q': soql})
        while True:
            for record in data.get('records', []):
                record.pop('attributes', None)
                records.append(record)
            next_url = data.get('nextRecordsUrl')
            if data.get('done', True) or not next_url:
                break
            data = self._get(next_url)

        logger.info(f"✓ Query returned {len(records)} record(s)")
        return records

    def describe_global(self) -> List[Dict[str, Any]]:
        """Summaries of every SObject available in the org."""
        return self._get(f"{self.base_path}/sobjects/").get('sobjects', [])

    def describe(self, sobject_name: str) -> Dict[str, Any]:
        """Full describe of one SObject."""
        return self._get(f"{self.base_path}/sobjects/{sobject_name}/describe/")

    def _cli_args(self, args: List[str], api_version: Optional[str]) -> List[str]:
        if self.target_org:
            args += ['--target-org', self.target_org]
        args += ['--api-version', api_version or self.api_version]
        return args

    def metadata_describe(self, api_version: Optional[str] = None) -> List[Dict[str, Any]]:
        """Metadata types supported by the org (``metadataObjects`` entries)."""
        response = self.runner.run(self._cli_args(['org', 'list', 'metadata-types'], api_version))
        result = response.result or {}
        return result.get('metadataObjects', []) if isinstance(result, dict) else []

    def metadata_list(
        self,
        type_query: str,
        api_version: Optional[str] = None,
        folder: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        List components of one metadata type.

        Args:
            type_query: Metadata type name (e.g. "Profile", "ReportFolder")
            api_version: API version override
            folder: Folder name for folder-bearing types

        Returns:
            Component records (fullName, type, namespacePrefix, ...)
        """
        args = ['org', 'list', 'metadata', '--metadata-type', type_query]
        if folder:
            args += ['--folder', folder]
        response = self.runner.run(self._cli_args(args, api_version))
        result = response.result
        if isinstance(result, dict):
            return [result]
        return result or []

    def close(self):
        """Close the session"""
        self.session.close()
        logger.debug("Closed org client session")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
