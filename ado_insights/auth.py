"""
Authentication handling for Azure DevOps.

Tries Managed Identity / DefaultAzureCredential, then a service principal,
then a Personal Access Token.
"""
import asyncio
import logging
import os
import re
from typing import Optional

from azure.devops.connection import Connection
from azure.identity import DefaultAzureCredential, ClientSecretCredential
from msrest.authentication import BasicAuthentication

logger = logging.getLogger(__name__)

# key=value / key: value pairs and bearer tokens that may appear in SDK errors
_SECRET_PATTERN = re.compile(
    r'((?:password|client_secret|token|pat|authorization)["\']?\s*[:=]\s*["\']?|bearer\s+)'
    r'([^"\'\s]+)',
    re.IGNORECASE
)


def redact(message: str) -> str:
    """Replace credential-looking values in a message."""
    if not message:
        return message
    return _SECRET_PATTERN.sub(r'\1***REDACTED***', message)


class AzureDevOpsAuth:
    """
    Connection to an Azure DevOps organization.

    Authentication methods, in order of preference:
    1. Managed Identity / DefaultAzureCredential (includes Azure CLI login)
    2. Service Principal (AZURE_CLIENT_ID, AZURE_CLIENT_SECRET, AZURE_TENANT_ID)
    3. Personal Access Token (AZURE_DEVOPS_PAT)
    """

    # Azure DevOps resource ID for token acquisition
    AZURE_DEVOPS_RESOURCE_ID = "499b84ac-1321-427f-aa17-267ca6975798"

    PAT_METHOD = "Personal Access Token"

    def __init__(self, organization_url: str):
        """
        Args:
            organization_url: Azure DevOps organization URL
                (e.g., https://dev.azure.com/yourorg)
        """
        self.organization_url = organization_url
        self.connection: Optional[Connection] = None
        self._credential = None
        self._auth_method: Optional[str] = None

    async def initialize(self):
        """Establish the connection using the first method that works."""
        auth_methods = [
            self._try_managed_identity,
            self._try_service_principal,
            self._try_pat
        ]

        for auth_method in auth_methods:
            try:
                self.connection = await auth_method()
            except Exception as e:
                logger.info(
                    f"{auth_method.__name__} failed: {type(e).__name__}: {redact(str(e))}"
                )
                continue

            if self.connection:
                logger.info(f"Authenticated using: {self._auth_method}")
                return

        raise ValueError(
            "Failed to authenticate. Please configure one of:\n"
            "1. Azure Managed Identity (recommended)\n"
            "2. Service Principal (AZURE_CLIENT_ID, AZURE_CLIENT_SECRET, AZURE_TENANT_ID)\n"
            "3. Personal Access Token (AZURE_DEVOPS_PAT)"
        )

    async def _connect_with_credential(self, credential, method: str) -> Connection:
        token = await asyncio.to_thread(
            credential.get_token,
            f"{self.AZURE_DEVOPS_RESOURCE_ID}/.default"
        )
        self._credential = credential
        self._auth_method = method
        # Azure DevOps accepts an AAD access token the same way as a PAT
        return Connection(base_url=self.organization_url, creds=BasicAuthentication('', token.token))

    async def _try_managed_identity(self) -> Optional[Connection]:
        return await self._connect_with_credential(
            DefaultAzureCredential(),
            "Azure Managed Identity / DefaultAzureCredential"
        )

    async def _try_service_principal(self) -> Optional[Connection]:
        client_id = os.getenv("AZURE_CLIENT_ID")
        client_secret = os.getenv("AZURE_CLIENT_SECRET")
        tenant_id = os.getenv("AZURE_TENANT_ID")

        if not all([client_id, client_secret, tenant_id]):
            raise ValueError("Missing service principal credentials")

        credential = ClientSecretCredential(
            tenant_id=tenant_id,
            client_id=client_id,
            client_secret=client_secret
        )
        return await self._connect_with_credential(credential, "Service Principal")

    async def _try_pat(self) -> Optional[Connection]:
        pat = os.getenv("AZURE_DEVOPS_PAT")
        if not pat:
            raise ValueError("AZURE_DEVOPS_PAT environment variable not set")

        self._auth_method = self.PAT_METHOD
        return Connection(base_url=self.organization_url, creds=BasicAuthentication('', pat))

    def get_client(self, client_type: str):
        """
        Get an Azure DevOps client.

        Args:
            client_type: 'work_item_tracking' (work items, WIQL, relations)
                or 'core' (projects)
        """
        if not self.connection:
            raise RuntimeError("Not authenticated. Call initialize() first.")

        client_map = {
            'work_item_tracking': self.connection.clients.get_work_item_tracking_client,
            'core': self.connection.clients.get_core_client,
        }

        if client_type not in client_map:
            raise ValueError(f"Unknown client type: {client_type}")

        return client_map[client_type]()

    async def refresh_token(self):
        """
        Refresh the AAD token behind the connection.

        Tokens expire after about an hour; PAT connections need no refresh.
        """
        if not self._credential or self._auth_method == self.PAT_METHOD:
            return

        try:
            self.connection = await self._connect_with_credential(self._credential, self._auth_method)
            logger.info("Token refreshed successfully")
        except Exception as e:
            logger.error(f"Token refresh failed: {type(e).__name__}: {redact(str(e))}")
            raise

    async def close(self):
        if hasattr(self._credential, 'close'):
            self._credential.close()
        self.connection = None

    def get_auth_info(self) -> dict:
        return {
            "method": self._auth_method,
            "organization_url": self.organization_url,
            "authenticated": self.connection is not None
        }
