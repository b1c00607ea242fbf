"""
Plaid — link-token authorization and the Plaid connector.

Plaid has no redirect flow: the browser opens Plaid Link with a link token,
Link hands back a public token, and the public token is exchanged for a
long-lived access token.  Access tokens do not expire and cannot be
refreshed, so the grant is stored with a five-year expiry and no refresh
token.
"""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from typing import Any, Dict, List, Optional

import httpx

from config.settings import Settings
from connectors.base import BaseConnector, tool
from connectors.errors import ProviderError
from connectors.http import ProviderClient, raise_for_provider, response_json
from connectors.oauth import OAuthProvider
from connectors.schema import ToolDefinition
from utils.schemas import OAuthTokens, utcnow

logger = logging.getLogger(__name__)

PLAID_ENVIRONMENTS = {
    "sandbox": "https://sandbox.plaid.com",
    "development": "https://development.plaid.com",
    "production": "https://production.plaid.com",
}
PLAID_API_VERSION = "2020-09-14"
ACCESS_TOKEN_LIFETIME = timedelta(days=5 * 365)


class PlaidClient(OAuthProvider):
    """Link-token flow plus authenticated REST calls against one Plaid environment."""

    uses_link_token = True

    def __init__(self, settings: Settings, *, http: Optional[httpx.AsyncClient] = None) -> None:
        super().__init__(http=http, timeout=settings.provider_timeout_seconds)
        self._settings = settings
        self.base_url = PLAID_ENVIRONMENTS.get(settings.plaid_env, PLAID_ENVIRONMENTS["sandbox"])

    @property
    def scopes(self) -> List[str]:
        return ["auth"]

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "PLAID-CLIENT-ID": self._settings.plaid_client_id,
            "PLAID-SECRET": self._settings.plaid_secret,
            "Plaid-Version": PLAID_API_VERSION,
        }

    def is_configured(self) -> bool:
        return bool(self._settings.plaid_client_id and self._settings.plaid_secret)

    async def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                resp = await client.post(f"{self.base_url}{path}", json=body, headers=self.headers)
        except httpx.TimeoutException as exc:
            raise ProviderError(f"Plaid {path} timed out", code="timeout", retryable=True) from exc
        except httpx.TransportError as exc:
            raise ProviderError(f"Plaid unreachable: {exc}", code="network_error", retryable=True) from exc
        raise_for_provider(resp, "plaid")
        return response_json(resp, "plaid")

    def link_token_request(self, user_id: str, payment_id: Optional[str] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "user": {"client_user_id": user_id},
            "client_name": self._settings.plaid_client_name,
            "language": "en",
            "country_codes": list(self._settings.plaid_country_codes),
            "products": ["auth"],
        }
        if payment_id:
            body["products"] = ["payment_initiation"]
            body["payment_initiation"] = {"payment_id": payment_id}
        return body

    async def create_link_token(self, user_id: str) -> str:
        data = await self._post("/link/token/create", self.link_token_request(user_id))
        return data["link_token"]

    async def exchange_code(self, code: str) -> OAuthTokens:
        """Exchange a Link public token for an item access token."""
        data = await self._post("/item/public_token/exchange", {"public_token": code})
        if not data.get("access_token"):
            raise ProviderError("Plaid returned no access token", code="invalid_response")
        return OAuthTokens(
            access_token=data["access_token"],
            expires_at=utcnow() + ACCESS_TOKEN_LIFETIME,
            scopes=self.scopes,
        )

    async def refresh(self, refresh_token: str) -> OAuthTokens:
        raise ProviderError("Plaid access tokens cannot be refreshed", code="not_refreshable")

    async def revoke(self, token: str) -> bool:
        try:
            await self._post("/item/remove", {"access_token": token})
        except ProviderError as exc:
            logger.warning("Plaid item removal failed: %s", exc)
            return False
        return True


class PlaidConnector(BaseConnector):

    sends_bearer_token = False

    def __init__(
        self,
        settings: Settings,
        tool_definitions: List[ToolDefinition],
        *,
        http: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._oauth = PlaidClient(settings, http=http)
        super().__init__(tool_definitions)

    @property
    def name(self) -> str:
        return "plaid"

    @property
    def display_name(self) -> str:
        return "Plaid"

    @property
    def description(self) -> str:
        return "Bank accounts, identity, ACH risk signals and payment initiation via Plaid."

    @property
    def icon(self) -> str:
        return "🏦"

    @property
    def oauth(self) -> PlaidClient:
        return self._oauth

    async def _call(self, client: ProviderClient, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return await client.post_json(f"{self._oauth.base_url}{path}", json=body, headers=self._oauth.headers)

    @tool("getAccounts")
    async def get_accounts(self, client: ProviderClient, args: Dict[str, Any]) -> Dict[str, Any]:
        data = await self._call(client, "/auth/get", {"access_token": client.access_token})
        return {"accounts": data.get("accounts", [])}

    @tool("getIdentity")
    async def get_identity(self, client: ProviderClient, args: Dict[str, Any]) -> Dict[str, Any]:
        return await self._call(client, "/identity/get", {"access_token": client.access_token})

    @tool("evaluateSignal")
    async def evaluate_signal(self, client: ProviderClient, args: Dict[str, Any]) -> Dict[str, Any]:
        return await self._call(
            client,
            "/signal/evaluate",
            {
                "access_token": client.access_token,
                "account_id": args["accountId"],
                "client_transaction_id": args.get("clientTransactionId") or str(uuid.uuid4()),
                "amount": args["amount"],
            },
        )

    @tool("intiatePayment")
    async def initiate_payment(self, client: ProviderClient, args: Dict[str, Any]) -> Dict[str, Any]:
        """Create a BACS recipient and a payment, then a Link token to authorise it."""
        recipient = await self._call(
            client,
            "/payment_initiation/recipient/create",
            {
                "name": args["recipientName"],
                "bacs": {"account": args["accountNumber"], "sort_code": args["sortCode"]},
            },
        )
        payment = await self._call(
            client,
            "/payment_initiation/payment/create",
            {
                "recipient_id": recipient["recipient_id"],
                "reference": args["reference"],
                "amount": {"currency": args["currency"], "value": args["amount"]},
            },
        )
        link = await self._call(
            client,
            "/link/token/create",
            self._oauth.link_token_request(client.user_id, payment_id=payment["payment_id"]),
        )
        logger.info("Created Plaid payment %s", payment["payment_id"])
        return {"linkToken": link["link_token"]}
