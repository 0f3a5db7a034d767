"""
Async facade over the Plaid SDK.

The SDK is synchronous, so each call runs in a worker thread. Every SDK or
transport failure leaves this module as a ProviderError carrying Plaid's
error_code; nothing else escapes a fetch.
"""
import asyncio
import json
import logging
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from plaid import ApiException
from plaid.api import plaid_api
from plaid.model.country_code import CountryCode
from plaid.model.investments_holdings_get_request import InvestmentsHoldingsGetRequest
from plaid.model.investments_transactions_get_request import InvestmentsTransactionsGetRequest
from plaid.model.investments_transactions_get_request_options import InvestmentsTransactionsGetRequestOptions
from plaid.model.item_public_token_exchange_request import ItemPublicTokenExchangeRequest
from plaid.model.item_remove_request import ItemRemoveRequest
from plaid.model.link_token_create_request import LinkTokenCreateRequest
from plaid.model.link_token_create_request_user import LinkTokenCreateRequestUser
from plaid.model.link_token_investments import LinkTokenInvestments
from plaid.model.products import Products

from services.errors import ProviderError

logger = logging.getLogger(__name__)

CLIENT_NAME = "TradeLog"
TRANSACTIONS_PAGE_SIZE = 500


def _provider_error(exc: Exception, action: str) -> ProviderError:
    """Translate an SDK/transport exception into a ProviderError."""
    code = "PLAID_API_ERROR"
    message = f"{action} failed: {type(exc).__name__}"
    display_message = None
    if isinstance(exc, ApiException):
        body: Dict[str, Any] = {}
        try:
            body = json.loads(exc.body or "{}")
        except (TypeError, ValueError):
            pass
        code = body.get("error_code") or code
        message = f"{action} failed: {body.get('error_message') or exc.reason or exc.status}"
        display_message = body.get("display_message")
    return ProviderError(message, code=code, display_message=display_message)


def _as_list(response: Dict[str, Any], key: str) -> List[Any]:
    return list(response.get(key) or [])


class PlaidProviderClient:
    def __init__(
        self,
        api: plaid_api.PlaidApi,
        country_codes: Sequence[str] = ("US",),
        default_redirect_uri: Optional[str] = None,
    ):
        self._api = api
        self._country_codes = [CountryCode(c) for c in country_codes]
        self._default_redirect_uri = default_redirect_uri

    async def _call(self, action: str, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except ProviderError:
            raise
        except Exception as e:
            raise _provider_error(e, action) from e

    # ----------- LINK TOKEN ----------------

    def _sync_create_link_token(self, user_id: str, redirect_uri: Optional[str]) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = dict(
            products=[Products("investments")],
            client_name=CLIENT_NAME,
            country_codes=self._country_codes,
            language="en",
            user=LinkTokenCreateRequestUser(client_user_id=str(user_id)),
            investments=LinkTokenInvestments(
                allow_unverified_crypto_wallets=False,
                allow_manual_entry=False,
            ),
        )
        uri = redirect_uri or self._default_redirect_uri
        if uri:
            kwargs["redirect_uri"] = uri
        response = self._api.link_token_create(LinkTokenCreateRequest(**kwargs))
        return {
            "link_token": response["link_token"],
            "expiration": response["expiration"],
            "request_id": response["request_id"],
        }

    async def create_link_token(self, user_id: str, redirect_uri: Optional[str] = None) -> Dict[str, Any]:
        return await self._call("link_token_create", self._sync_create_link_token, user_id, redirect_uri)

    # ----------- EXCHANGE TOKEN ----------------

    def _sync_exchange_public_token(self, public_token: str) -> Dict[str, str]:
        response = self._api.item_public_token_exchange(
            ItemPublicTokenExchangeRequest(public_token=public_token)
        )
        return {
            "access_token": response["access_token"],
            "item_id": response["item_id"],
        }

    async def exchange_public_token(self, public_token: str) -> Dict[str, str]:
        return await self._call("item_public_token_exchange", self._sync_exchange_public_token, public_token)

    # ----------- INVESTMENTS ----------------

    def _sync_fetch_holdings(self, access_token: str) -> Dict[str, Any]:
        response = self._api.investments_holdings_get(
            InvestmentsHoldingsGetRequest(access_token=access_token)
        ).to_dict()
        return {
            "accounts": _as_list(response, "accounts"),
            "holdings": _as_list(response, "holdings"),
            "securities": _as_list(response, "securities"),
            "request_id": response.get("request_id"),
        }

    async def fetch_holdings(self, access_token: str) -> Dict[str, Any]:
        return await self._call("investments_holdings_get", self._sync_fetch_holdings, access_token)

    def _sync_fetch_transactions(self, access_token: str, start_date: str, end_date: str) -> Dict[str, Any]:
        start = date.fromisoformat(start_date)
        end = date.fromisoformat(end_date)

        # Plaid pages investment transactions; walk offsets until the reported total
        transactions: List[Any] = []
        response: Dict[str, Any] = {}
        while True:
            request = InvestmentsTransactionsGetRequest(
                access_token=access_token,
                start_date=start,
                end_date=end,
                options=InvestmentsTransactionsGetRequestOptions(
                    count=TRANSACTIONS_PAGE_SIZE,
                    offset=len(transactions),
                ),
            )
            response = self._api.investments_transactions_get(request).to_dict()
            page = _as_list(response, "investment_transactions")
            transactions.extend(page)
            total = response.get("total_investment_transactions") or 0
            if not page or len(transactions) >= total:
                break

        return {
            "accounts": _as_list(response, "accounts"),
            "transactions": transactions,
            "securities": _as_list(response, "securities"),
            "request_id": response.get("request_id"),
        }

    async def fetch_transactions(self, access_token: str, start_date: str, end_date: str) -> Dict[str, Any]:
        return await self._call(
            "investments_transactions_get",
            self._sync_fetch_transactions,
            access_token,
            start_date,
            end_date,
        )

    # ----------- ITEM REMOVAL ----------------

    def _sync_remove_item(self, access_token: str) -> None:
        self._api.item_remove(ItemRemoveRequest(access_token=access_token))

    async def remove_item(self, access_token: str) -> None:
        await self._call("item_remove", self._sync_remove_item, access_token)
