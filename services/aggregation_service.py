# services/aggregation_service.py
"""
Fan-out of Plaid investment calls across every item a user has linked,
merged into one result.

Each per-item call settles into a ProviderCallResult; the engine waits for
all of them, drops the failures (logged and counted) and concatenates the
successes in credential order. Only when every call fails does the request
fail as a whole.
"""
from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence

from models.linked_item_credential import LinkedItemCredential
from services.errors import (
    AllAccountsFailedError,
    NoConnectedAccountsError,
    ProviderError,
    ValidationError,
)

logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class CredentialSource(Protocol):
    def list_active(self, user_id: str) -> Sequence[LinkedItemCredential]: ...

    def mark_used(self, user_id: str, item_ids: Sequence[str]) -> None: ...


class InvestmentsProvider(Protocol):
    async def fetch_holdings(self, access_token: str) -> Dict[str, Any]: ...

    async def fetch_transactions(self, access_token: str, start_date: str, end_date: str) -> Dict[str, Any]: ...


@dataclass
class ProviderCallResult:
    index: int
    item_id: str
    data: Optional[Dict[str, Any]] = None
    error: Optional[ProviderError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class HoldingsResult:
    accounts: List[Any]
    holdings: List[Any]
    securities: List[Any]
    total_connected_accounts: int
    fetched_accounts: int
    request_id: Optional[str] = None
    failed_items: List[str] = field(default_factory=list)

    def to_response(self) -> Dict[str, Any]:
        return {
            "accounts": self.accounts,
            "holdings": self.holdings,
            "securities": self.securities,
            "total_accounts": len(self.accounts),
            "total_holdings": len(self.holdings),
            "request_id": self.request_id,
            "fetched_accounts": self.fetched_accounts,
            "total_connected_accounts": self.total_connected_accounts,
        }


@dataclass
class TransactionsResult:
    accounts: List[Any]
    transactions: List[Any]
    securities: List[Any]
    total_connected_accounts: int
    fetched_accounts: int
    start_date: str
    end_date: str
    request_id: Optional[str] = None
    failed_items: List[str] = field(default_factory=list)

    def to_response(self) -> Dict[str, Any]:
        return {
            "accounts": self.accounts,
            "investment_transactions": self.transactions,
            "securities": self.securities,
            "total_investment_transactions": len(self.transactions),
            "date_range": {"start_date": self.start_date, "end_date": self.end_date},
            "request_id": self.request_id,
            "fetched_accounts": self.fetched_accounts,
            "total_connected_accounts": self.total_connected_accounts,
        }


def validate_date(value: Optional[str], name: str) -> str:
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        raise ValidationError(
            f"{name} must be in YYYY-MM-DD format",
            display_message="Please choose a valid date range.",
        )
    try:
        date.fromisoformat(value)
    except ValueError:
        raise ValidationError(
            f"{name} is not a valid calendar date",
            display_message="Please choose a valid date range.",
        )
    return value


class AggregationEngine:
    def __init__(self, store: CredentialSource, provider: InvestmentsProvider):
        self.store = store
        self.provider = provider

    async def _credentials_for(self, user_id: str) -> List[LinkedItemCredential]:
        # Session I/O runs off the event loop
        credentials = list(await asyncio.to_thread(self.store.list_active, user_id))
        if not credentials:
            raise NoConnectedAccountsError("No connected accounts found")
        return credentials

    async def _settle(
        self,
        index: int,
        credential: LinkedItemCredential,
        call: Callable[[str], Awaitable[Dict[str, Any]]],
    ) -> ProviderCallResult:
        try:
            data = await call(credential.access_token)
        except ProviderError as e:
            return ProviderCallResult(index=index, item_id=credential.item_id, error=e)
        return ProviderCallResult(index=index, item_id=credential.item_id, data=data)

    async def _fan_out(
        self,
        user_id: str,
        credentials: List[LinkedItemCredential],
        call: Callable[[str], Awaitable[Dict[str, Any]]],
        label: str,
    ) -> List[ProviderCallResult]:
        # gather preserves argument order, so results line up with credentials
        # no matter which call finishes first
        results = await asyncio.gather(
            *(self._settle(i, c, call) for i, c in enumerate(credentials))
        )

        failed = [r for r in results if not r.ok]
        for r in failed:
            logger.warning(
                "%s_item_failed index=%d item_id=%s code=%s",
                label, r.index + 1, r.item_id, r.error.code,
            )

        succeeded = [r for r in results if r.ok]
        if not succeeded:
            raise AllAccountsFailedError(
                f"Failed to fetch {label} from all {len(credentials)} connected accounts",
                failures=[r.error for r in failed],
            )

        await asyncio.to_thread(self.store.mark_used, user_id, [r.item_id for r in succeeded])
        return list(results)

    async def get_holdings(self, user_id: str) -> HoldingsResult:
        credentials = await self._credentials_for(user_id)
        logger.info("holdings_fetch_started items=%d", len(credentials))

        results = await self._fan_out(user_id, credentials, self.provider.fetch_holdings, "holdings")
        succeeded = [r for r in results if r.ok]

        merged = HoldingsResult(
            accounts=[a for r in succeeded for a in r.data.get("accounts") or []],
            holdings=[h for r in succeeded for h in r.data.get("holdings") or []],
            securities=[s for r in succeeded for s in r.data.get("securities") or []],
            total_connected_accounts=len(credentials),
            fetched_accounts=len(succeeded),
            request_id=succeeded[0].data.get("request_id"),
            failed_items=[r.item_id for r in results if not r.ok],
        )
        logger.info(
            "holdings_aggregated holdings=%d securities=%d fetched=%d/%d",
            len(merged.holdings), len(merged.securities),
            merged.fetched_accounts, merged.total_connected_accounts,
        )
        return merged

    async def get_transactions(self, user_id: str, start_date: str, end_date: str) -> TransactionsResult:
        start_date = validate_date(start_date, "start_date")
        end_date = validate_date(end_date, "end_date")

        credentials = await self._credentials_for(user_id)
        logger.info(
            "transactions_fetch_started items=%d start=%s end=%s",
            len(credentials), start_date, end_date,
        )

        async def call(access_token: str) -> Dict[str, Any]:
            return await self.provider.fetch_transactions(access_token, start_date, end_date)

        results = await self._fan_out(user_id, credentials, call, "transactions")
        succeeded = [r for r in results if r.ok]

        merged = TransactionsResult(
            accounts=[a for r in succeeded for a in r.data.get("accounts") or []],
            transactions=[t for r in succeeded for t in r.data.get("transactions") or []],
            securities=[s for r in succeeded for s in r.data.get("securities") or []],
            total_connected_accounts=len(credentials),
            fetched_accounts=len(succeeded),
            start_date=start_date,
            end_date=end_date,
            request_id=succeeded[0].data.get("request_id"),
            failed_items=[r.item_id for r in results if not r.ok],
        )
        logger.info(
            "transactions_aggregated transactions=%d fetched=%d/%d",
            len(merged.transactions), merged.fetched_accounts, merged.total_connected_accounts,
        )
        return merged
