# waveorder/services/stripe_client.py
import asyncio
import functools
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import stripe

from waveorder.core.config import settings
from waveorder.core.exceptions import CustomerMissingError, ProcessorError
from waveorder.core.logging import logger
from waveorder.core.result import Result


def _epoch_to_datetime(value: Optional[int]) -> Optional[datetime]:
    """Stripe epoch seconds -> naive UTC datetime (matches DB columns)"""
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)


def _as_dict(obj: Any) -> Dict[str, Any]:
    if isinstance(obj, dict):
        return obj
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


@dataclass
class ExternalSubscription:
    """A Stripe subscription, reduced to the fields reconciliation reads"""
    id: str
    status: str
    price_id: str
    created: datetime
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    subscription_item_id: Optional[str] = None
    unit_amount: int = 0
    interval: Optional[str] = None
    canceled_at: Optional[datetime] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_stripe(cls, raw: Any) -> "ExternalSubscription":
        data = _as_dict(raw)
        items = _as_dict(data.get("items") or {}).get("data") or []
        first_item = _as_dict(items[0]) if items else {}
        price = _as_dict(first_item.get("price") or {})
        recurring = _as_dict(price.get("recurring") or {})

        # Newer API versions report the billing period on the item
        period_end = data.get("current_period_end") or first_item.get("current_period_end")

        return cls(
            id=data["id"],
            status=data["status"],
            price_id=price.get("id") or "",
            created=_epoch_to_datetime(data["created"]),
            current_period_end=_epoch_to_datetime(period_end),
            cancel_at_period_end=bool(data.get("cancel_at_period_end")),
            subscription_item_id=first_item.get("id"),
            unit_amount=price.get("unit_amount") or 0,
            interval=recurring.get("interval"),
            canceled_at=_epoch_to_datetime(data.get("canceled_at")),
            metadata=dict(data.get("metadata") or {}),
        )

    @property
    def monthly_amount(self) -> float:
        """List price normalised to one month, in major currency units"""
        if not self.unit_amount:
            return 0.0
        if self.interval == "year":
            return self.unit_amount / 100 / 12
        return self.unit_amount / 100


@dataclass
class ChargeSummary:
    amount: float
    currency: str
    date: datetime


class StripeClient:
    """Thin async facade over the Stripe SDK.

    One instance is built at startup and injected where needed; the API key
    is passed per request so no module-level SDK state is mutated.
    """

    def __init__(self, api_key: Optional[str] = None, api_version: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.STRIPE_SECRET_KEY
        self.api_version = api_version if api_version is not None else settings.STRIPE_API_VERSION

    def _request_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {"api_key": self.api_key}
        if self.api_version:
            options["stripe_version"] = self.api_version
        return options

    async def _call(self, fn, *args, **params):
        """Run a blocking SDK call off the event loop"""
        return await asyncio.to_thread(functools.partial(fn, *args, **params, **self._request_options()))

    async def list_subscriptions(self, customer_id: str, limit: Optional[int] = None) -> List[ExternalSubscription]:
        """
        List a customer's subscriptions (Stripe omits canceled ones by default)

        Raises:
            CustomerMissingError: the customer id does not exist at Stripe
            ProcessorError: any other Stripe failure
        """
        try:
            page = await self._call(
                stripe.Subscription.list,
                customer=customer_id,
                limit=limit or settings.STRIPE_SUBSCRIPTION_PAGE_SIZE,
            )
        except stripe.InvalidRequestError as e:
            if getattr(e, "code", None) == "resource_missing":
                raise CustomerMissingError(str(e)) from e
            logger.error(f"Stripe subscription list failed for {customer_id}: {e}")
            raise ProcessorError(str(e)) from e
        except stripe.StripeError as e:
            logger.error(f"Stripe subscription list failed for {customer_id}: {e}")
            raise ProcessorError(str(e)) from e

        return [ExternalSubscription.from_stripe(s) for s in page.data]

    async def list_all_subscriptions(self, status: str = "all") -> List[ExternalSubscription]:
        """Every subscription on the account, auto-paginated"""

        def _collect():
            page = stripe.Subscription.list(status=status, limit=100, **self._request_options())
            return [ExternalSubscription.from_stripe(s) for s in page.auto_paging_iter()]

        try:
            return await asyncio.to_thread(_collect)
        except stripe.StripeError as e:
            raise ProcessorError(str(e)) from e

    async def cancel_subscription(self, subscription_id: str) -> None:
        try:
            await self._call(stripe.Subscription.cancel, subscription_id)
        except stripe.StripeError as e:
            raise ProcessorError(str(e)) from e
        logger.info(f"Canceled Stripe subscription {subscription_id}")

    async def has_payment_method(self, customer_id: str) -> Result[bool]:
        """Whether the customer has at least one card on file"""
        try:
            methods = await self._call(
                stripe.PaymentMethod.list, customer=customer_id, type="card", limit=1
            )
            return Result.ok(len(methods.data) > 0)
        except stripe.StripeError as e:
            return Result.err(e)

    async def last_charge(self, customer_id: str) -> Result[Optional[ChargeSummary]]:
        """Most recent successful charge for the customer, if any"""
        try:
            charges = await self._call(stripe.Charge.list, customer=customer_id, limit=10)
        except stripe.StripeError as e:
            return Result.err(e)

        for raw in charges.data:
            charge = _as_dict(raw)
            if charge.get("status") != "succeeded":
                continue
            return Result.ok(ChargeSummary(
                amount=charge["amount"] / 100,
                currency=charge["currency"],
                date=_epoch_to_datetime(charge["created"]),
            ))
        return Result.ok(None)
