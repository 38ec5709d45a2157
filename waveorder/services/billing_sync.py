# waveorder/services/billing_sync.py
"""
Stripe billing reconciliation.

Compares what Stripe holds for a business owner's customer against the
locally cached billing state (business plan/status, owner user, local
Subscription record), names every discrepancy, and on request applies
corrective writes. Stripe is the source of truth; local rows are a cache.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from waveorder.core.audit_log import AuditLogger, AuditEventType
from waveorder.core.config import settings
from waveorder.core.constants import (
    DEFAULT_PLAN,
    STRIPE_ACTIVE_STATUSES,
    STRIPE_CANCELLABLE_STATUSES,
    STRIPE_TERMINAL_STATUSES,
    BusinessSubscriptionStatus,
    map_price_to_plan,
)
from waveorder.core.exceptions import (
    CustomerMissingError,
    NotFoundError,
    ProcessorError,
    SyncInProgressError,
    WaveOrderError,
)
from waveorder.db.base import utcnow
from waveorder.db.models.business import Business
from waveorder.db.models.subscription import Subscription
from waveorder.db.models.user import User
from waveorder.db.repositories.business_repository import BusinessRepository
from waveorder.db.repositories.subscription_repository import SubscriptionRepository
from waveorder.schemas.billing_sync import (
    BusinessFixOutcome,
    BusinessSyncSummary,
    DbSubscriptionView,
    GlobalFixResult,
    GlobalSyncSummary,
    IssueSeverity,
    IssueType,
    LastPayment,
    StripeSubscriptionView,
    SyncAnalysis,
    SyncFixResult,
    SyncIssue,
    SyncStatus,
)
from waveorder.services.stripe_client import ExternalSubscription, StripeClient

logger = logging.getLogger(__name__)


def display_plan(sub: ExternalSubscription) -> str:
    plan = map_price_to_plan(sub.price_id).value
    return f"{plan} (Free)" if sub.unit_amount == 0 else plan


@dataclass
class SyncState:
    """Everything one reconciliation pass looked at, kept for the fix step"""
    business: Business
    owner: Optional[User]
    db_subscription: Optional[Subscription]
    stripe_subscriptions: List[ExternalSubscription] = field(default_factory=list)
    active: List[ExternalSubscription] = field(default_factory=list)
    primary: Optional[ExternalSubscription] = None
    issues: List[SyncIssue] = field(default_factory=list)
    status: SyncStatus = SyncStatus.IN_SYNC

    # Plain ids survive a session rollback; loaded ORM objects expire on it
    business_id: str = ""
    owner_id: Optional[str] = None
    db_subscription_id: Optional[str] = None


def detect_issues(
    business: Business,
    db_subscription: Optional[Subscription],
    stripe_subscriptions: List[ExternalSubscription],
) -> Tuple[List[SyncIssue], List[ExternalSubscription], Optional[ExternalSubscription]]:
    """Diff Stripe subscriptions against local state.

    Returns (issues, non-terminal subscriptions, primary subscription).
    """
    issues: List[SyncIssue] = []
    active = sorted(
        (s for s in stripe_subscriptions if s.status not in STRIPE_TERMINAL_STATUSES),
        key=lambda s: s.created,
        reverse=True,
    )
    primary = active[0] if active else None

    if len(active) > 1:
        issues.append(SyncIssue(
            type=IssueType.DUPLICATE_SUBS,
            severity=IssueSeverity.CRITICAL,
            description=f"{len(active)} active/paused Stripe subscriptions found (should be max 1)",
            stripe_data=[{"id": s.id, "status": s.status, "created": s.created.isoformat()} for s in active],
            fix="Cancel duplicates, keep most recent",
        ))

    if primary and (db_subscription is None or db_subscription.stripe_id != primary.id):
        issues.append(SyncIssue(
            type=IssueType.MISSING_SUBSCRIPTION,
            severity=IssueSeverity.CRITICAL,
            description=(
                "Stripe subscription exists but no Subscription record in DB"
                if db_subscription is None
                else f"DB Subscription references {db_subscription.stripe_id}, not the current Stripe subscription {primary.id}"
            ),
            stripe_data={"id": primary.id, "status": primary.status},
            db_data={"stripe_id": db_subscription.stripe_id} if db_subscription is not None else None,
            fix="Create or re-link DB Subscription record from Stripe data",
        ))

    if db_subscription is not None and not any(s.id == db_subscription.stripe_id for s in stripe_subscriptions):
        issues.append(SyncIssue(
            type=IssueType.ORPHANED_DB_RECORD,
            severity=IssueSeverity.WARNING,
            description=f"DB Subscription references Stripe ID {db_subscription.stripe_id} which no longer exists",
            db_data={"id": db_subscription.id, "stripe_id": db_subscription.stripe_id},
            fix="Remove orphaned DB record",
        ))

    local_plan = business.subscription_plan
    local_status = business.subscription_status

    if primary:
        stripe_plan = map_price_to_plan(primary.price_id).value
        is_active = primary.status in STRIPE_ACTIVE_STATUSES

        if is_active and local_plan != stripe_plan:
            issues.append(SyncIssue(
                type=IssueType.PLAN_MISMATCH,
                severity=IssueSeverity.CRITICAL,
                description=f"Stripe has active {display_plan(primary)} subscription, but DB shows {local_plan}",
                stripe_data={"plan": stripe_plan, "status": primary.status},
                db_data={"plan": local_plan},
                fix=f"Update DB to {stripe_plan}",
            ))

        if (
            primary.status == "paused"
            and local_plan != DEFAULT_PLAN.value
            and local_status == BusinessSubscriptionStatus.ACTIVE.value
        ):
            issues.append(SyncIssue(
                type=IssueType.STATUS_MISMATCH,
                severity=IssueSeverity.CRITICAL,
                description=(
                    f"Stripe subscription is paused (trial expired), but DB still shows "
                    f"{local_plan} / {local_status}"
                ),
                stripe_data={"status": primary.status},
                db_data={"plan": local_plan, "status": local_status},
                fix=f"Downgrade DB to {DEFAULT_PLAN.value} / {BusinessSubscriptionStatus.INACTIVE.value}",
            ))

        if is_active and local_status != BusinessSubscriptionStatus.ACTIVE.value:
            issues.append(SyncIssue(
                type=IssueType.STATUS_MISMATCH,
                severity=IssueSeverity.WARNING,
                description=f"Stripe subscription is {primary.status}, but DB status is {local_status}",
                fix="Update DB status to ACTIVE",
            ))

        if (
            is_active
            and db_subscription is not None
            and primary.price_id
            and db_subscription.price_id != primary.price_id
        ):
            issues.append(SyncIssue(
                type=IssueType.PRICE_ID_MISMATCH,
                severity=IssueSeverity.WARNING,
                description="Stripe subscription price (e.g. monthly/yearly) changed; DB Subscription still has old priceId",
                stripe_data={"price_id": primary.price_id},
                db_data={"price_id": db_subscription.price_id},
                fix="Update DB Subscription priceId and period from Stripe",
            ))

    elif local_plan != DEFAULT_PLAN.value and business.trial_ends_at is None:
        # Usually a manual comp; reported only, never auto-fixed
        issues.append(SyncIssue(
            type=IssueType.STATUS_MISMATCH,
            severity=IssueSeverity.WARNING,
            description=f"No active Stripe subscriptions, but DB shows {local_plan}. May be a free override.",
        ))

    return issues, active, primary


class BillingSyncService:
    """Analyze and repair Stripe/DB billing drift for businesses"""

    def __init__(self, session: AsyncSession, stripe_client: StripeClient):
        self.session = session
        self.stripe = stripe_client
        self.businesses = BusinessRepository(session)
        self.subscriptions = SubscriptionRepository(session)

    async def _load(self, business_id: str) -> SyncState:
        business = await self.businesses.get_with_members(business_id)
        if not business:
            raise NotFoundError(f"Business {business_id} not found")

        owner = self.businesses.owner_of(business)
        db_subscription = owner.subscription if owner else None
        return SyncState(
            business=business,
            owner=owner,
            db_subscription=db_subscription,
            business_id=business.id,
            owner_id=owner.id if owner else None,
            db_subscription_id=db_subscription.id if db_subscription is not None else None,
        )

    async def _inspect(self, state: SyncState) -> None:
        """Fetch Stripe state and populate issues/status on `state`"""
        business = state.business
        customer_id = state.owner.stripe_customer_id if state.owner else None

        if not customer_id:
            state.status = SyncStatus.NO_STRIPE_CUSTOMER
            if business.subscription_plan != DEFAULT_PLAN.value:
                state.issues.append(SyncIssue(
                    type=IssueType.NO_STRIPE_CUSTOMER,
                    severity=IssueSeverity.WARNING,
                    description=(
                        f"Business is on {business.subscription_plan} but owner has no Stripe customer ID"
                    ),
                ))
            return

        try:
            state.stripe_subscriptions = await self.stripe.list_subscriptions(customer_id)
        except CustomerMissingError:
            logger.warning(f"Stripe customer {customer_id} for business {business.id} does not exist")
            state.status = SyncStatus.ISSUES_FOUND
            state.issues.append(SyncIssue(
                type=IssueType.NO_STRIPE_CUSTOMER,
                severity=IssueSeverity.CRITICAL,
                description="Stripe customer ID in DB does not exist in Stripe",
            ))
            return

        state.issues, state.active, state.primary = detect_issues(
            business, state.db_subscription, state.stripe_subscriptions
        )
        state.status = SyncStatus.ISSUES_FOUND if state.issues else SyncStatus.IN_SYNC

    def _to_analysis(self, state: SyncState) -> SyncAnalysis:
        owner = state.owner
        return SyncAnalysis(
            business_id=state.business.id,
            business_name=state.business.name,
            owner_email=owner.email if owner else None,
            stripe_customer_id=owner.stripe_customer_id if owner else None,
            status=state.status,
            issues=state.issues,
            stripe_subscriptions=[
                StripeSubscriptionView(
                    id=s.id,
                    subscription_item_id=s.subscription_item_id,
                    status=s.status,
                    plan=map_price_to_plan(s.price_id).value,
                    display_plan=display_plan(s),
                    price_id=s.price_id,
                    current_period_end=s.current_period_end,
                    cancel_at_period_end=s.cancel_at_period_end,
                    created=s.created,
                )
                for s in state.stripe_subscriptions
            ],
            db_subscription=(
                DbSubscriptionView.model_validate(state.db_subscription)
                if state.db_subscription is not None else None
            ),
            db_plan=state.business.subscription_plan,
            db_status=state.business.subscription_status,
        )

    async def analyze(self, business_id: str) -> SyncAnalysis:
        """
        Build the reconciliation report for one business

        The only write is the last-checked stamp on the business.

        Raises:
            NotFoundError: unknown business
            ProcessorError: Stripe failed for a reason other than a missing customer
        """
        state = await self._load(business_id)
        await self._inspect(state)
        analysis = self._to_analysis(state)

        customer_id = analysis.stripe_customer_id
        if customer_id and state.status != SyncStatus.NO_STRIPE_CUSTOMER and not self._customer_missing(state):
            has_method = await self.stripe.has_payment_method(customer_id)
            if not has_method.is_ok:
                logger.warning(f"Payment method lookup failed for {customer_id}: {has_method.error}")
            analysis.has_payment_method = has_method.unwrap_or(False)

            charge = await self.stripe.last_charge(customer_id)
            if not charge.is_ok:
                logger.warning(f"Charge lookup failed for {customer_id}: {charge.error}")
            last = charge.unwrap_or(None)
            if last is not None:
                analysis.last_payment = LastPayment(amount=last.amount, currency=last.currency, date=last.date)

        await self.businesses.stamp_stripe_sync(business_id, analysis.status.value)

        if analysis.issues:
            logger.info(
                f"Stripe sync found {len(analysis.issues)} issue(s): "
                f"{', '.join(i.type.value for i in analysis.issues)}",
                extra={"business_id": business_id},
            )
        return analysis

    @staticmethod
    def _customer_missing(state: SyncState) -> bool:
        return any(
            i.type == IssueType.NO_STRIPE_CUSTOMER and i.severity == IssueSeverity.CRITICAL
            for i in state.issues
        )

    async def fix(self, business_id: str, triggered_by: Optional[str] = None) -> SyncFixResult:
        """
        Apply one corrective action per detected issue

        Raises:
            NotFoundError: unknown business
            SyncInProgressError: another fix holds this business's sync lock
        """
        if not await self.businesses.get(business_id):
            raise NotFoundError(f"Business {business_id} not found")

        if not await self.businesses.try_acquire_sync_lock(business_id, settings.STRIPE_SYNC_LOCK_SECONDS):
            raise SyncInProgressError(f"Stripe sync already running for business {business_id}")

        try:
            state = await self._load(business_id)
            await self._inspect(state)

            if state.status == SyncStatus.IN_SYNC:
                await self.businesses.stamp_stripe_sync(business_id, SyncStatus.IN_SYNC.value)
                return SyncFixResult(success=True, message="Business is already in sync")

            if state.status == SyncStatus.NO_STRIPE_CUSTOMER or self._customer_missing(state):
                await self.businesses.stamp_stripe_sync(business_id, state.status.value)
                return SyncFixResult(
                    success=False,
                    message="No Stripe customer found for this business owner. Cannot sync.",
                )

            fixes_applied, details = await self._apply_fixes(state)
        finally:
            await self.businesses.release_sync_lock(business_id)

        sync_status = SyncStatus.IN_SYNC if fixes_applied > 0 else SyncStatus.ISSUES_FOUND
        await self.businesses.stamp_stripe_sync(business_id, sync_status.value)

        try:
            await AuditLogger(self.session).log_event(
                event_type=AuditEventType.ADMIN_ACTION,
                business_id=business_id,
                endpoint=f"{settings.API_V1_STR}/superadmin/businesses/{business_id}/stripe-sync",
                method="POST",
                details={
                    "action": "stripe_sync_fix",
                    "fixes_applied": fixes_applied,
                    "fix_results": details,
                    "synced_by": triggered_by,
                },
            )
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to write stripe sync audit event for {business_id}: {e}")

        logger.info(f"Applied {fixes_applied} Stripe sync fix(es)", extra={"business_id": business_id})
        return SyncFixResult(
            success=True,
            message=f"Applied {fixes_applied} fix(es)",
            fixes_applied=fixes_applied,
            details=details,
        )

    async def _apply_fixes(self, state: SyncState) -> Tuple[int, List[str]]:
        fixes_applied = 0
        details: List[str] = []
        plan_synced = False
        # An orphaned record is replaced by the orphan fix, which also links the primary
        orphaned = any(i.type == IssueType.ORPHANED_DB_RECORD for i in state.issues)

        for issue in state.issues:
            try:
                if issue.type == IssueType.DUPLICATE_SUBS:
                    for sub in state.active[1:]:
                        if sub.status not in STRIPE_CANCELLABLE_STATUSES:
                            continue
                        try:
                            await self.stripe.cancel_subscription(sub.id)
                        except Exception as e:
                            logger.warning(
                                f"Cancelling duplicate subscription {sub.id} failed: {e}",
                                extra={"business_id": state.business_id},
                            )
                            details.append(f"Failed to fix {issue.type.value}: {e}")
                            continue
                        details.append(f"Canceled duplicate subscription {sub.id}")
                        fixes_applied += 1

                elif issue.type == IssueType.MISSING_SUBSCRIPTION:
                    if state.primary and not orphaned:
                        relink = state.db_subscription_id is not None
                        await self._mirror_primary(state)
                        if relink:
                            details.append(f"Linked Subscription record to {state.primary.id}")
                        else:
                            details.append(f"Created Subscription record for {state.primary.id}")
                        fixes_applied += 1

                elif issue.type == IssueType.ORPHANED_DB_RECORD:
                    if state.owner_id and state.db_subscription_id:
                        await self._remove_orphan(state)
                        details.append("Removed orphaned DB subscription record")
                        fixes_applied += 1
                        if state.primary:
                            await self._mirror_primary(state)
                            details.append(f"Linked owner to Stripe subscription {state.primary.id}")

                elif issue.type == IssueType.PRICE_ID_MISMATCH:
                    if state.primary:
                        await self._mirror_primary(state)
                        details.append("Updated Subscription priceId/period from Stripe (e.g. monthly/yearly)")
                        fixes_applied += 1

                elif issue.type in (IssueType.PLAN_MISMATCH, IssueType.STATUS_MISMATCH):
                    if plan_synced:
                        continue
                    if state.primary is None:
                        details.append(f"Skipped {issue.type.value}: no Stripe subscription to sync from")
                        continue
                    details.append(await self._sync_plan(state))
                    plan_synced = True
                    fixes_applied += 1

            except Exception as e:
                await self.session.rollback()
                logger.warning(
                    f"Stripe sync fix {issue.type.value} failed: {e}",
                    extra={"business_id": state.business_id},
                )
                details.append(f"Failed to fix {issue.type.value}: {e}")

        return fixes_applied, details

    async def _mirror_primary(self, state: SyncState) -> None:
        """Create or update the local Subscription so it mirrors the primary Stripe one"""
        primary = state.primary
        values = {
            "stripe_id": primary.id,
            "status": primary.status,
            "price_id": primary.price_id,
            "plan": map_price_to_plan(primary.price_id).value,
            "current_period_end": primary.current_period_end,
            "cancel_at_period_end": primary.cancel_at_period_end,
        }

        if state.db_subscription_id:
            await self.subscriptions.update(state.db_subscription_id, values)
            return

        created = await self.subscriptions.create({**values, "current_period_start": utcnow()})
        state.db_subscription_id = created.id
        if state.owner_id:
            await self.subscriptions.link_owner(state.owner_id, created.id)

    async def _remove_orphan(self, state: SyncState) -> None:
        orphan_id = state.db_subscription_id
        await self.subscriptions.link_owner(state.owner_id, None)
        state.db_subscription_id = None
        try:
            await self.subscriptions.delete(orphan_id)
        except SQLAlchemyError as e:
            # Still referenced elsewhere; leaving the row is harmless once unlinked
            await self.session.rollback()
            logger.warning(f"Could not delete orphaned subscription {orphan_id}: {e}")

    async def _sync_plan(self, state: SyncState) -> str:
        primary = state.primary
        plan = map_price_to_plan(primary.price_id).value
        is_active = primary.status in STRIPE_ACTIVE_STATUSES

        if is_active:
            status = BusinessSubscriptionStatus.ACTIVE
        elif primary.status == "paused":
            status = BusinessSubscriptionStatus.INACTIVE
        else:
            status = BusinessSubscriptionStatus.CANCELLED
        new_plan = plan if is_active else DEFAULT_PLAN.value

        business_values = {"subscription_plan": new_plan, "subscription_status": status.value}
        user_values = {"plan": new_plan}
        if is_active:
            business_values.update(trial_ends_at=None, grace_ends_at=None)
            user_values.update(trial_ends_at=None, grace_ends_at=None)

        await self.session.execute(
            update(Business)
            .where(Business.id == state.business_id)
            .values(**business_values)
            .execution_options(synchronize_session=False)
        )
        if state.owner_id:
            await self.session.execute(
                update(User)
                .where(User.id == state.owner_id)
                .values(**user_values)
                .execution_options(synchronize_session=False)
            )
        await self.session.commit()

        await self._mirror_primary(state)
        return f"Synced plan to {new_plan} (Stripe: {primary.status})"

    async def analyze_all(self) -> GlobalSyncSummary:
        """Read-only sync overview across all active businesses"""
        businesses = await self.businesses.list_active_with_members()
        summaries: List[BusinessSyncSummary] = []

        for business in businesses:
            owner = self.businesses.owner_of(business)
            summary = BusinessSyncSummary(
                business_id=business.id,
                business_name=business.name,
                owner_email=owner.email if owner else None,
                status=SyncStatus.IN_SYNC,
            )

            if not owner or not owner.stripe_customer_id:
                if business.subscription_plan != DEFAULT_PLAN.value:
                    summary.status = SyncStatus.NO_STRIPE_CUSTOMER
                    summary.issues = [f"On {business.subscription_plan} but no Stripe customer"]
                summaries.append(summary)
                continue

            try:
                subs = await self.stripe.list_subscriptions(owner.stripe_customer_id)
                issues, _, _ = detect_issues(business, owner.subscription, subs)
                summary.issues = [i.description for i in issues]
            except CustomerMissingError:
                summary.issues = ["Stripe customer ID does not exist in Stripe"]
            except ProcessorError as e:
                logger.warning(f"Stripe lookup failed during global analyze: {e}", extra={"business_id": business.id})
                summary.issues = [f"Stripe API error: {e}"]

            if summary.issues:
                summary.status = SyncStatus.ISSUES_FOUND
            summaries.append(summary)

        for summary in summaries:
            summary.issue_count = len(summary.issues)

        return GlobalSyncSummary(
            total_businesses=len(summaries),
            in_sync=sum(1 for s in summaries if s.status == SyncStatus.IN_SYNC),
            with_issues=sum(1 for s in summaries if s.status == SyncStatus.ISSUES_FOUND),
            no_stripe_customer=sum(1 for s in summaries if s.status == SyncStatus.NO_STRIPE_CUSTOMER),
            businesses=summaries,
        )

    async def fix_all(
        self,
        business_ids: Optional[List[str]] = None,
        triggered_by: Optional[str] = None,
    ) -> GlobalFixResult:
        """Run fix() for every active business that has a Stripe customer"""
        businesses = await self.businesses.list_active_with_members(business_ids)
        targets = [
            (b.id, b.name) for b in businesses
            if (owner := self.businesses.owner_of(b)) is not None and owner.stripe_customer_id
        ]

        results: List[BusinessFixOutcome] = []
        total_fixed = 0
        total_failed = 0

        for business_id, business_name in targets:
            try:
                outcome = await self.fix(business_id, triggered_by)
            except (WaveOrderError, SQLAlchemyError) as e:
                await self.session.rollback()
                total_failed += 1
                results.append(BusinessFixOutcome(
                    business_id=business_id,
                    business_name=business_name,
                    success=False,
                    fixes=0,
                    details=[str(e)],
                ))
                continue

            if outcome.fixes_applied > 0:
                total_fixed += 1
                results.append(BusinessFixOutcome(
                    business_id=business_id,
                    business_name=business_name,
                    success=True,
                    fixes=outcome.fixes_applied,
                    details=outcome.details,
                ))

        try:
            await AuditLogger(self.session).log_event(
                event_type=AuditEventType.ADMIN_ACTION,
                endpoint=f"{settings.API_V1_STR}/superadmin/stripe-sync",
                method="POST",
                details={
                    "action": "global_stripe_sync_fix",
                    "total_businesses": len(targets),
                    "total_fixed": total_fixed,
                    "total_failed": total_failed,
                    "synced_by": triggered_by,
                },
            )
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to write global stripe sync audit event: {e}")

        return GlobalFixResult(
            success=True,
            total_businesses=len(targets),
            total_fixed=total_fixed,
            total_failed=total_failed,
            results=results,
        )
