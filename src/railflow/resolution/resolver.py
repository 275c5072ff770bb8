"""Resolver - picks the rail for a payment and builds the plan.

Resolution order:
1. Fetch the user's linked, available rails
2. Score each; drop rails the payee does not accept
3. Rank by score, then priority, then balance
4. Top up the winner from the best other rail if it is short
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from typing import Callable, List, Optional, TypeVar

from railflow.config import EngineConfig, config as default_config
from railflow.errors import (
    CollaboratorUnavailableError,
    InsufficientFundsError,
    NoEligibleRailError,
    ResolverError,
)
from railflow.ledger import AuditLedger, EventType
from railflow.rails.catalog import RailCatalog
from railflow.rails.history import HistoryProvider
from railflow.rails.models import FundingSource, PaymentRequest, RailType
from railflow.resolution.models import (
    ResolutionOutcome,
    ResolutionPlan,
    ResolutionStep,
    StepAction,
)
from railflow.risk import RiskLevel, RiskPolicy, ThresholdRiskPolicy
from railflow.scoring.factors import matches_hint
from railflow.scoring.scorer import ScoredRail, score


logger = logging.getLogger(__name__)

T = TypeVar("T")


def rank(candidates: List[ScoredRail]) -> List[ScoredRail]:
    """Highest score first; ties by lower priority, then higher balance."""
    return sorted(
        candidates,
        key=lambda c: (-c.total_score, c.source.priority, -c.source.balance, c.source.id),
    )


class Resolver:
    """
    Payment Rail Resolution Engine.
    
    Read-only: it never mutates balances. Collaborator fetches are the only
    suspension points and each is bounded by the configured timeout. The
    resolver never retries; retrying a decision is the caller's call.
    """
    
    def __init__(
        self,
        catalog: RailCatalog,
        history: HistoryProvider,
        risk_policy: Optional[RiskPolicy] = None,
        ledger: Optional[AuditLedger] = None,
        config: Optional[EngineConfig] = None,
    ):
        """
        Initialize the resolver.
        
        Args:
            catalog: Funding-source snapshots
            history: Past payment statistics
            risk_policy: Risk assessment (default: amount thresholds)
            ledger: Optional AuditLedger for persisting plans
            config: Engine configuration (default: environment)
        """
        self.catalog = catalog
        self.history = history
        self.config = config or default_config
        self.risk_policy = risk_policy or ThresholdRiskPolicy(config=self.config)
        self.ledger = ledger
        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="railflow-fetch")
        
        logger.info(
            f"Resolver initialized (timeout={self.config.collaborator_timeout_seconds}s)"
        )
    
    def resolve(self, request: PaymentRequest) -> ResolutionOutcome:
        """
        Resolve a payment request.
        
        Returns:
            ResolutionOutcome holding either the plan or the error detail.
            Decision failures never raise.
        """
        try:
            plan = self.plan(request)
        except ResolverError as e:
            logger.warning(f"Resolution failed for {request.intent_id}: {e.kind.value} - {e.message}")
            if self.ledger:
                self.ledger.log_event(
                    event_type=EventType.RESOLUTION_FAILED,
                    payload={
                        "intent_id": request.intent_id,
                        "amount": str(request.amount),
                        "currency": request.currency,
                        "payee": request.payee_id,
                        "error": e.to_detail().model_dump(mode="json"),
                    },
                    user_id=request.user_id,
                    reference_id=request.intent_id,
                )
            return ResolutionOutcome(error=e.to_detail())
        
        return ResolutionOutcome(plan=plan)
    
    def plan(self, request: PaymentRequest) -> ResolutionPlan:
        """
        Build a plan, raising on failure.
        
        Raises:
            NoEligibleRailError: No linked, available, compatible rail
            InsufficientFundsError: Chosen rail is short and nothing can top it up
            CollaboratorUnavailableError: Catalog or history failed or timed out
        """
        sources = self._fetch("rail catalog", self.catalog.list_eligible, request.user_id)
        self._check_snapshot(sources)
        
        # Balances are currency-scoped; other currencies cannot pay or top up
        eligible = [
            s for s in sources
            if s.is_eligible and s.currency == request.currency
        ]
        if not eligible:
            raise NoEligibleRailError(
                f"User {request.user_id} has no linked, available {request.currency} rails"
            )
        
        stats = self._fetch(
            "history provider", self.history.stats_for, request.user_id, request.payee_id
        )
        
        scored = [
            score(
                request,
                source,
                stats,
                allow_zero_balance_top_up=self.config.allow_zero_balance_top_up,
            )
            for source in eligible
        ]
        candidates = rank([c for c in scored if c.is_compatible])
        if not candidates:
            raise NoEligibleRailError(
                f"None of {len(eligible)} eligible rails is accepted by {request.payee_id}"
            )
        
        candidates[0] = candidates[0].model_copy(update={"is_recommended": True})
        chosen = candidates[0]
        fallback = self._find_fallback(request, chosen, candidates[1:])
        
        steps: List[ResolutionStep] = []
        if fallback is not None:
            steps.append(ResolutionStep(
                action=StepAction.TOP_UP,
                source_id=fallback.source.id,
                source_type=fallback.source.type,
                amount=chosen.top_up_amount,
            ))
        steps.append(ResolutionStep(
            action=StepAction.PAY,
            source_id=chosen.source.id,
            source_type=chosen.source.type,
            amount=request.amount,
        ))
        
        risk_level = self.risk_policy.assess(request)
        top_up_needed = fallback is not None
        limit = chosen.source.max_auto_top_up_amount
        
        plan = ResolutionPlan(
            intent_id=request.intent_id,
            user_id=request.user_id,
            amount=request.amount,
            currency=request.currency,
            chosen_rail_id=chosen.source.id,
            chosen_rail_name=chosen.source.name,
            fallback_rail_id=fallback.source.id if fallback else None,
            alternative_rail_ids=[c.source.id for c in candidates[1:]],
            steps=steps,
            top_up_needed=top_up_needed,
            top_up_amount=chosen.top_up_amount if top_up_needed else Decimal("0"),
            auto_top_up_allowed=top_up_needed and limit > 0 and chosen.top_up_amount <= limit,
            requires_confirmation=top_up_needed or risk_level != RiskLevel.LOW,
            risk_level=risk_level,
            total_score=chosen.total_score,
            explainability=self._explain(request, chosen, fallback),
            candidates=candidates,
        )
        
        if self.ledger:
            self.ledger.log_event(
                event_type=EventType.RESOLUTION_PLANNED,
                payload=plan.model_dump(mode="json"),
                user_id=request.user_id,
                reference_id=request.intent_id,
            )
        
        logger.info(
            f"Resolved {request.intent_id}: {chosen.source.id} "
            f"(score {chosen.total_score}, top-up {plan.top_up_amount}, risk {risk_level.value})"
        )
        return plan
    
    def close(self) -> None:
        """Release the fetch pool."""
        self._executor.shutdown(wait=False, cancel_futures=True)
        logger.info("Resolver closed")
    
    def _find_fallback(
        self,
        request: PaymentRequest,
        chosen: ScoredRail,
        others: List[ScoredRail],
    ) -> Optional[ScoredRail]:
        """Best-ranked other rail able to fund the chosen rail's top-up."""
        if not chosen.needs_top_up:
            if chosen.source.balance < request.amount:
                raise InsufficientFundsError(
                    f"{chosen.source.id} holds {chosen.source.balance} of {request.amount} "
                    f"and cannot be topped up"
                )
            return None
        
        for candidate in others:
            if candidate.source.currency != chosen.source.currency:
                continue
            if candidate.source.balance >= chosen.top_up_amount:
                return candidate
        
        raise InsufficientFundsError(
            f"No rail can fund a top-up of {chosen.top_up_amount} into {chosen.source.id}"
        )
    
    def _explain(
        self,
        request: PaymentRequest,
        chosen: ScoredRail,
        fallback: Optional[ScoredRail],
    ) -> str:
        """One-line justification: 'Paid with <rail>. <reason>'."""
        source = chosen.source
        hints = request.accepted_rail_hints
        
        if fallback is not None:
            reason = (
                f"Topped up {chosen.top_up_amount:.2f} {request.currency} "
                f"from {fallback.source.name}."
            )
        elif hints and matches_hint(source, hints):
            reason = f"{request.payee_id} accepts {source.name}."
        elif hints and source.type == RailType.BANK:
            reason = "Bank transfer is accepted everywhere."
        else:
            reason = ""
        
        return f"Paid with {source.name}. {reason}".strip()
    
    def _fetch(self, what: str, fn: Callable[..., T], *args) -> T:
        """Call a collaborator with the configured deadline."""
        timeout = self.config.collaborator_timeout_seconds
        try:
            future = self._executor.submit(fn, *args)
        except RuntimeError as e:
            # Pool already shut down
            raise CollaboratorUnavailableError(f"{what} not reachable: {e}") from e
        try:
            return future.result(timeout=timeout)
        except TimeoutError:
            future.cancel()
            logger.error(f"{what} timed out after {timeout}s")
            raise CollaboratorUnavailableError(f"{what} timed out after {timeout}s")
        except CollaboratorUnavailableError:
            raise
        except Exception as e:
            logger.error(f"{what} failed: {e}")
            raise CollaboratorUnavailableError(f"{what} failed: {e}") from e
    
    def _check_snapshot(self, sources: List[FundingSource]) -> None:
        seen = set()
        for source in sources:
            if source.id in seen:
                raise CollaboratorUnavailableError(
                    f"rail catalog returned source {source.id} twice"
                )
            seen.add(source.id)
