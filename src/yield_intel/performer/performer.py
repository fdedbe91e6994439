"""Task performer: validate and route JSON task payloads onto the core."""

from __future__ import annotations

from dataclasses import asdict
import json
import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ValidationError as PydanticValidationError

from yield_intel.config import USDC_UNIT, settings
from yield_intel.errors import ValidationError
from yield_intel.execution.orchestrator import DEFAULT_TRIGGER_DEADLINE_S, RebalanceOrchestrator
from yield_intel.models.rebalance import RebalanceOutcome, RebalanceRequest
from yield_intel.models.venue import VenueRisk, VenueSnapshot
from yield_intel.performer.models import (
    PARAMETER_MODELS,
    CrossChainYieldCheckParams,
    RebalanceExecutionParams,
    RiskAssessmentParams,
    TaskPayload,
    TaskType,
    YieldMonitoringParams,
)


logger = logging.getLogger(__name__)

# principal used to quote risk-adjusted APYs
QUOTE_PRINCIPAL = 1_000_000 * USDC_UNIT
# market quotes are not bound by any account tolerance
MAX_RISK_TOLERANCE_BPS = 10_000

VALIDATION_LABELS = {
    TaskType.YIELD_MONITORING: "yield monitoring",
    TaskType.CROSS_CHAIN_YIELD_CHECK: "cross-chain yield check",
    TaskType.REBALANCE_EXECUTION: "rebalance execution",
    TaskType.RISK_ASSESSMENT: "risk assessment",
}

RawPayload = Union[bytes, str, Dict[str, Any]]


def _as_text(value: Union[bytes, str, None]) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def risk_to_dict(risk: VenueRisk) -> Dict[str, Any]:
    return {
        "sub_scores": risk.sub_scores(),
        "composite": risk.composite,
        "category": risk.category.value,
        "risk_factors": list(risk.risk_factors),
    }


def outcome_to_dict(outcome: RebalanceOutcome) -> Dict[str, Any]:
    data = asdict(outcome)
    data["status"] = outcome.status.value
    return data


class TaskPerformer:
    """Validate and handle the four yield-intelligence task types."""

    def __init__(
        self,
        orchestrator: RebalanceOrchestrator,
        attestation_timeout_s: Optional[float] = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.engine = orchestrator.engine
        self.data_service = orchestrator.engine.data_service
        self.attestation_timeout_s = (
            attestation_timeout_s
            if attestation_timeout_s is not None
            else settings.task_timeout_s
        )

    def validate_task(self, task_id: Union[bytes, str, None], payload: RawPayload) -> TaskType:
        task_type, _params = self._parse(task_id, payload)
        logger.info("Task validation successful: %s", _as_text(task_id))
        return task_type

    def handle_task(self, task_id: Union[bytes, str, None], payload: RawPayload) -> bytes:
        task_type, params = self._parse(task_id, payload)
        tid = _as_text(task_id)
        logger.info("Handling %s task %s", task_type.value, tid)
        handlers = {
            TaskType.YIELD_MONITORING: self._yield_monitoring,
            TaskType.CROSS_CHAIN_YIELD_CHECK: self._cross_chain_yield_check,
            TaskType.REBALANCE_EXECUTION: self._rebalance_execution,
            TaskType.RISK_ASSESSMENT: self._risk_assessment,
        }
        try:
            result = handlers[task_type](params)
        except Exception:
            logger.error("Task processing failed: %s", tid)
            raise
        body = json.dumps(
            {"task_id": tid, "type": task_type.value, "result": result},
            sort_keys=True,
        ).encode("utf-8")
        logger.info("Task processing completed: %s (%s bytes)", tid, len(body))
        return body

    def _parse(
        self, task_id: Union[bytes, str, None], payload: RawPayload
    ) -> Tuple[TaskType, BaseModel]:
        if not task_id:
            raise ValidationError("task ID cannot be empty")
        if not payload:
            raise ValidationError("task payload cannot be empty")
        if isinstance(payload, (bytes, str)):
            try:
                payload = json.loads(payload)
            except (json.JSONDecodeError, UnicodeDecodeError) as exc:
                raise ValidationError(f"failed to parse task payload: {exc}") from exc
        try:
            parsed = TaskPayload.model_validate(payload)
        except PydanticValidationError as exc:
            raise ValidationError(f"failed to parse task payload: {exc}") from exc
        try:
            task_type = TaskType(parsed.type)
        except ValueError as exc:
            raise ValidationError(f"unknown task type: {parsed.type}") from exc
        try:
            params = PARAMETER_MODELS[task_type].model_validate(parsed.parameters)
        except PydanticValidationError as exc:
            raise ValidationError(
                f"{VALIDATION_LABELS[task_type]} validation failed: {exc}"
            ) from exc
        return task_type, params

    def _venues_on_chain(self, chain_id: float, protocol: Optional[str] = None) -> List[str]:
        domain_id = self.orchestrator.domains.domain_for_chain(int(chain_id))
        wanted = protocol.strip().lower() if protocol else None
        return [
            info.venue_id
            for info in self.orchestrator.venues.list_supported(domain_id)
            if wanted is None or wanted in (info.venue_id.lower(), info.name.lower())
        ]

    def _quote(self, snapshot: VenueSnapshot, principal: int) -> Dict[str, Any]:
        risk = self.engine.scorer.assess(snapshot.metrics)
        projection = self.engine.projection_for(snapshot, risk, principal)
        net, effective_apy = self.engine.projector.net_yield(projection)
        return {
            "venue_id": snapshot.venue_id,
            "domain_id": snapshot.domain_id,
            "apy_bps": snapshot.apy_bps,
            "net_yield": net,
            "risk_adjusted_apy_bps": effective_apy,
            "risk": risk_to_dict(risk),
            "timestamp": snapshot.timestamp,
        }

    def _best_quote(
        self, chain_id: float, protocol: Optional[str], principal: int
    ) -> Optional[Tuple[VenueSnapshot, Dict[str, Any]]]:
        best = None
        for venue_id in self._venues_on_chain(chain_id, protocol):
            snapshot = self.data_service.snapshot(venue_id)
            if snapshot is None:
                continue
            quote = self._quote(snapshot, principal)
            if best is None or quote["net_yield"] > best[1]["net_yield"]:
                best = (snapshot, quote)
        return best

    def _yield_monitoring(self, params: YieldMonitoringParams) -> Dict[str, Any]:
        quotes = []
        for venue_id in self._venues_on_chain(params.chain_id, params.protocol):
            snapshot = self.data_service.snapshot(venue_id)
            if snapshot is not None:
                quotes.append(self._quote(snapshot, QUOTE_PRINCIPAL))
        return {
            "protocol": params.protocol,
            "token": params.token,
            "chain_id": int(params.chain_id),
            "available": bool(quotes),
            "venues": quotes,
            "allocation": self._allocation(quotes, QUOTE_PRINCIPAL),
        }

    def _allocation(self, quotes: List[Dict[str, Any]], principal: int) -> List[Dict[str, Any]]:
        """Risk-weighted split of ``principal`` across the quoted venues."""
        plans = self.engine.optimizer.plan(
            [quote["venue_id"] for quote in quotes],
            [quote["apy_bps"] for quote in quotes],
            [quote["risk"]["composite"] for quote in quotes],
            MAX_RISK_TOLERANCE_BPS,
            principal,
        )
        return [asdict(plan) for plan in plans]

    def _cross_chain_yield_check(self, params: CrossChainYieldCheckParams) -> Dict[str, Any]:
        amount = int(params.amount)
        local = self._best_quote(params.source_chain, params.source_protocol, amount)
        remote = self._best_quote(params.target_chain, params.target_protocol, amount)
        result: Dict[str, Any] = {
            "source_chain": int(params.source_chain),
            "target_chain": int(params.target_chain),
            "amount": amount,
            "source": local[1] if local else None,
            "target": remote[1] if remote else None,
            "is_profitable": False,
            "benefit": 0,
        }
        if local is None or remote is None:
            result["reason"] = "opportunity_unavailable"
            return result

        local_snapshot, local_quote = local
        remote_snapshot, remote_quote = remote
        scorer = self.engine.scorer
        opportunity = self.engine.projector.cross_domain_opportunity(
            self.engine.projection_for(
                local_snapshot, scorer.assess(local_snapshot.metrics), amount
            ),
            self.engine.projection_for(
                remote_snapshot, scorer.assess(remote_snapshot.metrics), amount
            ),
            self.engine.bridge_cost,
            self.engine.bridge_time_s,
        )
        fees = self.orchestrator.transfers.fees
        result.update(
            {
                "local_net_yield": opportunity.local_net_yield,
                "remote_net_yield": opportunity.remote_net_yield,
                "is_profitable": opportunity.is_profitable,
                "benefit": opportunity.benefit,
                "fast_transfer_fee": fees.compute_fee(
                    amount, local_snapshot.domain_id, remote_snapshot.domain_id
                ),
                "allocation": self._allocation([local_quote, remote_quote], amount),
            }
        )
        return result

    def _rebalance_execution(self, params: RebalanceExecutionParams) -> Dict[str, Any]:
        account = params.user_address
        source = params.source_protocol.strip().lower() if params.source_protocol else None
        if source is None:
            source = self._current_venue(account, params.target_protocol)
        strategy = self.orchestrator.get_strategy(account)
        request = RebalanceRequest.create(
            account=account,
            source_venue=source,
            target_venue=params.target_protocol,
            amount=int(params.amount),
            deadline=self.orchestrator.clock.now() + DEFAULT_TRIGGER_DEADLINE_S,
            max_slippage_bps=strategy.max_slippage_bps if strategy else 0,
            fast_transfer=params.fast_transfer,
        )
        outcome = self.orchestrator.execute_rebalance(request)
        if outcome.transfer_id and not params.fast_transfer:
            waited = self.orchestrator.transfers.wait_for_attestation(
                outcome.transfer_id, timeout_s=self.attestation_timeout_s
            )
            if waited.ready:
                outcome = self.orchestrator.finalize_cross_domain(
                    request.request_id, attestation=waited.attestation
                )
        return outcome_to_dict(outcome)

    def _risk_assessment(self, params: RiskAssessmentParams) -> Dict[str, Any]:
        assessments = []
        for venue_id in self._venues_on_chain(params.chain_id, params.protocol):
            snapshot = self.data_service.snapshot(venue_id)
            if snapshot is None:
                continue
            risk = self.engine.scorer.assess(snapshot.metrics)
            assessments.append({"venue_id": venue_id, **risk_to_dict(risk)})
        return {
            "protocol": params.protocol,
            "chain_id": int(params.chain_id),
            "assessment_type": params.assessment_type,
            "available": bool(assessments),
            "assessments": assessments,
        }

    def _current_venue(self, account: str, target_venue: str) -> str:
        strategy = self.orchestrator.get_strategy(account)
        if strategy is None:
            raise ValidationError(f"no strategy for account {account}")
        held = [
            venue_id
            for venue_id in sorted(strategy.approved_venues)
            if venue_id != target_venue
            and self.orchestrator.positions.shares(account, venue_id) > 0
        ]
        if not held:
            raise ValidationError(f"{account} holds no position to rebalance")
        return held[0]
