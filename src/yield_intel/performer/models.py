"""Task payload schemas for the performer."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field, StrictBool, StrictFloat, StrictInt, field_validator


JsonNumber = Union[StrictInt, StrictFloat]


class TaskType(str, Enum):
    YIELD_MONITORING = "yield_monitoring"
    CROSS_CHAIN_YIELD_CHECK = "cross_chain_yield_check"
    REBALANCE_EXECUTION = "rebalance_execution"
    RISK_ASSESSMENT = "risk_assessment"


class TaskPayload(BaseModel):
    type: str
    parameters: Dict[str, Any] = Field(default_factory=dict)


def _non_empty(value: str, field_name: str) -> str:
    if not value:
        raise ValueError(f"missing or invalid {field_name}")
    return value


def _positive(value: JsonNumber, field_name: str) -> JsonNumber:
    if value <= 0:
        raise ValueError(f"missing or invalid {field_name}")
    return value


class YieldMonitoringParams(BaseModel):
    protocol: str
    token: str
    chain_id: JsonNumber

    @field_validator("protocol")
    @classmethod
    def _check_protocol(cls, value: str) -> str:
        return _non_empty(value, "protocol")

    @field_validator("token")
    @classmethod
    def _check_token(cls, value: str) -> str:
        if value != "USDC":
            raise ValueError("missing or invalid token, must be USDC")
        return value

    @field_validator("chain_id")
    @classmethod
    def _check_chain(cls, value: JsonNumber) -> JsonNumber:
        return _positive(value, "chain_id")


class CrossChainYieldCheckParams(BaseModel):
    source_chain: JsonNumber
    target_chain: JsonNumber
    amount: JsonNumber
    source_protocol: Optional[str] = None
    target_protocol: Optional[str] = None

    @field_validator("source_chain")
    @classmethod
    def _check_source(cls, value: JsonNumber) -> JsonNumber:
        return _positive(value, "source_chain")

    @field_validator("target_chain")
    @classmethod
    def _check_target(cls, value: JsonNumber) -> JsonNumber:
        return _positive(value, "target_chain")

    @field_validator("amount")
    @classmethod
    def _check_amount(cls, value: JsonNumber) -> JsonNumber:
        return _positive(value, "amount")


class RebalanceExecutionParams(BaseModel):
    user_address: str
    amount: JsonNumber
    target_protocol: str
    source_protocol: Optional[str] = None
    fast_transfer: StrictBool = False

    @field_validator("user_address")
    @classmethod
    def _check_user(cls, value: str) -> str:
        return _non_empty(value, "user_address")

    @field_validator("amount")
    @classmethod
    def _check_amount(cls, value: JsonNumber) -> JsonNumber:
        return _positive(value, "amount")

    @field_validator("target_protocol")
    @classmethod
    def _check_target(cls, value: str) -> str:
        return _non_empty(value, "target_protocol").lower()


class RiskAssessmentParams(BaseModel):
    protocol: str
    chain_id: JsonNumber
    assessment_type: str

    @field_validator("protocol")
    @classmethod
    def _check_protocol(cls, value: str) -> str:
        return _non_empty(value, "protocol")

    @field_validator("chain_id")
    @classmethod
    def _check_chain(cls, value: JsonNumber) -> JsonNumber:
        return _positive(value, "chain_id")

    @field_validator("assessment_type")
    @classmethod
    def _check_assessment(cls, value: str) -> str:
        return _non_empty(value, "assessment_type")


PARAMETER_MODELS = {
    TaskType.YIELD_MONITORING: YieldMonitoringParams,
    TaskType.CROSS_CHAIN_YIELD_CHECK: CrossChainYieldCheckParams,
    TaskType.REBALANCE_EXECUTION: RebalanceExecutionParams,
    TaskType.RISK_ASSESSMENT: RiskAssessmentParams,
}
