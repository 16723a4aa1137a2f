"""
Approval Policy Schemas
Closed tagged variants for sequence steps and approval rules.

Definitions are validated here, when an administrator writes them, so the
engine never meets an unknown step or rule kind at evaluation time.
"""

from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator
from pydantic.alias_generators import to_camel
from typing import Annotated, List, Literal, Optional, Union
from datetime import datetime

from expense_approvals.models.policy import RuleType
from expense_approvals.models.user import UserRole


def normalize_role(value: str) -> str:
    """Upper-case a role label and check it names a known role"""
    role = value.strip().upper()
    valid = [r.value for r in UserRole]
    if role not in valid:
        raise ValueError(f"Invalid role '{value}'. Expected one of: {', '.join(valid)}")
    return role


class CamelModel(BaseModel):
    """Base model exposing camelCase field names on the wire"""
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "from_attributes": True,
    }


# ============================================
# SEQUENCE STEPS
# ============================================

class ManagerStep(CamelModel):
    """Resolve to the submitter's direct manager"""
    type: Literal["manager"] = "manager"


class RoleStep(CamelModel):
    """Resolve to the first active user holding ``role`` in the company"""
    type: Literal["role"] = "role"
    role: str

    @field_validator("role")
    @classmethod
    def validate_role(cls, value: str) -> str:
        return normalize_role(value)


class UserStep(CamelModel):
    """A fixed, named approver"""
    type: Literal["user"] = "user"
    user_id: int = Field(gt=0)


SequenceStep = Annotated[Union[ManagerStep, RoleStep, UserStep], Field(discriminator="type")]

sequence_steps_adapter = TypeAdapter(List[SequenceStep])


class ApprovalSequenceUpdate(CamelModel):
    """Request body for replacing a company's active approval sequence"""
    sequence: List[SequenceStep] = Field(min_length=1)


class ApprovalSequenceResponse(CamelModel):
    """Active approval sequence (empty when the manager fallback applies)"""
    sequence: List[SequenceStep]
    is_active: bool
    updated_at: Optional[datetime] = None


# ============================================
# APPROVAL RULES
# ============================================

class PercentageRule(CamelModel):
    """Approved once ceil(total * threshold) steps are approved"""
    rule_type: Literal["PERCENTAGE"] = "PERCENTAGE"
    threshold: float = Field(gt=0, le=1)


class SpecificRule(CamelModel):
    """Approved as soon as the named user, or any holder of the named role, approves"""
    rule_type: Literal["SPECIFIC"] = "SPECIFIC"
    specific_approver_id: Optional[int] = Field(None, gt=0)
    specific_role: Optional[str] = None

    @field_validator("specific_role")
    @classmethod
    def validate_role(cls, value: Optional[str]) -> Optional[str]:
        return normalize_role(value) if value is not None else None

    @model_validator(mode="after")
    def validate_target(self):
        """Exactly one of user or role must be named"""
        if (self.specific_approver_id is None) == (self.specific_role is None):
            raise ValueError("SPECIFIC rule needs exactly one of specificApproverId or specificRole")
        return self


class HybridRule(CamelModel):
    """Percentage threshold OR named role, either is sufficient"""
    rule_type: Literal["HYBRID"] = "HYBRID"
    percentage_threshold: float = Field(0.5, gt=0, le=1)
    specific_role: Optional[str] = None

    @field_validator("specific_role")
    @classmethod
    def validate_role(cls, value: Optional[str]) -> Optional[str]:
        return normalize_role(value) if value is not None else None


ApprovalRuleDefinition = Annotated[
    Union[PercentageRule, SpecificRule, HybridRule],
    Field(discriminator="rule_type")
]


class ApprovalRuleResponse(CamelModel):
    """Stored approval rule"""
    id: int
    rule_type: RuleType
    threshold: Optional[float] = None
    specific_approver_id: Optional[int] = None
    specific_role: Optional[str] = None
    is_active: bool
    created_at: datetime
