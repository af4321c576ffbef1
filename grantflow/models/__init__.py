# Import all models to ensure they are registered with SQLAlchemy
from grantflow.models.user import User
from grantflow.models.program import Program, ProgramType, ProgramStatus, FundingCondition
from grantflow.models.application import Application, ApplicationStatus
from grantflow.models.milestone import Milestone, MilestoneStatus
from grantflow.models.investment_term import InvestmentTerm
from grantflow.models.investment import Investment, InvestmentStatus
from grantflow.models.tier_assignment import TierAssignment
from grantflow.models.fee_claim import FeeClaim, FeeClaimStatus
from grantflow.models.notification import Notification

__all__ = [
    "User",
    "Program",
    "ProgramType",
    "ProgramStatus",
    "FundingCondition",
    "Application",
    "ApplicationStatus",
    "Milestone",
    "MilestoneStatus",
    "InvestmentTerm",
    "Investment",
    "InvestmentStatus",
    "TierAssignment",
    "FeeClaim",
    "FeeClaimStatus",
    "Notification",
]
