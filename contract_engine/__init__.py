"""
RENTAL CONTRACT LIFECYCLE ENGINE
Permission policy, status state machine and derived pricing.
"""

from .models import ActionRequest, ContractRecord, ContractStatus, Role, TransitionResult
from .permissions import PermissionPolicy, check_permissions
from .pricing import PricingEngine
from .processor import ContractProcessor
from .state_machine import ContractStateMachine

__all__ = [
    'ContractProcessor',
    'ContractStateMachine',
    'PermissionPolicy',
    'PricingEngine',
    'check_permissions',
    'ActionRequest',
    'ContractRecord',
    'ContractStatus',
    'Role',
    'TransitionResult',
]
