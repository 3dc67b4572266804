"""
Input Validation for the Rental Contract Engine

Validates the shape of incoming requests before anything is parsed or
applied. Raises ValueError with clear messages for structural problems.
Business refusals (permissions, invalid transitions) are not errors and
are reported as rejections by the state machine instead.
"""

from datetime import datetime

from .models import Action, ActionRequest, ContractRecord, ContractTerms, as_utc

ACTION_NAMES = frozenset(a.value for a in Action)


class InputValidator:
    """Validates action requests according to structural rules."""

    def validate_raw(self, data) -> None:
        """Validate a raw request dict. Raises ValueError if any check fails."""
        if not isinstance(data, dict):
            raise ValueError(f"Request body must be an object, got: {type(data).__name__}")

        action = data.get("action")
        if not action:
            raise ValueError("action is required")
        if not isinstance(action, str) or action not in ACTION_NAMES:
            raise ValueError(f"Unknown action: {action}. Must be one of {sorted(ACTION_NAMES)}")

        contract = data.get("contract")
        if not isinstance(contract, dict):
            raise ValueError("contract is required and must be an object")

        self.validate_terms_shape(contract, "contract")

        if action == Action.UPDATE_TERMS.value:
            terms = data.get("terms")
            if not isinstance(terms, dict):
                raise ValueError("terms is required for update_terms and must be an object")
            self.validate_terms_shape(terms, "terms")

    def validate(self, request: ActionRequest) -> None:
        """Validate a parsed request."""
        if request.action == Action.UPDATE_TERMS:
            if request.terms is None:
                raise ValueError("terms is required for update_terms")
            self.validate_rental_window(*self.merged_window(request.contract, request.terms))

    def validate_rental_window(self, start: datetime | None, end: datetime | None) -> None:
        """The end of a rental must come strictly after its start."""
        if start is None or end is None:
            return
        if as_utc(end) <= as_utc(start):
            raise ValueError(
                f"end_datetime must be after start_datetime, got: {start.isoformat()} → {end.isoformat()}"
            )

    def validate_terms_shape(self, data: dict, path: str) -> None:
        package = data.get("package")
        if package:
            if not isinstance(package, dict):
                raise ValueError(f"{path}.package must be an object or null")
            if not package.get("id"):
                raise ValueError(f"{path}.package.id is required")

        for key in ("items", "dresses", "addons"):
            value = data.get(key)
            if value is None:
                continue
            if not isinstance(value, list) or not all(isinstance(entry, dict) for entry in value):
                raise ValueError(f"{path}.{key} must be a list of objects")

    @staticmethod
    def merged_window(contract: ContractRecord, terms: ContractTerms) -> tuple:
        start = terms.start_datetime or contract.start_datetime
        end = terms.end_datetime or contract.end_datetime
        return start, end
