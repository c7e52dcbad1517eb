"""Purchasable plan catalog backed by the billing provider."""
from __future__ import annotations

from typing import List

from .exceptions import PlanNotFound
from .gateway import ProviderGateway
from .models import Plan


class PlanCatalog:
    """Lists and resolves provider plans for the configured pricing tier."""

    def __init__(self, gateway: ProviderGateway, *, tier_marker: str = "5") -> None:
        self._gateway = gateway
        self._tier_marker = tier_marker

    @property
    def tier_marker(self) -> str:
        return self._tier_marker

    def list_plans(self) -> List[Plan]:
        """Return provider plans whose formatted price contains the tier marker.

        The match is a plain substring test on the two decimal price, so a
        marker of ``"5"`` selects ``"5.00"`` as well as ``"15.00"`` or
        ``"0.50"``. An empty marker returns every plan.
        """

        plans = self._gateway.list_plans()
        if not self._tier_marker:
            return list(plans)
        return [plan for plan in plans if self._tier_marker in plan.display_price]

    def get_plan(self, plan_id: str) -> Plan:
        plan = self._gateway.retrieve_plan(plan_id)
        if plan is None:
            raise PlanNotFound(f"Plan {plan_id} not found", detail={"plan_id": plan_id})
        return plan


__all__ = ["PlanCatalog"]
