import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from backend.app.models import REQUIRED_SERVICE_ITEM_IDS  # noqa: E402
from backend.shared.normalize.rules import clear_rules_cache  # noqa: E402


def build_candidate(
    *,
    company_name: str = "Atlas Movers",
    base_cost: Optional[float] = None,
    other: Optional[List[Dict[str, Any]]] = None,
    excluded_costs: Optional[Dict[str, float]] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """Candidate record payload in the collaborator's camelCase shape."""
    excluded_costs = excluded_costs or {}
    payload: Dict[str, Any] = {
        "companyName": company_name,
        "baseCost": base_cost,
        "serviceItems": [
            {
                "id": service_id,
                "included": service_id not in excluded_costs,
                "cost": excluded_costs.get(service_id),
            }
            for service_id in REQUIRED_SERVICE_ITEM_IDS
        ],
        "shipmentWeight": None,
        "shipmentVolume": None,
        "transitTimeMin": None,
        "transitTimeMax": None,
        "insurancePercentage": None,
        "other": other,
        "isArpinQuote": False,
        "originalCurrency": None,
        "exchangeRate": None,
    }
    payload.update(extra)
    return payload


@pytest.fixture
def make_candidate():
    return build_candidate


@pytest.fixture(autouse=True)
def _fresh_rules_cache(monkeypatch):
    monkeypatch.delenv("RECONCILE_RULES_PATH", raising=False)
    clear_rules_cache()
    yield
    clear_rules_cache()
