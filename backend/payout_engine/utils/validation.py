"""
Validation utilities for plan configuration and payout runs.

These helpers never raise; they return a report dict so the admin layer can
show every problem at once.
"""

import logging
from typing import Any, Dict, Iterable, List

from pydantic import ValidationError

from ...models.payout_schemas import (
    CompPlan,
    EmployeePayoutInput,
    PayoutSplit,
    PlanCommission,
    PlanMetric,
    RenewalMultiplierSchedule,
    SpiffConfig,
)

logger = logging.getLogger(__name__)


def _error_messages(error: ValidationError) -> List[str]:
    messages = []
    for err in error.errors():
        location = '.'.join(str(part) for part in err.get('loc', ()))
        messages.append(f"{location}: {err['msg']}" if location else err['msg'])
    return messages


def _as_items(value: Any) -> List[Any]:
    if value is None:
        return []
    return list(value) if isinstance(value, list) else [value]


def _validate_items(model, items: Iterable[Dict[str, Any]], label_key: str) -> Dict[str, Any]:
    section = {'success': True, 'errors': [], 'count': 0}
    for index, item in enumerate(items):
        section['count'] += 1
        if not isinstance(item, dict):
            section['success'] = False
            section['errors'].append(f"#{index + 1}: expected a mapping, got {type(item).__name__}")
            continue
        label = item.get(label_key) or f"#{index + 1}"
        try:
            model(**item)
        except ValidationError as e:
            section['success'] = False
            section['errors'].extend(f"{label}: {msg}" for msg in _error_messages(e))
    return section


def validate_plan_configuration(plan_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a raw plan definition section by section.

    Args:
        plan_data: Plan as loaded from config or the admin API

    Returns:
        Dict with 'success', a flat 'errors' list and per-section 'details'
    """
    plan_name = plan_data.get('name', '<unnamed>')
    logger.info(f"Validating plan configuration: {plan_name}")

    results = {
        'success': True,
        'errors': [],
        'details': {}
    }

    sections = {
        'metrics': _validate_items(PlanMetric, _as_items(plan_data.get('metrics')), 'metric_name'),
        'commissions': _validate_items(PlanCommission, _as_items(plan_data.get('commissions')), 'commission_type'),
        'spiffs': _validate_items(SpiffConfig, _as_items(plan_data.get('spiffs')), 'spiff_name'),
    }

    renewal = {'success': True, 'errors': [], 'count': 0}
    raw_renewal = plan_data.get('renewal_multipliers') or {}
    raw_tiers = _as_items(raw_renewal.get('tiers') if isinstance(raw_renewal, dict) else raw_renewal)
    renewal['count'] = len(raw_tiers)
    try:
        RenewalMultiplierSchedule(tiers=raw_tiers)
    except ValidationError as e:
        renewal['success'] = False
        renewal['errors'].extend(_error_messages(e))
    sections['renewal_multipliers'] = renewal

    # Plan-level rules only make sense once every part parses
    if all(s['success'] for s in sections.values()):
        plan_level = {'success': True, 'errors': []}
        try:
            CompPlan(**plan_data)
        except ValidationError as e:
            plan_level['success'] = False
            plan_level['errors'].extend(_error_messages(e))
        sections['plan'] = plan_level

    for name, section in sections.items():
        results['details'][name] = section
        if not section['success']:
            results['success'] = False
            results['errors'].extend(f"[{name}] {msg}" for msg in section['errors'])

    if results['success']:
        logger.info(f"Plan '{plan_name}' is valid")
    else:
        logger.warning(f"Plan '{plan_name}' has {len(results['errors'])} configuration error(s)")

    return results


def validate_payout_split(split_data: Dict[str, Any]) -> Dict[str, Any]:
    try:
        PayoutSplit(**split_data)
    except ValidationError as e:
        return {'success': False, 'message': '; '.join(_error_messages(e)), 'details': split_data}
    return {'success': True, 'message': 'Payout split is valid', 'details': split_data}


def validate_payout_run_prerequisites(
    employees: List[EmployeePayoutInput],
    market_rates: Dict[str, float],
    is_locked: bool = False,
) -> Dict[str, Any]:
    """
    Check a month can be calculated before starting a payout run.

    Errors block the run; warnings (e.g. employees without a plan, who are
    simply paid nothing) do not.
    """
    results = {
        'success': True,
        'errors': [],
        'warnings': [],
        'details': {}
    }

    if is_locked:
        results['errors'].append('Month is already finalized and locked')

    if not employees:
        results['errors'].append('No active employees found')
        results['success'] = False
        return results

    missing_comp = [
        f"{e.full_name} ({e.local_currency})"
        for e in employees
        if e.local_currency != 'USD' and not e.compensation_exchange_rate
    ]
    if missing_comp:
        results['errors'].append(f"{len(missing_comp)} employee(s) missing compensation exchange rate")
        results['details']['missing_compensation_rate'] = missing_comp

    currencies = sorted({e.local_currency for e in employees if e.local_currency != 'USD'})
    missing_market = [c for c in currencies if not market_rates.get(c)]
    if missing_market:
        results['errors'].append('Missing market exchange rates')
        results['details']['missing_market_rate'] = missing_market

    without_plan = [e.full_name for e in employees if e.plan is None]
    if without_plan:
        results['warnings'].append(f"{len(without_plan)} employee(s) without plan assignments will be skipped")
        results['details']['missing_plan_assignment'] = without_plan

    results['success'] = not results['errors']
    return results
