"""Pre-configured scenario packs for synthetic purchase events.

Examples
--------
>>> from datetime import date
>>> from cohort_ltv.synthetic import generate_customers, generate_events
>>> from cohort_ltv.synthetic.scenarios import HIGH_CHURN_SCENARIO
>>>
>>> customers = generate_customers(500, date(2024, 1, 1), date(2024, 12, 31), seed=7)
>>> events = generate_events(customers, date(2025, 6, 30), scenario=HIGH_CHURN_SCENARIO)
"""

from cohort_ltv.synthetic.generator import ScenarioConfig

# Moderate behaviour, a few unpriced events
BASELINE_SCENARIO = ScenarioConfig(seed=42)

# Most customers stop after one or two months
HIGH_CHURN_SCENARIO = ScenarioConfig(
    churn_hazard=0.30,
    base_orders_per_month=0.8,
    mean_unit_price=25.0,
    price_variability=0.5,
    seed=42,
)

# Holiday spike every December
SEASONAL_SCENARIO = ScenarioConfig(
    promo_month=12,
    promo_uplift=2.5,
    churn_hazard=0.05,
    seed=42,
)

# Order digests frequently lack prices or carry zero quantities
PRICING_GAPS_SCENARIO = ScenarioConfig(
    unpriced_rate=0.30,
    zero_quantity_rate=0.10,
    seed=42,
)

# Events re-imported with earlier insert dates than their event dates
BACKDATED_INSERTS_SCENARIO = ScenarioConfig(
    duplicate_insert_rate=0.25,
    backdated_insert_rate=0.20,
    seed=42,
)
