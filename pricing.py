"""
Resale price estimation for the "sell your device" form.

`estimate_price` is a pure function of the submitted attributes: it never
raises, unknown or missing values fall back to table defaults, and the
result is always a positive multiple of 500 inside the brand's range.
"""

import math
import re
from datetime import date
from typing import Any, Mapping, NamedTuple, Optional


class BrandPricing(NamedTuple):
    base: int
    min: int
    max: int


BRAND_PRICES = {
    "Apple": BrandPricing(35000, 5000, 200000),
    "Dell": BrandPricing(18000, 3000, 120000),
    "HP": BrandPricing(15000, 2500, 100000),
    "Lenovo": BrandPricing(16000, 2800, 110000),
    "Asus": BrandPricing(14000, 2600, 95000),
    "Acer": BrandPricing(12000, 2200, 80000),
    "MSI": BrandPricing(20000, 4000, 150000),
    "Samsung": BrandPricing(17000, 3000, 100000),
    "Toshiba": BrandPricing(8000, 1500, 40000),
    "Sony": BrandPricing(10000, 1800, 60000),
    "Compaq": BrandPricing(5000, 800, 20000),
    "IBM": BrandPricing(6000, 1000, 25000),
    "Other": BrandPricing(8000, 1000, 50000),
}
UNKNOWN_BRAND = BrandPricing(8000, 1000, 40000)

CONDITION_MULTIPLIERS = {
    "Like New - No signs of use": 1.0,
    "Excellent - Minor cosmetic wear": 0.85,
    "Very Good - Light scratches": 0.75,
    "Good - Visible wear but fully functional": 0.6,
    "Fair - Significant wear, works well": 0.45,
    "Poor - Major issues but working": 0.25,
    "For Parts - Not working": 0.1,
}
UNKNOWN_CONDITION_MULTIPLIER = 0.5

RAM_BONUS = {
    "4GB": 1000,
    "8GB": 2500,
    "16GB": 5000,
    "32GB": 10000,
    "64GB": 15000,
}

STORAGE_TYPE_BONUS = {
    "ssd": 2000,
    "nvme": 3500,
}

# (threshold in GB, bonus); every threshold reached adds its bonus
STORAGE_SIZE_BONUS = ((512, 3000), (1000, 5000))

CHARGER_BONUS = 500
ORIGINAL_BOX_BONUS = 300

MAX_DEPRECIATION = 0.8
# past this age depreciation is already at its cap
MAX_AGE = 10
DEPRECIATION_PER_YEAR = 0.12
ROUND_TO = 500

# digit run capped so oversized numbers never hit int() conversion limits
_LEADING_INT = re.compile(r"^\s*([+-]?\d{1,9})")


def _leading_int(value: Any) -> Optional[int]:
    """Integer prefix of a value ("512GB" -> 512), None when there is none."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None


def _lookup(table: Mapping[str, Any], key: Any, default):
    return table.get(key, default) if isinstance(key, str) else default


def device_age(year: Any, current_year: int) -> int:
    manufactured = _leading_int(year)
    if manufactured is None:
        return 0
    return min(MAX_AGE, max(0, current_year - manufactured))


def round_to_nearest(value: float, step: int = ROUND_TO) -> int:
    """Round half up to a multiple of `step`."""
    return int(math.floor(value / step + 0.5)) * step


def estimate_price(attributes: Mapping[str, Any], current_year: Optional[int] = None) -> int:
    """Estimate the resale price of a device.

    Args:
        attributes: Submitted device fields. Recognised keys are ``brand``,
            ``year``, ``condition``, ``ram``, ``storage``, ``storage_type``,
            ``charger_included`` and ``original_box``; anything else is ignored.
        current_year: Year used for depreciation, today's year by default.

    Returns:
        Estimated price in rupees.
    """
    if current_year is None:
        current_year = date.today().year
    attributes = attributes or {}

    brand = _lookup(BRAND_PRICES, attributes.get("brand"), UNKNOWN_BRAND)
    price = float(brand.base)

    depreciation = min(MAX_DEPRECIATION, device_age(attributes.get("year"), current_year) * DEPRECIATION_PER_YEAR)
    price *= 1 - depreciation

    price *= _lookup(CONDITION_MULTIPLIERS, attributes.get("condition"), UNKNOWN_CONDITION_MULTIPLIER)

    price += _lookup(RAM_BONUS, attributes.get("ram"), 0)
    price += _lookup(STORAGE_TYPE_BONUS, attributes.get("storage_type"), 0)

    storage_size = _leading_int(attributes.get("storage")) or 0
    for threshold, bonus in STORAGE_SIZE_BONUS:
        if storage_size >= threshold:
            price += bonus

    if attributes.get("charger_included"):
        price += CHARGER_BONUS
    if attributes.get("original_box"):
        price += ORIGINAL_BOX_BONUS

    price = max(brand.min, min(brand.max, price))

    rounded = round_to_nearest(price)
    # Ranges whose bounds are not multiples of 500 (Asus min 2600) would
    # otherwise round out of range.
    if rounded < brand.min:
        rounded += ROUND_TO
    elif rounded > brand.max:
        rounded -= ROUND_TO
    return rounded
