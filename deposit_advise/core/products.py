"""
FILE: deposit_advise/core/products.py
Product catalogue preparation: exclusions, per-institution deduplication, and
preferred-platform filtering.
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from deposit_advise.core.config import ExcludedProduct, OptimizationConfig, PreferredPlatform
from deposit_advise.core.models import AvailableProduct
from deposit_advise.core.money import Percentage

logger = logging.getLogger(__name__)


def _same_text(left: Optional[str], right: Optional[str]) -> bool:
    return (left or "").strip().lower() == (right or "").strip().lower()


def is_excluded(product: AvailableProduct, exclusion: ExcludedProduct) -> bool:
    if exclusion.frn is None and exclusion.bank_name is None:
        return False
    if exclusion.frn is not None and exclusion.frn != product.frn:
        return False
    if exclusion.bank_name is not None and not _same_text(exclusion.bank_name, product.bank_name):
        return False
    if exclusion.account_type is not None and not _same_text(
        exclusion.account_type, product.account_type
    ):
        return False
    return True


def apply_exclusions(
    products: Sequence[AvailableProduct], exclusions: Sequence[ExcludedProduct]
) -> List[AvailableProduct]:
    if not exclusions:
        return list(products)
    kept = [
        product
        for product in products
        if not any(is_excluded(product, exclusion) for exclusion in exclusions)
    ]
    if len(kept) != len(products):
        logger.debug("Excluded %d catalogue products", len(products) - len(kept))
    return kept


def _rank_key(product: AvailableProduct) -> tuple[Decimal, Decimal, str]:
    return (-product.rate.value, -product.confidence_score, product.product_id)


def deduplicate_by_institution(products: Sequence[AvailableProduct]) -> List[AvailableProduct]:
    """Keep one product per firm reference number.

    The survivor has the highest rate, then the highest confidence, then the
    lowest product id. Unidentified products pass through untouched. Output is
    ordered by rate descending with the same tie-breaks.
    """
    best: Dict[str, AvailableProduct] = {}
    unidentified: List[AvailableProduct] = []
    for product in products:
        if product.frn is None:
            unidentified.append(product)
            continue
        current = best.get(product.frn)
        if current is None or _rank_key(product) < _rank_key(current):
            best[product.frn] = product
    return sorted([*best.values(), *unidentified], key=_rank_key)


def filter_preferred_platforms(
    products: Sequence[AvailableProduct], platforms: Sequence[PreferredPlatform]
) -> List[AvailableProduct]:
    """Narrow the catalogue to preferred platforms within their rate tolerance.

    Products beating the best preferred product are always kept. When no
    preferred platform qualifies the full catalogue is returned.
    """
    active = sorted(
        (platform for platform in platforms if platform.is_active),
        key=lambda item: (item.priority, item.platform_name),
    )
    if not active or not products:
        return list(products)

    best_rate = max(product.rate.value for product in products)
    selected: List[AvailableProduct] = []
    for platform in active:
        on_platform = [
            product for product in products if product.platform == platform.platform_name
        ]
        if not on_platform:
            continue
        tolerance = platform.rate_tolerance.value
        best_on_platform = max(product.rate.value for product in on_platform)
        if best_rate - best_on_platform > tolerance:
            logger.debug("Skipping platform %s: outside rate tolerance", platform.platform_name)
            continue
        selected.extend(
            product for product in on_platform if best_rate - product.rate.value <= tolerance
        )

    if not selected:
        return list(products)

    best_preferred = max(product.rate.value for product in selected)
    selected.extend(product for product in products if product.rate.value > best_preferred)

    unique: Dict[str, AvailableProduct] = {}
    for product in selected:
        unique.setdefault(product.product_id, product)
    return sorted(unique.values(), key=_rank_key)


def prepare_catalogue(
    products: Sequence[AvailableProduct],
    config: OptimizationConfig,
    *,
    liquidity_tier: Optional[str] = None,
    minimum_rate: Optional[Percentage] = None,
    apply_platform_preferences: bool = False,
) -> List[AvailableProduct]:
    catalogue = apply_exclusions(products, config.excluded_products)
    if liquidity_tier is not None:
        catalogue = [product for product in catalogue if product.liquidity_tier == liquidity_tier]
    if minimum_rate is not None:
        catalogue = [product for product in catalogue if product.rate > minimum_rate]
    if apply_platform_preferences:
        catalogue = filter_preferred_platforms(catalogue, config.preferred_platforms)
    return deduplicate_by_institution(catalogue)
