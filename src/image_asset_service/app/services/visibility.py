from enum import Enum


class PublicCategory(str, Enum):
    """Catalog categories whose images are served without credentials."""

    PRODUCT = "product"
    ELECTRONICS = "electronics"
    CLOTHING = "clothing"
    ACCESSORIES = "accessories"


PUBLIC_ENTITY_TYPES = frozenset({"product"})


def _normalize(value: str | None) -> str:
    return (value or "").strip().lower()


def is_public_category(category: str | None) -> bool:
    return _normalize(category) in {member.value for member in PublicCategory}


def derive_visibility(
    category: str | None = None,
    entity_type: str | None = None,
    product_id: str | None = None,
) -> bool:
    """Coarse catalog-imagery heuristic applied once, when an asset is created.

    Public iff the entity type is a product, the category is a known public
    category, or a product id is attached. Callers needing anything finer set
    ``is_public`` through a metadata update afterwards.
    """
    if _normalize(entity_type) in PUBLIC_ENTITY_TYPES:
        return True
    if is_public_category(category):
        return True
    return bool(product_id and product_id.strip())
