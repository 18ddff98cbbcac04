"""
Brand-aware query expansion.

Searching "iphone" should rank the phone above cases and cables, so known
product lines get their brand prepended: "iphone 16" -> "Apple iphone 16".
"""

import re
from typing import Dict, Optional, Tuple

PRODUCT_TO_BRAND: Dict[str, str] = {
    # Apple
    "iphone": "Apple",
    "ipad": "Apple",
    "macbook": "Apple",
    "airpods": "Apple",
    "apple watch": "Apple",
    "imac": "Apple",
    "mac mini": "Apple",
    "mac studio": "Apple",
    "mac pro": "Apple",
    "homepod": "Apple",
    # Samsung
    "galaxy": "Samsung",
    "galaxy s": "Samsung",
    "galaxy z": "Samsung",
    "galaxy fold": "Samsung",
    "galaxy flip": "Samsung",
    "galaxy tab": "Samsung",
    "galaxy watch": "Samsung",
    "galaxy buds": "Samsung",
    # Google
    "pixel": "Google",
    "pixel watch": "Google",
    "pixel buds": "Google",
    "nest": "Google",
    "chromecast": "Google",
    # Sony
    "playstation": "Sony",
    "ps5": "Sony",
    "ps4": "Sony",
    "xperia": "Sony",
    "walkman": "Sony",
    # Microsoft
    "xbox": "Microsoft",
    "surface": "Microsoft",
    # Nintendo
    "switch": "Nintendo",
    # Other electronics
    "kindle": "Amazon",
    "echo": "Amazon",
    "fire tv": "Amazon",
    "firestick": "Amazon",
    "gopro": "GoPro",
    "dyson": "Dyson",
    "roomba": "iRobot",
    "nespresso": "Nespresso",
    "thermomix": "Vorwerk",
}

_PATTERNS = {
    product: re.compile(rf"\b{re.escape(product)}\b", re.IGNORECASE)
    for product in PRODUCT_TO_BRAND
}


def detect_product(query: str) -> Optional[Tuple[str, str]]:
    """Return the first (product, brand) pair mentioned in the query."""
    lower = query.lower().strip()
    for product, brand in PRODUCT_TO_BRAND.items():
        if _PATTERNS[product].search(lower):
            return product, brand
    return None


def expand_query(query: str) -> str:
    match = detect_product(query)
    if not match:
        return query

    _, brand = match
    if brand.lower() in query.lower():
        return query
    return f"{brand} {query}"
