"""Expected service-life table keyed by category and description keyword."""

from typing import TypedDict


class CategoryLife(TypedDict):
    keywords: list[tuple[str, int]]
    default: int


# Keywords are scanned in order; the first substring match wins.
LIFE_EXPECTANCY_TABLE: dict[str, CategoryLife] = {
    "roofing": {
        "keywords": [
            ("3-tab composition shingles", 20),
            ("laminated/architectural shingles", 30),
            ("metal roofing", 50),
            ("tile roofing", 50),
            ("flat/modified bitumen", 20),
            ("wood shake/shingle", 30),
            ("roofing felt", 30),
            ("ice & water barrier", 30),
            ("ridge vent", 25),
            ("drip edge", 25),
            ("flashing", 25),
        ],
        "default": 25,
    },
    "siding": {
        "keywords": [
            ("vinyl siding", 40),
            ("aluminum siding", 40),
            ("wood siding", 30),
            ("fiber cement/hardie", 50),
            ("stucco", 50),
            ("brick", 100),
        ],
        "default": 35,
    },
    "soffit/fascia": {
        "keywords": [("aluminum", 30), ("vinyl", 30), ("wood", 20)],
        "default": 25,
    },
    "gutters": {
        "keywords": [("aluminum", 20), ("copper", 50), ("vinyl", 15), ("steel", 20)],
        "default": 20,
    },
    "windows": {
        "keywords": [("vinyl window", 30), ("wood window", 30), ("aluminum window", 25)],
        "default": 30,
    },
    "doors": {
        "keywords": [
            ("exterior door", 30),
            ("interior door", 50),
            ("garage door", 25),
            ("storm door", 20),
        ],
        "default": 30,
    },
    "drywall": {"keywords": [], "default": 70},
    "painting": {"keywords": [("interior", 7), ("exterior", 7)], "default": 7},
    "flooring": {
        "keywords": [
            ("carpet", 10),
            ("hardwood", 50),
            ("laminate", 15),
            ("tile", 50),
            ("vinyl/lvp", 20),
        ],
        "default": 20,
    },
    "plumbing": {"keywords": [], "default": 40},
    "electrical": {"keywords": [], "default": 40},
    "hvac": {"keywords": [], "default": 15},
    "fencing": {
        "keywords": [
            ("wood fence", 15),
            ("vinyl fence", 30),
            ("chain link", 20),
            ("wrought iron", 50),
        ],
        "default": 20,
    },
    "cabinetry": {"keywords": [], "default": 50},
    "debris": {"keywords": [], "default": 0},
    "general": {"keywords": [], "default": 0},
}

# Line items often carry the three-letter trade code instead of a category name.
CATEGORY_ALIASES: dict[str, str] = {
    "rfg": "roofing",
    "sdg": "siding",
    "win": "windows",
    "dry": "drywall",
    "pnt": "painting",
    "flr": "flooring",
    "plm": "plumbing",
    "ele": "electrical",
    "hva": "hvac",
    "cab": "cabinetry",
}


def normalize_category(category: str) -> str:
    key = (category or "").lower().strip()
    return CATEGORY_ALIASES.get(key, key)


def lookup_life_expectancy(category: str, description: str) -> int:
    """Return the expected service life in years, or 0 for unknown categories.

    Args:
        category: Category name or trade code, case-insensitive.
        description: Free-text line item description scanned for keywords.

    Returns:
        The first matching keyword's life, else the category default.
    """
    entry = LIFE_EXPECTANCY_TABLE.get(normalize_category(category))
    if entry is None:
        return 0

    description_lower = (description or "").lower().strip()
    for keyword, life in entry["keywords"]:
        if keyword in description_lower:
            return life

    return entry["default"]
