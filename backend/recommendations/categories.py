"""
Category vocabulary: the fixed set of business categories used as nodes
in a town's flow graph.
"""
import re
from typing import List, Optional, Tuple

from django.db import models

from recommendations.exceptions import UnknownCategory


class Category(models.TextChoices):
    """Enumeration for flow graph categories. Declaration order is the canonical node order."""
    COFFEE = 'coffee', 'Coffee / Cafe'
    FITNESS = 'fitness', 'Fitness'
    BEAUTY = 'beauty', 'Salon / Beauty'
    RETAIL = 'retail', 'Retail'
    FOOD = 'food', 'Food'
    SERVICES = 'services', 'Services'
    OTHER = 'other', 'Local stop'


CATEGORY_ORDER: List[Category] = list(Category)

# Business types as entered by owners, mapped onto the vocabulary
BUSINESS_TYPE_CATEGORIES = {
    'cafe': Category.COFFEE,
    'coffee': Category.COFFEE,
    'loaded-tea': Category.COFFEE,
    'gym': Category.FITNESS,
    'fitness': Category.FITNESS,
    'fitness-hybrid': Category.FITNESS,
    'salon': Category.BEAUTY,
    'spa': Category.BEAUTY,
    'beauty': Category.BEAUTY,
    'retail': Category.RETAIL,
    'boutique': Category.RETAIL,
    'restaurant': Category.FOOD,
    'food': Category.FOOD,
    'bakery': Category.FOOD,
    'service': Category.SERVICES,
    'services': Category.SERVICES,
    'barber': Category.SERVICES,
    'auto': Category.SERVICES,
}

# Checked in order; the first category with a matching pattern wins
CATEGORY_HINTS: List[Tuple[Category, List[re.Pattern]]] = [
    (Category.FITNESS, [re.compile(p, re.IGNORECASE) for p in (
        r'\bgym\b', r'\bworkout\b', r'\btraining\b', r'\bclass(es)?\b', r'\bfit(ness)?\b')]),
    (Category.BEAUTY, [re.compile(p, re.IGNORECASE) for p in (
        r'\bsalon\b', r'\bspa\b', r'\bhair\b', r'\bnail(s)?\b', r'\bbarber\b', r'\bbeauty\b')]),
    (Category.COFFEE, [re.compile(p, re.IGNORECASE) for p in (
        r'\bcoffee\b', r'\bcafe\b', r'\btea\b', r'\blatte\b', r'\bespresso\b', r'\bsmoothie\b')]),
    (Category.FOOD, [re.compile(p, re.IGNORECASE) for p in (
        r'\blunch\b', r'\bdinner\b', r'\brestaurant\b', r'\bmeal\b', r'\bbakery\b', r'\bbite\b')]),
    (Category.RETAIL, [re.compile(p, re.IGNORECASE) for p in (
        r'\bretail\b', r'\bboutique\b', r'\bshop\b', r'\bgift\b', r'\bstore\b')]),
    (Category.SERVICES, [re.compile(p, re.IGNORECASE) for p in (
        r'\bservice\b', r'\brepair\b', r'\bappointment\b', r'\bdetailing\b', r'\bclinic\b')]),
]


def parse_category(value) -> Category:
    """
    Resolve a raw value to a Category.

    Raises:
        UnknownCategory: if the value is not part of the vocabulary
    """
    if isinstance(value, Category):
        return value
    if not isinstance(value, str):
        raise UnknownCategory(value)
    try:
        return Category(value.strip().lower())
    except ValueError:
        raise UnknownCategory(value)


def category_label(category) -> str:
    return parse_category(category).label


def category_from_business_type(business_type: Optional[str]) -> Category:
    """Maps a free-form business type onto the vocabulary, defaulting to OTHER."""
    if not business_type:
        return Category.OTHER
    normalized = business_type.strip().lower()
    if normalized in Category.values:
        return Category(normalized)
    return BUSINESS_TYPE_CATEGORIES.get(normalized, Category.OTHER)


def infer_category_from_text(text: Optional[str]) -> Optional[Category]:
    """
    Guess a category from free text such as a post caption or a note.
    Returns None when no hint matches.
    """
    raw = (text or '').strip()
    if not raw:
        return None
    for category, patterns in CATEGORY_HINTS:
        if any(pattern.search(raw) for pattern in patterns):
            return category
    return None
