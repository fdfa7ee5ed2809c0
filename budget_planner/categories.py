"""Spending categories and the rules that assign them.

Resolution is strictly ordered and the first match wins:

1. a manual per-transaction override,
2. description keyword groups (in ``DESCRIPTION_RULES`` order),
3. the MCC range table (in ``MCC_RANGES`` order),
4. ``other``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from .models import Transaction

FALLBACK_CATEGORY = 'other'


@dataclass(frozen=True)
class Category:
    name: str
    icon: str
    color: str


@dataclass(frozen=True)
class CategoryInfo:
    key: str
    name: str
    icon: str
    color: str
    is_custom: bool = False


@dataclass(frozen=True)
class KeywordRule:
    """Assigns ``category`` when the lower-cased description contains any keyword."""
    category: str
    keywords: Tuple[str, ...]

    def matches(self, description: str) -> bool:
        text = (description or '').lower()
        return any(keyword in text for keyword in self.keywords)


CATEGORIES: Dict[str, Category] = {
    'groceries': Category('Продукти', '🛒', '#22c55e'),
    'restaurants': Category('Ресторани та кафе', '🍽️', '#f97316'),
    'transport': Category('Транспорт', '🚗', '#3b82f6'),
    'delivery': Category('Пошта та доставка', '📦', '#78716c'),
    'utilities': Category('Комунальні послуги', '💡', '#eab308'),
    'entertainment': Category('Розваги', '🎬', '#a855f7'),
    'shopping': Category('Покупки', '🛍️', '#ec4899'),
    'health': Category("Здоров'я", '💊', '#14b8a6'),
    'education': Category('Освіта', '📚', '#6366f1'),
    'travel': Category('Подорожі', '✈️', '#0ea5e9'),
    'services': Category('Послуги', '🔧', '#64748b'),
    'subscriptions': Category('Підписки', '📋', '#7c3aed'),
    'transfers': Category('Перекази', '💸', '#8b5cf6'),
    'mobile': Category("Мобільний зв'язок", '📱', '#06b6d4'),
    'cash': Category('Готівка', '💵', '#84cc16'),
    'charity': Category('Благодійність', '❤️', '#ef4444'),
    'other': Category('Інше', '❓', '#94a3b8'),
}

DESCRIPTION_RULES: List[KeywordRule] = [
    KeywordRule('delivery', (
        'нова пошта', 'nova poshta', 'novaposhta', 'укрпошта', 'ukrposhta',
        'meest', 'міст', 'justin', 'джастін', 'rozetka delivery', 'доставка',
    )),
    KeywordRule('utilities', (
        'комунальн', 'квартплата', 'жкг', 'жкх', 'осбб', 'водоканал',
        'теплоенерг', 'газопостач', 'облгаз', 'обленерго', 'енергопостач',
        'київенерго',
    )),
    KeywordRule('subscriptions', (
        'netflix', 'spotify', 'youtube', 'apple', 'google play', 'steam',
        'microsoft', 'adobe', 'chatgpt', 'openai', 'notion', 'figma',
        'megogo', 'мегого', 'підписка',
    )),
    KeywordRule('transfers', ('переказ', 'на картку', 'поповнення «')),
    KeywordRule('mobile', ('lifecell', 'vodafone', 'київстар', 'kyivstar', '+380')),
    KeywordRule('charity', ('збір', 'омбр', 'зсу', 'донат', 'благодійн')),
    KeywordRule('transport', (
        'bolt', 'uber', 'uklon', 'уклон', 'таксі', 'taxi', 'wog', 'okko',
        'upg', 'азс', 'бензин', 'пальне', 'pkp', 'укрзалізниця', 'залізничн',
    )),
    KeywordRule('groceries', (
        'атб', 'atb', 'сільпо', 'фора', 'fora', 'новус', 'novus', 'ашан',
        'auchan', 'метро', 'metro', 'варус', 'костор', 'екомаркет', 'гастроном',
    )),
    KeywordRule('restaurants', (
        'glovo', 'глово', 'raketa', 'mcdonald', 'макдональд', 'kfc', 'pizza', 'піца',
    )),
]

# Inclusive ranges; a code listed under several categories goes to the first one
MCC_RANGES: List[Tuple[int, int, str]] = [
    (5411, 5499, 'groceries'),
    (5311, 5311, 'groceries'),
    (5331, 5331, 'groceries'),
    (5812, 5814, 'restaurants'),
    (5462, 5462, 'restaurants'),
    (5441, 5441, 'restaurants'),
    (5921, 5921, 'restaurants'),
    (4011, 4789, 'transport'),
    (5511, 5599, 'transport'),
    (4121, 4121, 'transport'),
    (4131, 4131, 'transport'),
    (7512, 7512, 'transport'),
    (4812, 4900, 'utilities'),
    (7832, 7841, 'entertainment'),
    (7911, 7999, 'entertainment'),
    (5735, 5735, 'entertainment'),
    (5815, 5818, 'entertainment'),
    (5200, 5399, 'shopping'),
    (5600, 5699, 'shopping'),
    (5700, 5799, 'shopping'),
    (5900, 5999, 'shopping'),
    (5045, 5046, 'shopping'),
    (5732, 5732, 'shopping'),
    (5942, 5942, 'shopping'),
    (5944, 5945, 'shopping'),
    (5912, 5912, 'health'),
    (8011, 8099, 'health'),
    (5975, 5977, 'health'),
    (8211, 8299, 'education'),
    (5111, 5111, 'education'),
    (5192, 5192, 'education'),
    (3000, 3999, 'travel'),
    (7011, 7033, 'travel'),
    (4722, 4722, 'travel'),
    (7210, 7299, 'services'),
    (7311, 7399, 'services'),
    (7500, 7549, 'services'),
    (8111, 8999, 'services'),
    (6010, 6011, 'cash'),
    (6012, 6099, 'transfers'),
    (4829, 4829, 'transfers'),
]


def category_from_description(description: str) -> Optional[str]:
    for rule in DESCRIPTION_RULES:
        if rule.matches(description):
            return rule.category
    return None


def category_from_mcc(mcc: int) -> str:
    for low, high, category in MCC_RANGES:
        if low <= mcc <= high:
            return category
    return FALLBACK_CATEGORY


def _manual_key(tx: Transaction, overrides: Optional[Mapping[str, str]]) -> Optional[str]:
    if overrides and overrides.get(tx.id):
        return overrides[tx.id]
    return tx.category_override or None


def resolve_category_key(tx: Transaction, overrides: Optional[Mapping[str, str]] = None) -> str:
    """Category key for ``tx`` using the fixed precedence."""
    manual = _manual_key(tx, overrides)
    if manual:
        return manual
    return category_from_description(tx.description) or category_from_mcc(tx.mcc)


def resolve_category(
    tx: Transaction,
    overrides: Optional[Mapping[str, str]] = None,
    custom_categories: Optional[Mapping[str, Category]] = None,
) -> CategoryInfo:
    """Resolve ``tx`` to a displayable category.

    A manual override may name a user-defined category in
    ``custom_categories`` (checked first) or a built-in one. An override
    naming neither is ignored and detection carries on with the description
    and MCC.
    """
    manual = _manual_key(tx, overrides)
    if manual:
        if custom_categories and manual in custom_categories:
            category = custom_categories[manual]
            return CategoryInfo(manual, category.name, category.icon, category.color, is_custom=True)
        if manual in CATEGORIES:
            category = CATEGORIES[manual]
            return CategoryInfo(manual, category.name, category.icon, category.color)
    key = category_from_description(tx.description) or category_from_mcc(tx.mcc)
    category = CATEGORIES[key]
    return CategoryInfo(key, category.name, category.icon, category.color)


def all_categories(custom_categories: Optional[Mapping[str, Category]] = None) -> List[CategoryInfo]:
    result = [
        CategoryInfo(key, category.name, category.icon, category.color)
        for key, category in CATEGORIES.items()
    ]
    for key, category in (custom_categories or {}).items():
        if key not in CATEGORIES:
            result.append(CategoryInfo(key, category.name, category.icon, category.color, is_custom=True))
    return result
