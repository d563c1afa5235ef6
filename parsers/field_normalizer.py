"""
Header alias normalization.

Maps localized or tool-specific column headers onto the canonical product
field vocabulary. Canonical keys are added next to the raw header keys, never
substituted for them, so a product can still be written back under its
original column names.
"""

from typing import Any, Optional

Product = dict[str, Any]

PRIMARY_IMAGE_FIELD = "主图src"
CATEGORY_FIELD = "类目"
CATEGORY_LEVEL_FIELDS = ("商品一级分类", "商品二级分类", "商品三级分类")
CHINESE_NAME_FIELD = "中文商品名"
SCENARIO_FIELD = "场景用途"

# Applied at import time: raw header -> canonical key copied into the product.
IMPORT_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "商品标题": ("商品标题", "商品名"),
    "商品售价": ("商品售价", "最低售价"),
    "邮费": ("邮费", "物流费用"),
    "评分": ("评分", "商品评分"),
    "商店名称": ("商店名称", "店铺名"),
    "店铺销量": ("店铺销量", "店铺总销量"),
    "近7天销量": ("近7天销量", "近 7 天销量"),
    "近7天销售额": ("近7天销售额", "近 7 天销售额"),
    CHINESE_NAME_FIELD: ("中文商品名", "中文标题", "chinese_name"),
    SCENARIO_FIELD: ("场景用途", "使用场景", "usage_scenario"),
}

# Applied at read time: wider net for records imported by older tools.
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "商品标题": ("商品标题", "商品名", "标题", "Name", "Title"),
    "商品售价": ("商品售价", "最低售价", "售价", "价格", "Price", "Sale Price"),
    "邮费": ("邮费", "物流费用", "运费", "Shipping"),
    "评分": ("评分", "商品评分", "店铺评分", "Rating", "Score"),
    "商店名称": ("商店名称", "店铺名", "店铺名称", "Shop Name", "Store Name"),
    "店铺销量": ("店铺销量", "店铺总销量", "Shop Sales"),
    "近7天销量": ("近7天销量", "近 7 天销量", "7天销量", "7D Sales"),
    "近7天销售额": ("近7天销售额", "近 7 天销售额", "7天销售额", "7D Revenue"),
    "总销量": ("总销量", "销量", "累计销量", "Total Sales"),
    "关联达人": ("关联达人", "达人数量", "达人", "关联达人数", "Influencers", "Creator Count"),
    "达人出单率": ("达人出单率", "出单率", "转化率", "达人转化率", "Conversion", "Conv %", "CR%"),
    "关联视频": ("关联视频", "视频", "关联视频数", "Videos"),
    "视频曝光量": ("视频曝光量", "曝光", "播放量", "Views", "Plays", "Impressions"),
    CHINESE_NAME_FIELD: ("中文商品名", "中文标题", "chinese_name"),
    SCENARIO_FIELD: ("场景用途", "使用场景", "usage_scenario"),
}


def _build_reverse_index(aliases: dict[str, tuple[str, ...]]) -> dict[str, str]:
    """
    Fold the alias table into raw header -> canonical field.

    Walks canonical fields in declaration order and keeps the first claim on
    each literal, so the result never depends on dict write order.
    """
    reverse: dict[str, str] = {}
    for canonical, literals in aliases.items():
        for literal in literals:
            reverse.setdefault(literal, canonical)
    return reverse


_IMPORT_INDEX = _build_reverse_index(IMPORT_FIELD_ALIASES)


def normalize_header(raw_header: Any) -> Optional[str]:
    """
    Canonical field for a raw header, or None if it matches no alias.

    "最低售价" -> "商品售价"
    "  商品名 " -> "商品标题"
    "src" -> None
    """
    return _IMPORT_INDEX.get(clean_header(raw_header))


def clean_header(raw_header: Any) -> str:
    """Header cell value -> trimmed string ("" for empty cells)."""
    if raw_header is None:
        return ""
    return str(raw_header).strip()


def apply_aliases(record: Product) -> Product:
    """
    Copy every raw-header value onto its canonical key as well.

    Returns a new dict; running it again on its own output yields the same
    record, since canonical keys map to themselves.
    """
    normalized = dict(record)
    for key, value in record.items():
        canonical = normalize_header(key)
        if canonical is not None:
            normalized[canonical] = value
    return normalized


def _is_present(value: Any) -> bool:
    return value is not None and str(value) != "undefined"


def get_product_field(product: Product, canonical_key: str) -> Any:
    """
    Read a canonical field, falling back through its aliases.

    Returns "" when neither the canonical key nor any alias holds a value.
    """
    if _is_present(product.get(canonical_key)):
        return product[canonical_key]

    for alias in FIELD_ALIASES.get(canonical_key, ()):
        if _is_present(product.get(alias)):
            return product[alias]

    return ""
