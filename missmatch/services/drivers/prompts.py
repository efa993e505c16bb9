"""Edit instructions for prompt-driven image editing backends.

Prompts are built only from catalog metadata through fixed per-category
templates; no user-supplied text reaches the provider.
"""

import re

from missmatch.services.drivers.types import GarmentMeta, PromptCategory

_KEEP = "Keep the exact same pose, face, hair, body shape, and background."

PROMPT_TEMPLATES: dict[PromptCategory, str] = {
    "top": "Change only the person's top/shirt to a {name}. " + _KEEP
    + " Do not modify anything except the upper body clothing.",
    "bottom": "Change only the person's pants/skirt to a {name}. " + _KEEP
    + " Do not modify anything except the lower body clothing.",
    "dress": "Replace the person's outfit with a {name} dress. " + _KEEP + " Only change the clothing to this dress.",
    "set": "Change the person's entire outfit to a {name}. " + _KEEP + " Only modify the clothing.",
    "other": "Change the person's clothing to a {name}. "
    "Keep everything else exactly the same - pose, face, hair, body, and background. Only modify the clothing.",
}

CATALOG_CATEGORY_MAP: dict[str, PromptCategory] = {
    "TOPS": "top",
    "OUTERWEAR": "top",
    "BOTTOMS": "bottom",
    "DRESSES": "dress",
}

_NAME_ALLOWED = re.compile(r"[^\w\s\-'&/.,]", re.UNICODE)
MAX_NAME_LENGTH = 80


def category_for_catalog(category: str | None) -> PromptCategory:
    if not category:
        return "other"
    return CATALOG_CATEGORY_MAP.get(category.upper(), "other")


def _clean_name(name: str | None) -> str:
    if not name:
        return "garment"
    cleaned = _NAME_ALLOWED.sub("", name)
    cleaned = " ".join(cleaned.split())[:MAX_NAME_LENGTH].strip()
    return cleaned or "garment"


def build_edit_prompt(meta: GarmentMeta | None) -> str:
    category: PromptCategory = meta.category if meta else "top"
    template = PROMPT_TEMPLATES.get(category, PROMPT_TEMPLATES["other"])
    return template.format(name=_clean_name(meta.name if meta else None))
