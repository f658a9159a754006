# FILE: blender_agent/integrations/intent.py
"""
Asset-intent classification.

Keyword heuristics only: which upstream (if any) should supply an asset is
decided here from the user's words, never from LLM output.

- hyper3d    generated/unique items (creatures, photoreal one-offs)
- polyhaven  free libraries: textures, materials, HDRIs, generic scans
- sketchfab  curated catalogue items (furniture, vehicles, named models)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional


class AssetProvider(str, Enum):
    NONE = "none"
    HYPER3D = "hyper3d"
    SKETCHFAB = "sketchfab"
    POLYHAVEN = "polyhaven"


class AssetKind(str, Enum):
    MODEL = "models"
    TEXTURE = "textures"
    HDRI = "hdris"


@dataclass
class AssetIntent:
    provider: AssetProvider
    query: str = ""
    asset_kind: AssetKind = AssetKind.MODEL

    @property
    def is_none(self) -> bool:
        return self.provider == AssetProvider.NONE


HYPER3D_KEYWORDS = (
    "hyper3d", "rodin", "generate a", "generate an", "photorealistic", "realistic",
    "creature", "monster", "dragon", "sculpture", "animal", "high detail", "unique", "custom",
)

POLYHAVEN_HDRI_KEYWORDS = ("hdri", "sky texture", "environment map", "skybox")
POLYHAVEN_TEXTURE_KEYWORDS = ("texture", "material", "pbr")
POLYHAVEN_MODEL_KEYWORDS = ("polyhaven", "poly haven", "rock", "boulder", "tree stump", "plant")

SKETCHFAB_KEYWORDS = (
    "sketchfab", "import", "download", "specific model", "brand", "chair", "table", "sofa",
    "couch", "desk", "lamp", "furniture", "car", "vehicle", "starship", "spaceship", "airplane",
)

STOP_WORDS = frozenset(("a", "an", "the", "of", "for", "with", "and"))

# Verbs and provider names carry no search signal
_FILLER_WORDS = frozenset((
    "add", "import", "download", "generate", "create", "make", "insert", "place", "put",
    "get", "find", "load", "me", "please", "some", "from", "in", "into", "to", "scene",
    "sketchfab", "polyhaven", "hyper3d", "rodin", "model", "asset",
))

_WORD_RE = re.compile(r"[a-z0-9][a-z0-9\-']*")


def _matches(text: str, keywords) -> bool:
    for kw in keywords:
        if " " in kw:
            if kw in text:
                return True
        elif re.search(rf"\b{re.escape(kw)}s?\b", text):
            return True
    return False


def extract_keywords(text: str, extra_stop_words: Optional[frozenset] = None) -> List[str]:
    """Lowercased words minus stop words and single characters."""
    stop = STOP_WORDS | (extra_stop_words or frozenset())
    return [w for w in _WORD_RE.findall((text or "").lower()) if w not in stop and len(w) > 1]


def _search_query(text: str, drop: tuple = ()) -> str:
    words = [w for w in extract_keywords(text, _FILLER_WORDS) if w not in drop]
    return " ".join(words)


def classify_asset_intent(prompt: str) -> AssetIntent:
    text = (prompt or "").lower().strip()
    if not text:
        return AssetIntent(AssetProvider.NONE)

    if _matches(text, HYPER3D_KEYWORDS):
        return AssetIntent(AssetProvider.HYPER3D, query=(prompt or "").strip(), asset_kind=AssetKind.MODEL)

    if _matches(text, POLYHAVEN_HDRI_KEYWORDS):
        query = _search_query(text, drop=("hdri", "sky", "texture", "environment", "map", "skybox"))
        return AssetIntent(AssetProvider.POLYHAVEN, query=query or "sky", asset_kind=AssetKind.HDRI)

    if _matches(text, POLYHAVEN_TEXTURE_KEYWORDS):
        query = _search_query(text, drop=("texture", "textures", "material", "materials", "pbr"))
        return AssetIntent(AssetProvider.POLYHAVEN, query=query or "wood", asset_kind=AssetKind.TEXTURE)

    if _matches(text, POLYHAVEN_MODEL_KEYWORDS):
        query = _search_query(text)
        return AssetIntent(AssetProvider.POLYHAVEN, query=query or text, asset_kind=AssetKind.MODEL)

    if _matches(text, SKETCHFAB_KEYWORDS):
        query = _search_query(text)
        return AssetIntent(AssetProvider.SKETCHFAB, query=query or text, asset_kind=AssetKind.MODEL)

    return AssetIntent(AssetProvider.NONE)


__all__ = [
    "AssetProvider",
    "AssetKind",
    "AssetIntent",
    "STOP_WORDS",
    "extract_keywords",
    "classify_asset_intent",
]
