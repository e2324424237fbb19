from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from .models import CatalogEntry
from .utils import fold_text

logger = logging.getLogger("stock_chat.rules")

FULL_PHRASE_MIN_LENGTH = 5
RELEVANT_WORD_MIN_LENGTH = 3
MAX_SUGGESTIONS = 3
SUGGESTION_STEM_LENGTH = 4

_IGNORED_WORDS = frozenset({"de", "del", "la", "el", "los", "las", "con", "sin", "para", "por", "una", "unos", "unas"})


@dataclass
class ResolverResult:
    """Best catalog match for a phrase, the strategy that found it, and suggestions."""
    producto: Optional[CatalogEntry] = None
    estrategia: Optional[str] = None
    sugerencias: List[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.producto is not None


def relevant_words(phrase: str) -> List[str]:
    """Folded words of a phrase that are long enough to identify a product."""
    return [
        word
        for word in fold_text(phrase).split()
        if len(word) >= RELEVANT_WORD_MIN_LENGTH and word not in _IGNORED_WORDS
    ]


def _name_words(nombre: str) -> List[str]:
    return [word for word in nombre.split() if len(word) >= RELEVANT_WORD_MIN_LENGTH]


def _shortest(candidates: Iterable[CatalogEntry]) -> Optional[CatalogEntry]:
    # Ties keep catalog order.
    return min(candidates, key=lambda producto: len(producto.nombre.strip()), default=None)


def _match_exact_name(phrase: str, words: List[str], catalog: Sequence[CatalogEntry]) -> Optional[CatalogEntry]:
    for producto in catalog:
        if fold_text(producto.nombre).strip() == phrase:
            return producto
    return None


def _match_full_phrase(phrase: str, words: List[str], catalog: Sequence[CatalogEntry]) -> Optional[CatalogEntry]:
    if len(phrase) <= FULL_PHRASE_MIN_LENGTH:
        return None
    folded = [(producto, fold_text(producto.nombre).strip()) for producto in catalog]
    match = _shortest(producto for producto, nombre in folded if nombre and phrase in nombre)
    if match is not None:
        return match
    # A name inside the phrase: the longest one is the most specific.
    inside = [
        producto
        for producto, nombre in folded
        if len(nombre) >= RELEVANT_WORD_MIN_LENGTH and nombre in phrase
    ]
    if inside:
        return max(inside, key=lambda producto: len(producto.nombre.strip()))
    if not words:
        return None
    return _shortest(producto for producto, nombre in folded if all(word in nombre for word in words))


def _match_keyword_overlap(phrase: str, words: List[str], catalog: Sequence[CatalogEntry]) -> Optional[CatalogEntry]:
    if len(words) <= 1:
        return None
    required = min(2, len(words))
    return _shortest(
        producto
        for producto in catalog
        if sum(1 for word in words if word in fold_text(producto.nombre)) >= required
    )


def _match_longest_word(phrase: str, words: List[str], catalog: Sequence[CatalogEntry]) -> Optional[CatalogEntry]:
    if not words:
        return None
    longest = max(words, key=len)
    return _shortest(
        producto
        for producto in catalog
        if any(
            longest in name_word or name_word in longest
            for name_word in _name_words(fold_text(producto.nombre))
        )
    )


def _match_any_word(phrase: str, words: List[str], catalog: Sequence[CatalogEntry]) -> Optional[CatalogEntry]:
    for word in words:
        match = _shortest(
            producto
            for producto in catalog
            if word in fold_text(producto.nombre)
            or any(name_word in word for name_word in _name_words(fold_text(producto.nombre)))
        )
        if match is not None:
            return match
    return None


Strategy = Callable[[str, List[str], Sequence[CatalogEntry]], Optional[CatalogEntry]]

STRATEGIES: List[Tuple[str, Strategy]] = [
    ("nombre_exacto", _match_exact_name),
    ("frase_completa", _match_full_phrase),
    ("palabras_clave", _match_keyword_overlap),
    ("palabra_mas_larga", _match_longest_word),
    ("coincidencia_parcial", _match_any_word),
]


def suggest_products(phrase: str, catalog: Sequence[CatalogEntry], limit: int = MAX_SUGGESTIONS) -> List[str]:
    """Purpose: Offer similar product names when nothing matched.
    Inputs/Outputs: Input is the searched phrase and the catalog; output is up to
        ``limit`` product names, in catalog order.
    Side Effects / State: None.
    Dependencies: Uses relevant_words; compares word stems by substring.
    Failure Modes: Returns an empty list for an empty phrase or catalog.
    If Removed: "No encontré" replies lose their "¿Quisiste decir...?" hint.
    Testing Notes: the typo "tomatte" suggests "Tomate Perita" via the "toma" stem.
    """
    # Compare short stems so plural and typo variants still surface.
    stems = [word[:SUGGESTION_STEM_LENGTH] for word in relevant_words(phrase)]
    if not stems:
        return []
    sugerencias: List[str] = []
    for producto in catalog:
        nombre = fold_text(producto.nombre)
        name_stems = [word[:SUGGESTION_STEM_LENGTH] for word in _name_words(nombre)]
        if any(stem in nombre or any(name_stem in stem for name_stem in name_stems) for stem in stems):
            if producto.nombre not in sugerencias:
                sugerencias.append(producto.nombre)
        if len(sugerencias) >= limit:
            break
    return sugerencias


def resolve_product(phrase: str, catalog: Sequence[CatalogEntry]) -> ResolverResult:
    """Purpose: Find the catalog entry a free-text phrase refers to.
    Inputs/Outputs: Inputs are the cleaned phrase (verbs, quantities and stopwords
        already removed) and the catalog; output is a ResolverResult.
    Side Effects / State: Emits a debug log with the winning strategy.
    Dependencies: Applies STRATEGIES in order; first success wins, and within a
        strategy the shortest matching name wins. An exact name match is tried
        first at any length. Falls back to suggest_products when every strategy fails.
    Failure Modes: Empty phrase or catalog returns an empty result; never raises.
    If Removed: Movements and stock queries cannot be tied to a productoId.
    Testing Notes: "tomate" finds "Tomate"; "leche" finds "Leche Entera" through the
        longest-word strategy, or "Leche" by exact name when the catalog has it;
        "harina" against an unrelated catalog finds nothing.
    """
    # Compare accent-folded text on both sides.
    folded_phrase = fold_text(phrase).strip()
    if not folded_phrase or not catalog:
        return ResolverResult()
    words = relevant_words(phrase)
    for name, strategy in STRATEGIES:
        producto = strategy(folded_phrase, words, catalog)
        if producto is not None:
            logger.debug("resolver phrase=%r strategy=%s producto=%s", phrase, name, producto.id)
            return ResolverResult(producto=producto, estrategia=name)
    sugerencias = suggest_products(phrase, catalog)
    logger.debug("resolver phrase=%r strategy=none sugerencias=%s", phrase, sugerencias)
    return ResolverResult(sugerencias=sugerencias)
