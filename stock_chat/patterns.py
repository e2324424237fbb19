"""Ordered intent rules for free-text inventory requests.

Rules live in ``INTENT_RULES`` as ``(name, predicate, handler)`` entries and are
evaluated top-down; the first predicate that accepts the message decides the
intent. Handlers never look at the catalog: when a rule needs a product they
return the cleaned phrase and leave resolution to the action builder.

Confidence is fixed per rule:
    1.0  greetings and short acknowledgements
    0.9  confident match with a resolved product (set by the builder)
    0.8  listings, summary, low stock and help
    0.7  ambiguous requests that ask the user for more detail
    0.5  product not found (set by the builder)
    0.4  default reply
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from .utils import coerce_number, fold_text, normalize_message

logger = logging.getLogger("stock_chat.rules")

CONFIDENCE_CERTAIN = 1.0
CONFIDENCE_RESOLVED = 0.9
CONFIDENCE_LISTING = 0.8
CONFIDENCE_ASK_MORE = 0.7
CONFIDENCE_NOT_FOUND = 0.5
CONFIDENCE_DEFAULT = 0.4

SHORT_MESSAGE_MAX = 5

GREETINGS = frozenset(
    {
        "hola",
        "holis",
        "holaa",
        "buenas",
        "buen dia",
        "buenos dias",
        "buenas tardes",
        "buenas noches",
        "hey",
        "que tal",
        "saludos",
    }
)
ACKNOWLEDGEMENTS = frozenset(
    {
        "ok",
        "oka",
        "okay",
        "dale",
        "listo",
        "gracias",
        "muchas gracias",
        "genial",
        "perfecto",
        "bien",
        "joya",
        "bueno",
        "claro",
        "de nada",
        "entendido",
        "si",
        "si gracias",
    }
)
NEGATIONS = frozenset({"no", "nop", "nada", "ninguno", "ninguna", "no gracias", "cancelar", "cancela"})
CLOSED_SET = GREETINGS | ACKNOWLEDGEMENTS | NEGATIONS

GREETING_PREFIX_RE = re.compile(r"^(hola+|holis|buenas|buen dia|buenos dias|hey|que tal|saludos)\b")

EGRESS_VERBS = frozenset(
    {
        "saco", "saca", "sacar", "sacame", "saque", "sacamos",
        "quito", "quita", "quitar", "quitame", "quite",
        "retiro", "retira", "retirar", "retire",
        "resto", "resta", "restar", "restale",
        "descuento", "desconta", "descontar",
        "uso", "use", "usamos", "gaste", "consumi", "vendi", "vendimos",
        "sale", "salen", "salio", "salieron",
    }
)
INGRESS_VERBS = frozenset(
    {
        "agrego", "agrega", "agregar", "agregame", "agregue", "agregamos",
        "pongo", "pone", "poner", "pon", "ponele",
        "sumo", "suma", "sumar", "sumale", "sume",
        "meto", "mete", "meter",
        "ingreso", "ingresa", "ingresar", "ingrese",
        "entra", "entran", "entraron",
        "llego", "llegaron", "recibi", "recibimos", "compre", "compramos",
        "cargo", "carga", "cargar", "cargame",
    }
)

STOCK_QUERY_WORDS = frozenset(
    {"cuanto", "cuanta", "cuantos", "cuantas", "stock", "hay", "tengo", "tenemos", "queda", "quedan", "disponible", "disponibles"}
)
ARTICLES = frozenset({"de", "del", "el", "la", "los", "las"})
LISTING_WORDS = frozenset({"mostrar", "mostra", "mostrame", "muestra", "muestrame", "listar", "lista", "listame", "ver", "productos", "inventario"})
ORDER_WORDS = frozenset({"pedido", "pedidos", "proveedor", "proveedores"})
LOW_STOCK_WORDS = frozenset({"falta", "faltan", "falte", "bajo", "bajos", "minimo", "minimos", "pedir", "reponer"})
HELP_WORDS = frozenset({"ayuda", "help", "ayudame", "comandos"})
CREATION_WORDS = frozenset({"crea", "crear", "creame", "crealo", "nuevo", "nueva", "alta"})
SUMMARY_WORDS = frozenset({"resumen", "estadistica", "estadisticas", "total", "totales"})
LISTING_SKIP_WORDS = frozenset(
    {"todo", "todos", "toda", "todas", "tiene", "tienen", "contiene", "contienen", "catalogo", "completo", "actual", "cargados"}
)

UNIT_WORDS = frozenset(
    {
        "u", "un", "unidad", "unidades",
        "kg", "kgs", "kilo", "kilos", "g", "gr", "grs", "gramo", "gramos",
        "l", "lt", "lts", "litro", "litros", "ml", "cc",
        "caja", "cajas", "cajon", "cajones", "bolsa", "bolsas", "paquete", "paquetes",
        "docena", "docenas", "lata", "latas", "botella", "botellas", "pack", "packs",
        "bandeja", "bandejas", "atado", "atados", "frasco", "frascos", "sobre", "sobres",
        "bidon", "bidones", "rollo", "rollos", "maple", "maples", "fardo", "fardos",
    }
)

FILLER_WORDS = frozenset(
    {
        "de", "del", "la", "el", "los", "las", "un", "una", "unos", "unas", "al", "a",
        "por", "favor", "porfa", "me", "le", "les", "che", "y", "en", "con", "para",
        "que", "lo", "mi", "mis", "tu", "su", "se", "te", "ahi", "mas", "esto", "este",
        "esta", "ese", "esa", "producto", "tenes", "hoy", "ya",
    }
)

_NUMBER_RE = re.compile(r"^-?\d+(?:[.,]\d+)?$")
_NUMBER_WITH_UNIT_RE = re.compile(r"^(-?\d+(?:[.,]\d+)?)([a-z]+)$")
_HOW_MANY_PRODUCTS_RE = re.compile(r"\bcuantos?\s+productos?\b")


@dataclass(frozen=True)
class MessageText:
    """A message in the two forms the rules need: display text and accent-folded text."""
    normalized: str
    folded: str
    tokens: Tuple[str, ...]
    folded_tokens: Tuple[str, ...]
    nombre_empresa: Optional[str] = None

    @classmethod
    def from_raw(cls, mensaje: str, nombre_empresa: Optional[str] = None) -> "MessageText":
        normalized = normalize_message(mensaje)
        folded = fold_text(normalized)
        tokens = tuple(normalized.split())
        folded_tokens = tuple(folded.split())
        if len(tokens) != len(folded_tokens):
            tokens = folded_tokens
        return cls(normalized, folded, tokens, folded_tokens, nombre_empresa)

    def has_any(self, words: frozenset) -> bool:
        return any(token in words for token in self.folded_tokens)

    def phrase_without(self, skip: frozenset, skip_positions: Tuple[int, ...] = ()) -> str:
        """Display tokens that are neither in ``skip`` nor at ``skip_positions``."""
        kept = [
            token
            for index, (token, folded) in enumerate(zip(self.tokens, self.folded_tokens))
            if index not in skip_positions and folded not in skip and not _NUMBER_RE.match(folded)
        ]
        return " ".join(kept)


@dataclass
class IntentMatch:
    """Outcome of the pattern matcher: the intent and any literal captures."""
    rule: str
    accion: str
    confianza: float
    mensaje: str = ""
    cantidad: Optional[float] = None
    unidad: Optional[str] = None
    direccion: Optional[str] = None
    frase: str = ""
    producto: Optional[str] = None
    stock_minimo: Optional[float] = None
    requiere_confirmacion: bool = False


@dataclass(frozen=True)
class IntentRule:
    """One entry of the ordered rule table."""
    name: str
    predicate: Callable[[MessageText], bool]
    handler: Callable[[MessageText], IntentMatch]


def onboarding_message(nombre_empresa: Optional[str] = None) -> str:
    asistente = f"el asistente de stock de {nombre_empresa}" if nombre_empresa else "tu asistente de stock"
    return (
        f"¡Hola! 👋 Soy {asistente}. Puedo ayudarte a:\n"
        "• Registrar movimientos: \"saco 2 cajas de tomate\", \"agregá 5 kg de harina\"\n"
        "• Consultar stock: \"cuánto stock de leche\"\n"
        "• Ver qué falta pedir: \"qué me falta pedir\"\n\n"
        "Escribí \"ayuda\" para ver todo lo que puedo hacer."
    )


HELP_MESSAGE = (
    "🤖 Puedo ayudarte con:\n\n"
    "📦 **Stock**: \"saco 2 cajas de tomate\", \"agregá 5 kg de harina\"\n"
    "➕ **Crear productos**: \"creá un producto Mayonesa en unidades\"\n"
    "📊 **Consultas**: \"cuánto tengo de queso\", \"mostrar productos\"\n"
    "🏪 **Pedidos**: \"mostrar pedidos\"\n"
    "📝 **Reposición**: \"qué me falta pedir\"\n\n"
    "¡Preguntame lo que necesites!"
)
DEFAULT_MESSAGE = (
    "No estoy seguro de qué necesitás. Podés registrar movimientos (\"saco 2 cajas de tomate\"), "
    "consultar stock (\"cuánto stock de leche\") o escribir \"ayuda\"."
)


def is_stock_verb_message(msg: MessageText) -> bool:
    return msg.has_any(EGRESS_VERBS) or msg.has_any(INGRESS_VERBS)


def is_short_or_greeting(mensaje: str) -> bool:
    """Purpose: Decide whether a message is pure small talk.
    Inputs/Outputs: Input is the raw user message; output is True for short messages,
        closed-set greetings/acknowledgements/negations and greeting prefixes.
    Side Effects / State: None.
    Dependencies: Shared by the first two rules and by reconciliation, so both paths
        agree on what counts as conversation.
    Failure Modes: A bare stock verb ("saco") is not small talk even though it is short;
        it is routed to the quantity prompt instead.
    If Removed: Reconciliation can no longer veto LLM movements on "hola".
    Testing Notes: "ok", "hola", "no gracias" are True; "saco" and "saco 2 de tomate" are False.
    """
    msg = MessageText.from_raw(mensaje)
    return _is_closed_or_short(msg) or _has_greeting_prefix(msg)


def _is_closed_or_short(msg: MessageText) -> bool:
    if msg.folded in CLOSED_SET:
        return True
    return len(msg.normalized) <= SHORT_MESSAGE_MAX and not is_stock_verb_message(msg)


def _has_greeting_prefix(msg: MessageText) -> bool:
    return bool(GREETING_PREFIX_RE.match(msg.folded))


def _handle_short(msg: MessageText) -> IntentMatch:
    if msg.folded in GREETINGS or _has_greeting_prefix(msg):
        return IntentMatch("saludo", "conversacion", CONFIDENCE_CERTAIN, onboarding_message(msg.nombre_empresa))
    if msg.folded in NEGATIONS:
        mensaje = "Perfecto, no hago nada. ¿Necesitás algo más?"
    elif msg.folded in ACKNOWLEDGEMENTS:
        mensaje = "¡Dale! ¿Necesitás algo más?"
    else:
        mensaje = "¿En qué te puedo ayudar? Escribí \"ayuda\" para ver ejemplos."
    return IntentMatch("mensaje_corto", "conversacion", CONFIDENCE_CERTAIN, mensaje)


def _handle_greeting(msg: MessageText) -> IntentMatch:
    return IntentMatch("saludo", "conversacion", CONFIDENCE_CERTAIN, onboarding_message(msg.nombre_empresa))


def _is_stock_query(msg: MessageText) -> bool:
    return msg.has_any(STOCK_QUERY_WORDS) and msg.has_any(ARTICLES)


def _handle_stock_query(msg: MessageText) -> IntentMatch:
    frase = msg.phrase_without(STOCK_QUERY_WORDS | FILLER_WORDS | UNIT_WORDS)
    return IntentMatch("consulta_stock", "consulta_stock", CONFIDENCE_RESOLVED, frase=frase)


def _is_summary(msg: MessageText) -> bool:
    if is_stock_verb_message(msg) or msg.has_any(CREATION_WORDS):
        return False
    return msg.has_any(SUMMARY_WORDS) or bool(_HOW_MANY_PRODUCTS_RE.search(msg.folded))


def _handle_summary(msg: MessageText) -> IntentMatch:
    return IntentMatch("resumen", "listar_productos", CONFIDENCE_LISTING)


def _is_listing(msg: MessageText) -> bool:
    return msg.has_any(LISTING_WORDS)


def _handle_listing(msg: MessageText) -> IntentMatch:
    if msg.has_any(ORDER_WORDS):
        return IntentMatch("listar_pedidos", "listar_pedidos", CONFIDENCE_LISTING)
    # Whatever survives the listing vocabulary is a search term: "productos con queso".
    frase = msg.phrase_without(LISTING_WORDS | LISTING_SKIP_WORDS | LOW_STOCK_WORDS | FILLER_WORDS | STOCK_QUERY_WORDS | UNIT_WORDS)
    return IntentMatch("listar_productos", "listar_productos", CONFIDENCE_LISTING, frase=frase)


def _is_low_stock(msg: MessageText) -> bool:
    # "creá X, mínimo 10" sets a minimum; it is not a low-stock question.
    return msg.has_any(LOW_STOCK_WORDS) and not msg.has_any(CREATION_WORDS)


def _handle_low_stock(msg: MessageText) -> IntentMatch:
    return IntentMatch("stock_bajo", "stock_bajo", CONFIDENCE_LISTING)


def _is_help(msg: MessageText) -> bool:
    return msg.has_any(HELP_WORDS) or "que puedo" in msg.folded


def _handle_help(msg: MessageText) -> IntentMatch:
    return IntentMatch("ayuda", "ayuda", CONFIDENCE_LISTING, HELP_MESSAGE)


def find_quantity(msg: MessageText) -> Tuple[Optional[float], Optional[str], Tuple[int, ...]]:
    """Purpose: Find the first numeric token and the unit word right after it.
    Inputs/Outputs: Input is a MessageText; output is (cantidad, unidad, positions)
        where positions are the consumed token indexes.
    Side Effects / State: None.
    Dependencies: Uses _NUMBER_RE, _NUMBER_WITH_UNIT_RE and UNIT_WORDS.
    Failure Modes: Returns (None, None, ()) when no numeric token exists. Negative
        numbers are returned as their absolute value.
    If Removed: Movements can no longer carry a quantity.
    Testing Notes: "2 cajas" -> (2, "cajas"); "5kg" -> (5, "kg"); "-3" -> (3, None).
    """
    # Units are kept as written so "cajas" is echoed back as "cajas".
    for index, folded in enumerate(msg.folded_tokens):
        unit: Optional[str] = None
        positions: Tuple[int, ...] = (index,)
        if _NUMBER_RE.match(folded):
            number = coerce_number(folded)
            nxt = index + 1
            if nxt < len(msg.folded_tokens) and msg.folded_tokens[nxt] in UNIT_WORDS:
                unit = msg.tokens[nxt]
                positions = (index, nxt)
        else:
            attached = _NUMBER_WITH_UNIT_RE.match(folded)
            if not attached or attached.group(2) not in UNIT_WORDS:
                continue
            number = coerce_number(attached.group(1))
            unit = attached.group(2)
        if number is None:
            continue
        return abs(number), unit, positions
    return None, None, ()


def _movement_direction(msg: MessageText) -> str:
    for token in msg.folded_tokens:
        if token in EGRESS_VERBS:
            return "salida"
        if token in INGRESS_VERBS:
            return "entrada"
    return "entrada"


def _movement_phrase(msg: MessageText, positions: Tuple[int, ...]) -> str:
    skip = EGRESS_VERBS | INGRESS_VERBS | FILLER_WORDS | CREATION_WORDS | STOCK_QUERY_WORDS
    return msg.phrase_without(skip, positions)


def _is_movement_with_quantity(msg: MessageText) -> bool:
    if not is_stock_verb_message(msg):
        return False
    cantidad, _, _ = find_quantity(msg)
    return cantidad is not None


def _handle_movement_with_quantity(msg: MessageText) -> IntentMatch:
    cantidad, unidad, positions = find_quantity(msg)
    direccion = _movement_direction(msg)
    frase = _movement_phrase(msg, positions)
    if not cantidad:
        verbo = "sacar" if direccion == "salida" else "agregar"
        return IntentMatch(
            "cantidad_invalida",
            "conversacion",
            CONFIDENCE_ASK_MORE,
            f"La cantidad a {verbo} tiene que ser mayor a cero. ¿Cuántas unidades son?",
        )
    return IntentMatch(
        "movimiento",
        direccion,
        CONFIDENCE_RESOLVED,
        cantidad=cantidad,
        unidad=unidad,
        direccion=direccion,
        frase=frase,
    )


def _is_movement_without_quantity(msg: MessageText) -> bool:
    return is_stock_verb_message(msg)


def _handle_movement_without_quantity(msg: MessageText) -> IntentMatch:
    direccion = _movement_direction(msg)
    frase = _movement_phrase(msg, ())
    if not frase:
        verbo = "sacar" if direccion == "salida" else "agregar"
        return IntentMatch(
            "falta_cantidad",
            "conversacion",
            CONFIDENCE_ASK_MORE,
            f"¿Cuánto querés {verbo} y de qué producto? Por ejemplo: \"saco 2 cajas de tomate\".",
            direccion=direccion,
        )
    return IntentMatch("movimiento_sin_cantidad", direccion, CONFIDENCE_ASK_MORE, direccion=direccion, frase=frase)


def _is_creation(msg: MessageText) -> bool:
    return msg.has_any(CREATION_WORDS)


_MINIMUM_RE = re.compile(r"minimo\s+(?:de\s+)?(-?\d+(?:[.,]\d+)?)")
_UNIT_AFTER_EN_RE = re.compile(r"\ben\s+([a-z]+)\b")


def _handle_creation(msg: MessageText) -> IntentMatch:
    stock_minimo: Optional[float] = None
    minimum = _MINIMUM_RE.search(msg.folded)
    if minimum:
        number = coerce_number(minimum.group(1))
        stock_minimo = abs(number) if number is not None else None
    unidad: Optional[str] = None
    for candidate in _UNIT_AFTER_EN_RE.findall(msg.folded):
        if candidate in UNIT_WORDS:
            unidad = candidate
            break
    skip = CREATION_WORDS | FILLER_WORDS | UNIT_WORDS | LOW_STOCK_WORDS | {"stock", "productos"}
    nombre = msg.phrase_without(skip)
    faltantes = []
    if not nombre:
        faltantes.append("el nombre")
    if not unidad:
        faltantes.append("la unidad (kg, cajas, unidades...)")
    if stock_minimo is None:
        faltantes.append("el stock mínimo")
    if nombre:
        mensaje = f"¿Creo el producto \"{nombre}\"?"
        if faltantes:
            mensaje += " Decime también " + " y ".join(faltantes) + "."
    else:
        mensaje = "Para crear un producto decime " + ", ".join(faltantes) + ". Por ejemplo: \"creá Mayonesa en unidades, mínimo 10\"."
    return IntentMatch(
        "crear_producto",
        "crear_producto",
        CONFIDENCE_ASK_MORE,
        mensaje,
        unidad=unidad,
        producto=nombre or None,
        stock_minimo=stock_minimo,
        requiere_confirmacion=True,
    )


def _always(msg: MessageText) -> bool:
    return True


def _handle_default(msg: MessageText) -> IntentMatch:
    return IntentMatch("default", "conversacion", CONFIDENCE_DEFAULT, DEFAULT_MESSAGE)


INTENT_RULES: List[IntentRule] = [
    IntentRule("mensaje_corto", _is_closed_or_short, _handle_short),
    IntentRule("saludo", _has_greeting_prefix, _handle_greeting),
    IntentRule("consulta_stock", _is_stock_query, _handle_stock_query),
    IntentRule("resumen", _is_summary, _handle_summary),
    IntentRule("listado", _is_listing, _handle_listing),
    IntentRule("stock_bajo", _is_low_stock, _handle_low_stock),
    IntentRule("ayuda", _is_help, _handle_help),
    IntentRule("movimiento", _is_movement_with_quantity, _handle_movement_with_quantity),
    IntentRule("movimiento_sin_cantidad", _is_movement_without_quantity, _handle_movement_without_quantity),
    IntentRule("crear_producto", _is_creation, _handle_creation),
    IntentRule("default", _always, _handle_default),
]


def match_intent(mensaje: str, nombre_empresa: Optional[str] = None) -> IntentMatch:
    """Purpose: Run the ordered rule table over a message.
    Inputs/Outputs: Input is raw message text and an optional company name for the
        greeting; output is the IntentMatch of the first accepting rule.
    Side Effects / State: Emits a debug log line.
    Dependencies: Uses INTENT_RULES and MessageText.
    Failure Modes: Never raises for string input; the last rule always matches.
    If Removed: The rule-based builder has no intent to act on.
    Testing Notes: Check rule order with messages that satisfy several predicates.
    """
    # First match wins; no scoring happens at this stage.
    msg = MessageText.from_raw(mensaje, nombre_empresa)
    for rule in INTENT_RULES:
        if rule.predicate(msg):
            match = rule.handler(msg)
            logger.debug("rule=%s accion=%s frase=%r", rule.name, match.accion, match.frase)
            return match
    return _handle_default(msg)
