"""Merge the LLM interpretation with the rule-based one.

The steps run in a fixed order and each may rewrite the working action. The
rule-based result is the reference: it is deterministic and was computed from
the same message and snapshot.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Tuple

from .models import MOVEMENT_ACTIONS, CanonicalAction, SuggestedCommand, apply_action_invariants
from .patterns import CONFIDENCE_CERTAIN, is_short_or_greeting, onboarding_message
from .snapshot import InventorySnapshot
from .utils import fold_text

logger = logging.getLogger("stock_chat.reconcile")

DEFAULT_PRECEDENCE_THRESHOLD = 0.7
CONFIDENCE_INVALID_QUANTITY = 0.3

INVALID_QUANTITY_MESSAGE = (
    "No me quedó clara la cantidad. ¿Cuántas unidades querés mover? "
    "Por ejemplo: \"saco 2 cajas de tomate\"."
)

_INGRESS_WORDS_RE = re.compile(r"\b(agrego|agregar|sumo|sumar)\b")


@dataclass(frozen=True)
class ReconcileInput:
    """Everything a reconciliation step may look at besides the working action."""
    mensaje: str
    snapshot: InventorySnapshot
    rule_action: CanonicalAction
    threshold: float = DEFAULT_PRECEDENCE_THRESHOLD


def _reject_invalid_quantity(action: CanonicalAction, ctx: ReconcileInput) -> bool:
    if action.accion not in MOVEMENT_ACTIONS:
        return False
    if action.cantidad is not None and action.cantidad > 0:
        return False
    action.accion = "conversacion"
    action.cantidad = None
    action.mensaje = INVALID_QUANTITY_MESSAGE
    action.confianza = CONFIDENCE_INVALID_QUANTITY
    action.requiereConfirmacion = False
    return True


def _flip_contradicting_egress(action: CanonicalAction, ctx: ReconcileInput) -> bool:
    # The model's own reply says it is adding stock; trust the wording over the label.
    if action.accion != "salida":
        return False
    if not _INGRESS_WORDS_RE.search(fold_text(action.mensaje.lower())):
        return False
    action.accion = "entrada"
    return True


def _veto_small_talk(action: CanonicalAction, ctx: ReconcileInput) -> bool:
    if action.accion not in MOVEMENT_ACTIONS or not is_short_or_greeting(ctx.mensaje):
        return False
    action.accion = "conversacion"
    action.mensaje = onboarding_message(ctx.snapshot.nombre_empresa)
    action.cantidad = None
    action.productoId = None
    action.producto = None
    action.comandoSugerido = None
    action.confianza = CONFIDENCE_CERTAIN
    action.requiereConfirmacion = False
    return True


def _resolve_missing_product_id(action: CanonicalAction, ctx: ReconcileInput) -> bool:
    if not action.producto or action.productoId:
        return False
    wanted = action.producto.strip().lower()
    if not wanted:
        return False
    for producto in ctx.snapshot.productos:
        nombre = producto.nombre.strip().lower()
        if nombre and (wanted in nombre or nombre in wanted):
            action.productoId = producto.id
            return True
    return False


def _align_suggestion(action: CanonicalAction, ctx: ReconcileInput) -> bool:
    """Purpose: Complete or replace the LLM's suggested command from the rule-based result.
    Inputs/Outputs: Inputs are the working action and the reconciliation input; output
        is True when the suggestion changed.
    Side Effects / State: Mutates action.comandoSugerido.
    Dependencies: ctx.rule_action and ctx.threshold.
    Failure Modes: None; a missing suggestion is left missing.
    If Removed: Suggested commands may reach the caller without a product id or quantity.
    Testing Notes: A confident, resolved rule result with the same accion replaces the
        suggestion wholesale; otherwise only empty fields are filled.
    """
    # Rule-based precedence needs confidence, a resolved id and the same accion.
    sugerido = action.comandoSugerido
    if sugerido is None:
        return False
    rule = ctx.rule_action
    if rule.confianza > ctx.threshold and rule.productoId and rule.accion == sugerido.accion:
        action.comandoSugerido = SuggestedCommand(
            accion=rule.accion,
            productoId=rule.productoId,
            cantidad=rule.cantidad,
            unidad=rule.unidad,
            producto=rule.producto,
        )
        return True
    changed = False
    for field in ("productoId", "cantidad", "unidad"):
        if getattr(sugerido, field) is None and getattr(rule, field) is not None:
            setattr(sugerido, field, getattr(rule, field))
            changed = True
    return changed


ReconcileStep = Callable[[CanonicalAction, ReconcileInput], bool]

RECONCILE_STEPS: List[Tuple[str, ReconcileStep]] = [
    ("cantidad_invalida", _reject_invalid_quantity),
    ("salida_contradictoria", _flip_contradicting_egress),
    ("mensaje_corto", _veto_small_talk),
    ("producto_id", _resolve_missing_product_id),
    ("comando_sugerido", _align_suggestion),
]


def reconcile(
    llm_action: CanonicalAction,
    rule_action: CanonicalAction,
    mensaje: str,
    snapshot: InventorySnapshot,
    threshold: float = DEFAULT_PRECEDENCE_THRESHOLD,
) -> CanonicalAction:
    """Purpose: Produce the final action from the two interpretations of one message.
    Inputs/Outputs: Inputs are the sanitized LLM action, the rule-based action, the
        original message, the snapshot and the precedence threshold; output is a new
        CanonicalAction (the inputs are not mutated).
    Side Effects / State: Logs each correction that fired.
    Dependencies: RECONCILE_STEPS in order, then apply_action_invariants.
    Failure Modes: None; every step is total.
    If Removed: Model output would be returned unchecked.
    Testing Notes: salida whose reply says "agregar" comes back as entrada; "hola"
        with an LLM movement comes back as the onboarding conversation.
    """
    # Work on a copy so the caller's objects stay untouched.
    action = llm_action.model_copy(deep=True)
    ctx = ReconcileInput(mensaje=mensaje, snapshot=snapshot, rule_action=rule_action, threshold=threshold)
    for name, step in RECONCILE_STEPS:
        if step(action, ctx):
            logger.info("reconcile step=%s accion=%s producto_id=%s", name, action.accion, action.productoId)
    # Final pass: absolute quantity and clamped confidence.
    action.confianza = min(1.0, max(0.0, action.confianza))
    if action.cantidad is not None:
        action.cantidad = abs(action.cantidad)
    return apply_action_invariants(action)
