"""Rule-based action builder.

Runs the pattern matcher, resolves products where the matched rule needs one,
and assembles a complete CanonicalAction. This path always runs: it is the
default engine and the cross-check for the LLM path.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List

from .models import CanonicalAction, CatalogEntry, apply_action_invariants
from .patterns import (
    CONFIDENCE_ASK_MORE,
    CONFIDENCE_NOT_FOUND,
    CONFIDENCE_RESOLVED,
    IntentMatch,
    match_intent,
)
from .product_resolver import relevant_words, resolve_product, suggest_products
from .snapshot import DEFAULT_UNIT, InventorySnapshot
from .utils import fold_text, format_quantity

logger = logging.getLogger("stock_chat.rules")

_VERBS = {"entrada": "agregar", "salida": "sacar"}


def _with_suggestions(mensaje: str, sugerencias: List[str]) -> str:
    if sugerencias:
        opciones = ", ".join(f"\"{nombre}\"" for nombre in sugerencias)
        mensaje += f" ¿Quisiste decir: {opciones}?"
    return mensaje


def _not_found_message(frase: str, sugerencias: List[str]) -> str:
    return _with_suggestions(f"No encontré \"{frase}\" en tu inventario.", sugerencias)


def _stock_report(producto: CatalogEntry, snapshot: InventorySnapshot) -> str:
    unidad = snapshot.unit_of(producto)
    stock = format_quantity(snapshot.stock_of(producto))
    lines = [f"📦 **{producto.nombre}**: {stock} {unidad}"]
    pedido = snapshot.order_name(producto)
    if pedido:
        lines.append(f"📋 Pedido: {pedido}")
    minimo = producto.stockMinimo or 0
    if minimo > 0:
        estado = "⚠️" if snapshot.is_low(producto) else "✅"
        lines.append(f"{estado} Mínimo: {format_quantity(minimo)} {unidad}")
    return "\n".join(lines)


def _has_known_stock(producto: CatalogEntry, snapshot: InventorySnapshot) -> bool:
    return producto.id in snapshot.stock_actual or producto.stockActual is not None


def _build_plain(match: IntentMatch, snapshot: InventorySnapshot) -> CanonicalAction:
    return CanonicalAction(accion=match.accion, mensaje=match.mensaje, confianza=match.confianza)


def _build_stock_query(match: IntentMatch, snapshot: InventorySnapshot) -> CanonicalAction:
    if not match.frase:
        return CanonicalAction(
            accion="conversacion",
            mensaje="¿De qué producto querés saber el stock? Por ejemplo: \"cuánto stock de leche\".",
            confianza=CONFIDENCE_ASK_MORE,
        )
    result = resolve_product(match.frase, snapshot.productos)
    if not result.found:
        return CanonicalAction(
            accion="conversacion",
            producto=match.frase,
            mensaje=_not_found_message(match.frase, result.sugerencias),
            confianza=CONFIDENCE_NOT_FOUND,
        )
    producto = result.producto
    return CanonicalAction(
        accion="consulta_stock",
        producto=producto.nombre,
        productoId=producto.id,
        unidad=snapshot.unit_of(producto),
        mensaje=_stock_report(producto, snapshot),
        confianza=CONFIDENCE_RESOLVED,
    )


def _matches_term(producto: CatalogEntry, termino: str) -> bool:
    nombre = fold_text(producto.nombre)
    words = relevant_words(termino)
    return fold_text(termino) in nombre or (bool(words) and all(word in nombre for word in words))


def _build_product_list(match: IntentMatch, snapshot: InventorySnapshot) -> CanonicalAction:
    """Purpose: List the catalog with stock levels, or only the names matching a term.
    Inputs/Outputs: Input is a listing IntentMatch whose ``frase`` holds the search
        term (may be empty) and the snapshot; output is a listar_productos action,
        or conversacion with suggestions when the term matches nothing.
    Side Effects / State: None.
    Dependencies: snapshot.stock_line, relevant_words, suggest_products.
    Failure Modes: An empty catalog yields a hint instead of an empty list.
    If Removed: "mostrar productos" and "productos con queso" get no answer.
    Testing Notes: "productos con queso" lists only names containing "queso".
    """
    if not snapshot.productos:
        mensaje = "No tenés productos en tu inventario todavía. Agregalos desde la sección Pedidos."
        return CanonicalAction(accion="listar_productos", mensaje=mensaje, confianza=match.confianza)
    if not match.frase:
        lista = "\n".join(snapshot.stock_line(producto) for producto in snapshot.productos)
        mensaje = f"📦 **Productos** ({len(snapshot.productos)}):\n\n{lista}"
        return CanonicalAction(accion="listar_productos", mensaje=mensaje, confianza=match.confianza)
    encontrados = [producto for producto in snapshot.productos if _matches_term(producto, match.frase)]
    if not encontrados:
        mensaje = _with_suggestions(
            f"No encontré productos que contengan \"{match.frase}\".",
            suggest_products(match.frase, snapshot.productos),
        )
        return CanonicalAction(accion="conversacion", mensaje=mensaje, confianza=CONFIDENCE_NOT_FOUND)
    lista = "\n".join(snapshot.stock_line(producto) for producto in encontrados)
    mensaje = f"🔍 **Productos con \"{match.frase}\"** ({len(encontrados)}):\n\n{lista}"
    return CanonicalAction(accion="listar_productos", mensaje=mensaje, confianza=match.confianza)


def _build_summary(match: IntentMatch, snapshot: InventorySnapshot) -> CanonicalAction:
    con_stock = sum(1 for producto in snapshot.productos if snapshot.stock_of(producto) > 0)
    total = sum(snapshot.stock_of(producto) for producto in snapshot.productos)
    mensaje = (
        "📊 **Resumen del inventario:**\n\n"
        f"• Total de productos: {len(snapshot.productos)}\n"
        f"• Productos con stock: {con_stock}\n"
        f"• Productos con stock bajo: {len(snapshot.low_stock())}\n"
        f"• Stock total: {format_quantity(total)} unidades"
    )
    return CanonicalAction(accion="listar_productos", mensaje=mensaje, confianza=match.confianza)


def _build_order_list(match: IntentMatch, snapshot: InventorySnapshot) -> CanonicalAction:
    if not snapshot.pedidos:
        mensaje = "No tenés pedidos cargados todavía."
    else:
        lista = "\n".join(f"📋 {pedido.nombre}: {pedido.productCount} productos" for pedido in snapshot.pedidos)
        mensaje = f"🏪 **Pedidos** ({len(snapshot.pedidos)}):\n\n{lista}"
    return CanonicalAction(accion="listar_pedidos", mensaje=mensaje, confianza=match.confianza)


def _build_low_stock(match: IntentMatch, snapshot: InventorySnapshot) -> CanonicalAction:
    bajos = snapshot.low_stock()
    if not bajos:
        mensaje = "✅ ¡Todo bien! No tenés productos con stock bajo."
    else:
        lines = []
        for producto in bajos:
            stock = snapshot.stock_of(producto)
            minimo = producto.stockMinimo or 0
            lines.append(
                f"⚠️ {producto.nombre}: {format_quantity(stock)}/{format_quantity(minimo)} "
                f"{snapshot.unit_of(producto)} (faltan {format_quantity(minimo - stock)})"
            )
        mensaje = f"📉 **Productos con stock bajo** ({len(bajos)}):\n\n" + "\n".join(lines)
    return CanonicalAction(accion="stock_bajo", mensaje=mensaje, confianza=match.confianza)


def _build_movement(match: IntentMatch, snapshot: InventorySnapshot) -> CanonicalAction:
    """Purpose: Turn "saco 2 cajas de tomate" into a movement or a creation proposal.
    Inputs/Outputs: Input is a movement IntentMatch and the snapshot; output is an
        entrada/salida action, a crear_producto proposal, or a clarifying question.
    Side Effects / State: None.
    Dependencies: Uses resolve_product and the snapshot stock helpers.
    Failure Modes: A missing product phrase yields conversacion asking which product.
    If Removed: Quantity + verb messages fall back to generic replies.
    Testing Notes: Known product -> salida with productoId; unknown -> crear_producto
        with requiereConfirmacion.
    """
    # Quantity and unit come from the message; the product comes from the catalog.
    verbo = _VERBS[match.direccion or match.accion]
    cantidad_txt = format_quantity(match.cantidad)
    if not match.frase:
        unidad = f" {match.unidad}" if match.unidad else ""
        return CanonicalAction(
            accion="conversacion",
            mensaje=f"¿De qué producto querés {verbo} {cantidad_txt}{unidad}?",
            confianza=CONFIDENCE_ASK_MORE,
        )
    result = resolve_product(match.frase, snapshot.productos)
    if not result.found:
        unidad = match.unidad or DEFAULT_UNIT
        mensaje = (
            f"No encontré \"{match.frase}\" en tu inventario. "
            f"¿Querés crear el producto \"{match.frase}\" (unidad: {unidad}) con {cantidad_txt} {unidad}?"
        )
        if result.sugerencias:
            mensaje += " O quizás quisiste decir: " + ", ".join(f"\"{s}\"" for s in result.sugerencias) + "."
        return CanonicalAction(
            accion="crear_producto",
            producto=match.frase,
            cantidad=match.cantidad,
            unidad=unidad,
            mensaje=mensaje,
            confianza=CONFIDENCE_NOT_FOUND,
            requiereConfirmacion=True,
        )
    producto = result.producto
    unidad = match.unidad or snapshot.unit_of(producto)
    mensaje = f"¿Confirmás {verbo} {cantidad_txt} {unidad} de {producto.nombre}? Escribí \"sí\" para confirmar."
    if match.accion == "salida" and _has_known_stock(producto, snapshot):
        stock = snapshot.stock_of(producto)
        if stock < (match.cantidad or 0):
            mensaje += (
                f"\n⚠️ Ojo: solo tenés {format_quantity(stock)} {snapshot.unit_of(producto)} de {producto.nombre}."
            )
    return CanonicalAction(
        accion=match.accion,
        producto=producto.nombre,
        productoId=producto.id,
        cantidad=match.cantidad,
        unidad=unidad,
        mensaje=mensaje,
        confianza=CONFIDENCE_RESOLVED,
        requiereConfirmacion=True,
    )


def _build_movement_without_quantity(match: IntentMatch, snapshot: InventorySnapshot) -> CanonicalAction:
    verbo = _VERBS[match.direccion or match.accion]
    result = resolve_product(match.frase, snapshot.productos)
    if not result.found:
        return CanonicalAction(
            accion="crear_producto",
            producto=match.frase,
            mensaje=(
                f"No encontré \"{match.frase}\" en tu inventario. "
                f"¿Querés crearlo? Decime también la unidad y cuánto querés {verbo}."
            ),
            confianza=CONFIDENCE_NOT_FOUND,
            requiereConfirmacion=True,
        )
    producto = result.producto
    unidad = snapshot.unit_of(producto)
    stock = format_quantity(snapshot.stock_of(producto))
    return CanonicalAction(
        accion="consulta_stock",
        producto=producto.nombre,
        productoId=producto.id,
        unidad=unidad,
        mensaje=(
            f"¿Cuánto querés {verbo} de {producto.nombre}? Hoy tenés {stock} {unidad}. "
            f"Por ejemplo: \"{'saco' if match.accion == 'salida' else 'agrego'} 2 {unidad} de {producto.nombre.lower()}\"."
        ),
        confianza=CONFIDENCE_ASK_MORE,
    )


def _build_creation(match: IntentMatch, snapshot: InventorySnapshot) -> CanonicalAction:
    if match.producto:
        for producto in snapshot.productos:
            if producto.nombre.strip().lower() == match.producto.strip().lower():
                return CanonicalAction(
                    accion="conversacion",
                    producto=producto.nombre,
                    productoId=producto.id,
                    mensaje=f"El producto \"{producto.nombre}\" ya existe en tu inventario.",
                    confianza=CONFIDENCE_RESOLVED,
                )
    return CanonicalAction(
        accion="crear_producto",
        producto=match.producto,
        unidad=match.unidad,
        stockMinimo=match.stock_minimo,
        mensaje=match.mensaje,
        confianza=match.confianza,
        requiereConfirmacion=match.requiere_confirmacion,
    )


ActionBuilder = Callable[[IntentMatch, InventorySnapshot], CanonicalAction]

_BUILDERS: Dict[str, ActionBuilder] = {
    "consulta_stock": _build_stock_query,
    "listar_productos": _build_product_list,
    "resumen": _build_summary,
    "listar_pedidos": _build_order_list,
    "stock_bajo": _build_low_stock,
    "movimiento": _build_movement,
    "movimiento_sin_cantidad": _build_movement_without_quantity,
    "crear_producto": _build_creation,
}


def build_rule_based_action(mensaje: str, snapshot: InventorySnapshot) -> CanonicalAction:
    """Purpose: Produce the deterministic action for a message.
    Inputs/Outputs: Inputs are the raw message and the request snapshot; output is a
        complete CanonicalAction.
    Side Effects / State: Logs the decision; holds no state between calls, so identical
        inputs give identical outputs.
    Dependencies: match_intent for the intent, the _BUILDERS table for assembly and
        apply_action_invariants for the final guarantees.
    Failure Modes: Never raises for string input.
    If Removed: There is no fast path and no fallback when the LLM is unavailable.
    Testing Notes: Cover each rule with one message and assert accion/confianza.
    """
    # Rules without a builder carry their final reply in the match itself.
    match = match_intent(mensaje or "", snapshot.nombre_empresa)
    builder = _BUILDERS.get(match.rule, _build_plain)
    action = apply_action_invariants(builder(match, snapshot))
    logger.info(
        "rule_based rule=%s accion=%s producto_id=%s confianza=%.2f",
        match.rule,
        action.accion,
        action.productoId,
        action.confianza,
    )
    return action
