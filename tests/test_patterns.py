import pytest

from stock_chat import patterns
from stock_chat.patterns import MessageText, find_quantity, is_short_or_greeting, match_intent


@pytest.mark.parametrize("mensaje", ["hola", "ok", "dale", "No gracias", "  Buenas tardes!  ", "si", "xd"])
def test_short_and_closed_set_messages_are_certain_conversation(mensaje):
    match = match_intent(mensaje)
    assert match.accion == "conversacion"
    assert match.confianza == 1.0


def test_greeting_gets_onboarding_with_company_name():
    match = match_intent("hola", nombre_empresa="La Esquina")
    assert match.rule == "saludo"
    assert "La Esquina" in match.mensaje


def test_greeting_prefix_outside_closed_set():
    match = match_intent("hola, cómo andás? necesito algo")
    assert match.rule == "saludo"
    assert match.accion == "conversacion"
    assert match.confianza == 1.0


def test_bare_verb_is_not_small_talk():
    assert not is_short_or_greeting("saco")
    match = match_intent("saco")
    assert match.accion == "conversacion"
    assert match.confianza == 0.7
    assert "cuánto" in match.mensaje.lower()


def test_stock_query_extracts_phrase():
    match = match_intent("cuánto stock de leche")
    assert match.accion == "consulta_stock"
    assert match.frase == "leche"


def test_listing_products_and_orders():
    assert match_intent("mostrar productos").accion == "listar_productos"
    assert match_intent("ver pedidos").accion == "listar_pedidos"
    assert match_intent("mostrame los proveedores").accion == "listar_pedidos"


def test_listing_keeps_search_term():
    assert match_intent("mostrar productos").frase == ""
    assert match_intent("mostrame todos los productos").frase == ""
    match = match_intent("productos con queso")
    assert match.accion == "listar_productos"
    assert match.frase == "queso"


@pytest.mark.parametrize("mensaje", ["resumen del inventario", "estadísticas", "cuántos productos tengo", "dame el total"])
def test_summary_phrasing(mensaje):
    match = match_intent(mensaje)
    assert match.rule == "resumen"
    assert match.accion == "listar_productos"
    assert match.confianza == 0.8


def test_summary_words_do_not_hide_stock_queries():
    assert match_intent("cuánto stock total de tomate").accion == "consulta_stock"


def test_low_stock_phrasing():
    match = match_intent("qué me falta pedir")
    assert match.accion == "stock_bajo"
    assert match.confianza == 0.8


def test_help_phrasing():
    assert match_intent("necesito ayuda").accion == "ayuda"
    assert match_intent("qué puedo hacer acá").accion == "ayuda"


def test_movement_with_quantity_and_unit():
    match = match_intent("saco 2 cajas de tomate")
    assert match.rule == "movimiento"
    assert match.accion == "salida"
    assert match.cantidad == 2
    assert match.unidad == "cajas"
    assert match.frase == "tomate"


def test_ingress_verb_with_accent_and_attached_unit():
    match = match_intent("agregá 5kg de harina")
    assert match.accion == "entrada"
    assert match.cantidad == 5
    assert match.unidad == "kg"
    assert match.frase == "harina"


def test_decimal_comma_quantity():
    match = match_intent("saco 2,5 kg de queso")
    assert match.cantidad == 2.5
    assert match.unidad == "kg"


def test_negative_quantity_is_absolute():
    match = match_intent("saco -3 de tomate")
    assert match.accion == "salida"
    assert match.cantidad == 3


def test_zero_quantity_asks_again():
    match = match_intent("saco 0 de tomate")
    assert match.accion == "conversacion"
    assert match.confianza == 0.7


def test_verb_without_quantity_keeps_phrase():
    match = match_intent("quiero sacar tomate")
    assert match.rule == "movimiento_sin_cantidad"
    assert match.accion == "salida"
    assert "tomate" in match.frase


def test_creation_parses_unit_and_minimum():
    match = match_intent("creá un producto Mayonesa en unidades, mínimo 10")
    assert match.accion == "crear_producto"
    assert match.producto == "mayonesa"
    assert match.unidad == "unidades"
    assert match.stock_minimo == 10
    assert match.requiere_confirmacion


def test_creation_without_details_asks_for_them():
    match = match_intent("nuevo producto")
    assert match.accion == "crear_producto"
    assert match.producto is None
    assert "nombre" in match.mensaje


def test_default_reply_has_low_confidence():
    match = match_intent("el cielo está nublado hoy")
    assert match.rule == "default"
    assert match.accion == "conversacion"
    assert match.confianza == 0.4


def test_rule_order_stock_query_wins_over_movement():
    # "hay" + article reaches the stock query rule before the verb rule.
    match = match_intent("cuánto hay de tomate si saco 2")
    assert match.accion == "consulta_stock"


def test_find_quantity_positions():
    cantidad, unidad, positions = find_quantity(MessageText.from_raw("pongo 3 latas de atún"))
    assert (cantidad, unidad, positions) == (3, "latas", (1, 2))


def test_rule_table_ends_with_default():
    assert patterns.INTENT_RULES[-1].name == "default"
    assert [rule.name for rule in patterns.INTENT_RULES][:2] == ["mensaje_corto", "saludo"]
