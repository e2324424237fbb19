from stock_chat.models import CanonicalAction, SuggestedCommand
from stock_chat.reconciler import reconcile
from stock_chat.rule_engine import build_rule_based_action


def _reconcile(llm_action, mensaje, snapshot, **kwargs):
    rule_action = build_rule_based_action(mensaje, snapshot)
    return reconcile(llm_action, rule_action, mensaje, snapshot, **kwargs)


def test_egress_labelled_reply_that_says_add_is_flipped(snapshot):
    llm = CanonicalAction(accion="salida", producto="Tomate", cantidad=2, mensaje="Voy a agregar 2 cajas de Tomate")
    action = _reconcile(llm, "sumá 2 cajas de tomate", snapshot)
    assert action.accion == "entrada"
    assert action.requiereConfirmacion


def test_accented_past_tense_also_flips(snapshot):
    llm = CanonicalAction(accion="salida", cantidad=1, mensaje="Se agregó 1 caja")
    assert _reconcile(llm, "agregué una caja de tomate", snapshot).accion == "entrada"


def test_movement_without_quantity_is_downgraded(snapshot):
    llm = CanonicalAction(accion="salida", producto="Tomate", mensaje="Saco tomate", confianza=0.9)
    action = _reconcile(llm, "saco tomate", snapshot)
    assert action.accion == "conversacion"
    assert action.confianza == 0.3
    assert action.cantidad is None
    assert not action.requiereConfirmacion


def test_zero_quantity_is_downgraded(snapshot):
    llm = CanonicalAction(accion="entrada", cantidad=0, mensaje="Agrego 0")
    assert _reconcile(llm, "agrego 0 de leche", snapshot).accion == "conversacion"


def test_greeting_vetoes_llm_movement(snapshot):
    llm = CanonicalAction(
        accion="entrada",
        producto="Tomate",
        productoId="p1",
        cantidad=5,
        mensaje="Agrego 5 tomates",
        comandoSugerido=SuggestedCommand(accion="entrada", productoId="p1", cantidad=5),
    )
    action = _reconcile(llm, "hola", snapshot)
    assert action.accion == "conversacion"
    assert action.confianza == 1.0
    assert action.cantidad is None
    assert action.productoId is None
    assert action.producto is None
    assert action.comandoSugerido is None
    assert not action.requiereConfirmacion


def test_greeting_veto_runs_after_the_flip(snapshot):
    llm = CanonicalAction(accion="salida", cantidad=2, mensaje="Voy a sumar 2")
    action = _reconcile(llm, "buenas", snapshot)
    assert action.accion == "conversacion"
    assert "asistente" in action.mensaje


def test_missing_product_id_is_resolved_by_containment(snapshot):
    llm = CanonicalAction(accion="consulta_stock", producto="leche", mensaje="Tenés 12 l")
    action = _reconcile(llm, "cuánta leche queda", snapshot)
    assert action.productoId == "p2"


def test_product_id_from_model_is_kept(snapshot):
    llm = CanonicalAction(accion="consulta_stock", producto="Tomate", productoId="p1", mensaje="x")
    assert _reconcile(llm, "cuánto stock de tomate", snapshot).productoId == "p1"


def test_confident_rule_result_replaces_suggestion(snapshot):
    llm = CanonicalAction(
        accion="conversacion",
        mensaje="¿Confirmás sacar 3 tomates?",
        comandoSugerido=SuggestedCommand(accion="salida", producto="tomates", cantidad=3),
    )
    action = _reconcile(llm, "saco 2 cajas de tomate", snapshot)
    sugerido = action.comandoSugerido
    assert sugerido.accion == "salida"
    assert sugerido.productoId == "p1"
    assert sugerido.cantidad == 2
    assert sugerido.unidad == "cajas"
    assert sugerido.producto == "Tomate"
    assert action.requiereConfirmacion


def test_suggestion_gaps_are_filled_below_threshold(snapshot):
    llm = CanonicalAction(
        accion="conversacion",
        mensaje="¿Confirmás?",
        comandoSugerido=SuggestedCommand(accion="salida", cantidad=3),
    )
    action = _reconcile(llm, "saco 2 cajas de tomate", snapshot, threshold=0.95)
    sugerido = action.comandoSugerido
    assert sugerido.productoId == "p1"
    assert sugerido.cantidad == 3
    assert sugerido.unidad == "cajas"


def test_suggestion_with_different_accion_is_only_filled(snapshot):
    llm = CanonicalAction(
        accion="conversacion",
        mensaje="¿Confirmás?",
        comandoSugerido=SuggestedCommand(accion="entrada", producto="Tomate", cantidad=1),
    )
    sugerido = _reconcile(llm, "saco 2 cajas de tomate", snapshot).comandoSugerido
    assert sugerido.accion == "entrada"
    assert sugerido.cantidad == 1
    assert sugerido.productoId == "p1"


def test_inputs_are_not_mutated(snapshot):
    llm = CanonicalAction(accion="salida", cantidad=2, mensaje="Voy a agregar")
    _reconcile(llm, "sumá 2 de tomate", snapshot)
    assert llm.accion == "salida"


def test_mutating_llm_action_always_requires_confirmation(snapshot):
    llm = CanonicalAction(accion="crear_producto", producto="Palmitos", mensaje="Creo Palmitos", requiereConfirmacion=False)
    action = _reconcile(llm, "creá palmitos", snapshot)
    assert action.requiereConfirmacion
    assert action.is_mutating


def test_non_mutating_action_is_not_flagged():
    assert not CanonicalAction(accion="consulta_stock", mensaje="Tomate: 3 cajas").is_mutating
    assert CanonicalAction(accion="entrada", cantidad=1, mensaje="Sumo 1").is_mutating
