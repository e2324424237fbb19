from fastapi.testclient import TestClient
from stubs import StubClient

from stock_chat.app import create_app
from stock_chat.config import Settings
from stock_chat.errors import UpstreamError, UpstreamTimeout
from stock_chat.orchestrator import StockChatOrchestrator

PRODUCTOS = [
    {"id": "p1", "nombre": "Tomate", "unidad": "cajas", "stockMinimo": 5},
    {"id": "p2", "nombre": "Leche Entera", "unidad": "l"},
]


def _client(settings=None, stub=None, **kwargs):
    settings = settings or Settings()
    orchestrator = StockChatOrchestrator(settings, stub or StubClient())
    return TestClient(create_app(settings=settings, orchestrator=orchestrator), **kwargs)


def test_post_returns_rule_based_action():
    response = _client().post(
        "/api/stock-chat",
        json={"mensaje": "saco 2 cajas de tomate", "productos": PRODUCTOS, "stockActual": {"p1": 1}, "pedidos": []},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["modo"] == "fallback"
    assert body["accion"]["accion"] == "salida"
    assert body["accion"]["productoId"] == "p1"
    assert body["accion"]["cantidad"] == 2
    assert body["contexto"] == {"totalProductos": 2, "productosStockBajo": 1}
    assert "rawResponse" not in body


def test_missing_message_is_bad_request():
    response = _client().post("/api/stock-chat", json={"productos": []})
    assert response.status_code == 400
    assert response.json() == {"error": "El mensaje es requerido"}


def test_malformed_body_is_bad_request():
    response = _client().post("/api/stock-chat", json={"mensaje": "hola", "productos": "tomate"})
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "El mensaje es requerido"
    assert "productos" in body["detalle"]


def test_upstream_error_is_service_unavailable():
    stub = StubClient(error=UpstreamError(detail="model not found", url="http://ollama.test:11434", status=404))
    client = _client(Settings(llm_enabled=True), stub)
    response = client.post("/api/stock-chat", json={"mensaje": "hola"})
    assert response.status_code == 503
    assert response.json() == {
        "error": "El servicio de IA no está disponible",
        "detalle": "model not found",
        "url": "http://ollama.test:11434",
    }


def test_llm_response_includes_raw_text():
    stub = StubClient(reply='{"accion": "ayuda", "mensaje": "Puedo ayudarte con tu stock", "confianza": 0.9}')
    response = _client(Settings(llm_enabled=True), stub).post("/api/stock-chat", json={"mensaje": "qué sabés hacer"})
    body = response.json()
    assert body["modo"] == "ollama"
    assert body["accion"]["accion"] == "ayuda"
    assert body["rawResponse"].startswith("{")


def test_unexpected_error_is_generic_server_error():
    class BrokenOrchestrator(StockChatOrchestrator):
        async def handle(self, request):
            raise RuntimeError("boom")

    settings = Settings()
    app = create_app(settings=settings, orchestrator=BrokenOrchestrator(settings, StubClient()))
    response = TestClient(app, raise_server_exceptions=False).post("/api/stock-chat", json={"mensaje": "hola"})
    assert response.status_code == 500
    assert response.json() == {"error": "Error interno del servidor"}
    assert "detalle" not in response.json()


def test_health_ok():
    response = _client().get("/api/stock-chat")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["modeloConfigurado"] == "llama3.2"
    assert body["modeloDisponible"] is True


def test_health_unreachable_backend():
    stub = StubClient(models_error=UpstreamTimeout(detail="connection refused"))
    body = _client(stub=stub).get("/api/stock-chat").json()
    assert body["status"] == "error"
    assert "modelosDisponibles" not in body


def test_app_starts_without_gemini_key_in_fast_path_mode():
    settings = Settings(llm_enabled=False, llm_provider="gemini")
    client = TestClient(create_app(settings=settings))

    response = client.post("/api/stock-chat", json={"mensaje": "saco 2 cajas de tomate", "productos": PRODUCTOS})
    assert response.status_code == 200
    assert response.json()["modo"] == "fallback"

    health = client.get("/api/stock-chat")
    assert health.status_code == 200
    body = health.json()
    assert body["status"] == "error"
    assert body["modeloConfigurado"] == "gemini-2.5-flash"
    assert "GEMINI_API_KEY" in body["message"]
