from __future__ import annotations

from typing import List

import pytest

from stock_chat.models import CatalogEntry, ChatRequest, OrderEntry
from stock_chat.snapshot import InventorySnapshot


@pytest.fixture
def productos() -> List[CatalogEntry]:
    return [
        CatalogEntry(id="p1", nombre="Tomate", unidad="cajas", stockMinimo=5, pedidoId="o1"),
        CatalogEntry(id="p2", nombre="Leche Entera", unidad="l", stockMinimo=10),
        CatalogEntry(id="p3", nombre="Queso Cremoso", unidad="kg"),
    ]


@pytest.fixture
def pedidos() -> List[OrderEntry]:
    return [OrderEntry(id="o1", nombre="Verdulería Don José", productCount=1)]


@pytest.fixture
def snapshot(productos, pedidos) -> InventorySnapshot:
    return InventorySnapshot(
        productos=productos,
        stock_actual={"p1": 3, "p2": 12, "p3": 0},
        pedidos=pedidos,
    )


@pytest.fixture
def chat_request(productos, pedidos):
    def build(mensaje, **extra) -> ChatRequest:
        return ChatRequest(
            mensaje=mensaje,
            productos=productos,
            stockActual={"p1": 3, "p2": 12, "p3": 0},
            pedidos=pedidos,
            **extra,
        )

    return build
