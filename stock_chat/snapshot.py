from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .models import CatalogEntry, ChatContext, ChatRequest, HistoryEntry, OrderEntry
from .utils import format_quantity

DEFAULT_UNIT = "u"


@dataclass(frozen=True)
class InventorySnapshot:
    """Read-only view of the caller's catalog, stock levels and orders for one request."""
    productos: List[CatalogEntry] = field(default_factory=list)
    stock_actual: Dict[str, float] = field(default_factory=dict)
    pedidos: List[OrderEntry] = field(default_factory=list)
    nombre_empresa: Optional[str] = None
    historial: List[HistoryEntry] = field(default_factory=list)

    @classmethod
    def from_request(cls, request: ChatRequest) -> "InventorySnapshot":
        return cls(
            productos=list(request.productos),
            stock_actual=dict(request.stockActual),
            pedidos=list(request.pedidos),
            nombre_empresa=(request.nombreEmpresa or "").strip() or None,
            historial=list(request.historial),
        )

    def stock_of(self, producto: CatalogEntry) -> float:
        """Stock from the stockActual map, then the entry itself, then 0."""
        if producto.id in self.stock_actual:
            return self.stock_actual[producto.id] or 0
        return producto.stockActual or 0

    def unit_of(self, producto: CatalogEntry) -> str:
        return producto.unidad or DEFAULT_UNIT

    def is_low(self, producto: CatalogEntry) -> bool:
        minimo = producto.stockMinimo or 0
        return minimo > 0 and self.stock_of(producto) < minimo

    def low_stock(self) -> List[CatalogEntry]:
        """Products below their minimum, largest shortfall first."""
        bajos = [p for p in self.productos if self.is_low(p)]
        return sorted(bajos, key=lambda p: (p.stockMinimo or 0) - self.stock_of(p), reverse=True)

    def order_name(self, producto: CatalogEntry) -> Optional[str]:
        if producto.pedidoNombre:
            return producto.pedidoNombre
        if not producto.pedidoId:
            return None
        for pedido in self.pedidos:
            if pedido.id == producto.pedidoId:
                return pedido.nombre
        return None

    def stock_line(self, producto: CatalogEntry) -> str:
        estado = "⚠️" if self.is_low(producto) else "✅"
        stock = format_quantity(self.stock_of(producto))
        return f"{estado} {producto.nombre}: {stock} {self.unit_of(producto)}"

    def context(self) -> ChatContext:
        return ChatContext(
            totalProductos=len(self.productos),
            productosStockBajo=sum(1 for p in self.productos if self.is_low(p)),
        )
