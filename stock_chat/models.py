from __future__ import annotations

from typing import Dict, List, Literal, Optional, Union, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator

AccionTipo = Literal[
    "conversacion",
    "consulta_stock",
    "listar_productos",
    "listar_pedidos",
    "stock_bajo",
    "ayuda",
    "entrada",
    "salida",
    "crear_producto",
]

ACCIONES = get_args(AccionTipo)
MUTATING_ACTIONS = frozenset({"entrada", "salida", "crear_producto"})
MOVEMENT_ACTIONS = frozenset({"entrada", "salida"})

Number = Union[int, float]


class CatalogEntry(BaseModel):
    """Read-only product record supplied by the caller."""
    model_config = ConfigDict(extra="ignore")

    id: str
    nombre: str
    unidad: Optional[str] = None
    stockMinimo: Optional[Number] = None
    stockActual: Optional[Number] = None
    pedidoId: Optional[str] = None
    pedidoNombre: Optional[str] = None


class OrderEntry(BaseModel):
    """Read-only supplier order record supplied by the caller."""
    model_config = ConfigDict(extra="ignore")

    id: str
    nombre: str
    productCount: int = 0


class HistoryEntry(BaseModel):
    """One prior chat turn forwarded to the LLM prompt."""
    model_config = ConfigDict(extra="ignore")

    rol: str = "user"
    contenido: str = ""


class SuggestedCommand(BaseModel):
    """Partial action proposed by the LLM path; executed only after confirmation."""
    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    accion: Optional[AccionTipo] = None
    producto: Optional[str] = None
    productoId: Optional[str] = None
    cantidad: Optional[Number] = None
    unidad: Optional[str] = None
    stockMinimo: Optional[Number] = None

    @field_validator("cantidad", "stockMinimo")
    @classmethod
    def _absolute(cls, value: Optional[Number]) -> Optional[Number]:
        return abs(value) if value is not None else None


class CanonicalAction(BaseModel):
    """The single executable command produced for an incoming message.

    Quantities are stored as absolute values and the confidence is kept in
    [0, 1]; both are enforced on construction and on every assignment.
    """
    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    accion: AccionTipo = "conversacion"
    producto: Optional[str] = None
    productoId: Optional[str] = None
    cantidad: Optional[Number] = None
    unidad: Optional[str] = None
    stockMinimo: Optional[Number] = None
    mensaje: str
    confianza: float = 0.5
    requiereConfirmacion: bool = False
    comandoSugerido: Optional[SuggestedCommand] = None

    @field_validator("cantidad", "stockMinimo")
    @classmethod
    def _absolute(cls, value: Optional[Number]) -> Optional[Number]:
        return abs(value) if value is not None else None

    @field_validator("confianza")
    @classmethod
    def _clamp_confidence(cls, value: float) -> float:
        return min(1.0, max(0.0, float(value)))

    @property
    def is_mutating(self) -> bool:
        return self.accion in MUTATING_ACTIONS


class ChatRequest(BaseModel):
    """Request payload for the stock chat API."""
    model_config = ConfigDict(extra="ignore")

    mensaje: Optional[str] = None
    productos: List[CatalogEntry] = Field(default_factory=list)
    stockActual: Dict[str, Number] = Field(default_factory=dict)
    pedidos: List[OrderEntry] = Field(default_factory=list)
    nombreEmpresa: Optional[str] = None
    historial: List[HistoryEntry] = Field(default_factory=list)


class ChatContext(BaseModel):
    """Inventory totals echoed back to the caller."""
    totalProductos: int
    productosStockBajo: int


class ChatResponse(BaseModel):
    """Response payload returned by the stock chat API."""
    accion: CanonicalAction
    rawResponse: Optional[str] = None
    modo: str
    contexto: ChatContext


class HealthResponse(BaseModel):
    """Status of the configured LLM backend."""
    status: Literal["ok", "error"]
    url: Optional[str] = None
    modeloConfigurado: str
    modeloDisponible: Optional[bool] = None
    modelosDisponibles: Optional[List[str]] = None
    message: Optional[str] = None


def apply_action_invariants(action: CanonicalAction, default_unit: str = "u") -> CanonicalAction:
    """Purpose: Enforce the invariants every returned action must satisfy.
    Inputs/Outputs: Input is a CanonicalAction; output is the same instance, updated.
    Side Effects / State: Mutates the action in place.
    Dependencies: Relies on the field validators for absolute values and clamping.
    Failure Modes: None; invalid movements are downgraded rather than rejected.
    If Removed: A movement without a positive quantity could reach the caller, or a
        mutating action could skip confirmation.
    Testing Notes: salida with cantidad 0 becomes conversacion; entrada with a
        quantity and no unit gets "u"; crear_producto always requires confirmation.
    """
    # Downgrade first so the confirmation flag is computed on the final accion.
    if action.accion in MOVEMENT_ACTIONS and not action.cantidad:
        action.accion = "conversacion"
        action.cantidad = None
        action.requiereConfirmacion = False
    if action.cantidad is not None and not action.unidad:
        action.unidad = default_unit
    if action.is_mutating:
        action.requiereConfirmacion = True
    if action.comandoSugerido is not None:
        sugerido = action.comandoSugerido
        if sugerido.cantidad is not None and not sugerido.unidad:
            sugerido.unidad = default_unit
        if sugerido.accion in MUTATING_ACTIONS:
            action.requiereConfirmacion = True
    return action
