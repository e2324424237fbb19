from stock_chat.models import CatalogEntry
from stock_chat.product_resolver import relevant_words, resolve_product, suggest_products


def _catalog(*nombres):
    return [CatalogEntry(id=f"p{index}", nombre=nombre) for index, nombre in enumerate(nombres, start=1)]


def test_exact_name_match():
    result = resolve_product("tomate", _catalog("Tomate Perita", "Tomate"))
    assert result.found
    assert result.producto.id == "p2"
    assert result.estrategia == "nombre_exacto"


def test_short_exact_name_beats_longer_name_listed_first():
    result = resolve_product("leche", _catalog("Leche Descremada", "Leche"))
    assert result.producto.id == "p2"
    assert result.estrategia == "nombre_exacto"


def test_shortest_name_wins_within_a_strategy():
    result = resolve_product("papa", _catalog("Papa Andina Grande", "Papa Negra", "Papa Blanca"))
    assert result.producto.id == "p2"


def test_full_phrase_prefers_shortest_containing_name():
    result = resolve_product("queso cremoso", _catalog("Queso Cremoso Light", "Queso Cremoso Sin Sal", "Queso Cremoso Entero"))
    assert result.producto.id == "p1"
    assert result.estrategia == "frase_completa"


def test_full_phrase_prefers_most_specific_name_inside_phrase():
    result = resolve_product("tomate perita grande", _catalog("Tomate", "Tomate Perita"))
    assert result.producto.id == "p2"
    assert result.estrategia == "frase_completa"


def test_full_phrase_is_accent_insensitive():
    result = resolve_product("azucar comun", _catalog("Harina", "Azúcar Común"))
    assert result.producto.id == "p2"


def test_keyword_overlap_needs_two_words():
    result = resolve_product("cremoso queso fresco", _catalog("Queso Rallado", "Queso Cremoso"))
    assert result.producto.id == "p2"
    assert result.estrategia == "palabras_clave"


def test_longest_word_match_for_short_phrase():
    result = resolve_product("leche", _catalog("Tomate", "Leche Entera"))
    assert result.producto.id == "p2"
    assert result.estrategia == "palabra_mas_larga"


def test_any_word_partial_match():
    result = resolve_product("aceite oliva", _catalog("Vinagre", "Oliva Extra Virgen"))
    assert result.found
    assert result.producto.id == "p2"


def test_not_found_offers_suggestions():
    result = resolve_product("tomatte", _catalog("Tomate Perita", "Harina"))
    assert not result.found
    assert result.sugerencias == ["Tomate Perita"]


def test_suggestions_are_capped_at_three():
    catalog = _catalog("Papa Blanca", "Papa Negra", "Papa Andina", "Papa Roja")
    assert len(suggest_products("papas", catalog)) == 3


def test_empty_phrase_or_catalog():
    assert not resolve_product("", _catalog("Tomate")).found
    assert not resolve_product("tomate", []).found


def test_short_names_do_not_match_inside_longer_phrase():
    result = resolve_product("tenedores grandes", _catalog("Té"))
    assert not result.found


def test_relevant_words_drop_short_and_ignored():
    assert relevant_words("caja de los tomates") == ["caja", "tomates"]
