"""Tests for signature components, the parent graph and re-indexing."""

import pytest

from jezarch.core import Archive
from jezarch.errors import ConflictError, NotFoundError, StorageError, ValidationError
from jezarch.query import SearchRequestParser
from jezarch.signatures import ELEMENT_SCHEMA, SignatureStore


def indices(signatures: SignatureStore, component_id: int) -> dict:
	return {e["name"]: e["index"] for e in signatures.list_component_elements(component_id)}


def make_elements(signatures: SignatureStore, component_id: int, names) -> dict:
	return {
		name: signatures.create_element(component_id, name)["signatureElementId"]
		for name in names
	}


def test_create_component_defaults(signatures: SignatureStore) -> None:
	component = signatures.create_component("Fonds")
	assert component["index_type"] == "dec"
	assert component["index_count"] == 0


def test_duplicate_component_name_conflicts(signatures: SignatureStore) -> None:
	signatures.create_component("Fonds")
	with pytest.raises(ConflictError):
		signatures.create_component("Fonds")


def test_invalid_index_type_rejected(signatures: SignatureStore) -> None:
	with pytest.raises(ValidationError):
		signatures.create_component("Fonds", index_type="hex")


def test_elements_get_next_index_on_create(signatures: SignatureStore) -> None:
	component = signatures.create_component("Series", index_type="roman")
	first = signatures.create_element(component["signatureComponentId"], "Letters")
	second = signatures.create_element(component["signatureComponentId"], "Diaries")
	assert (first["index"], second["index"]) == ("I", "II")
	assert signatures.get_component(component["signatureComponentId"])["index_count"] == 2


def test_element_requires_existing_component(signatures: SignatureStore) -> None:
	with pytest.raises(ValidationError) as exc:
		signatures.create_element(42, "Orphan")
	assert exc.value.status == 422


def test_reindex_decimal_orders_by_name_case_insensitively(signatures: SignatureStore) -> None:
	component_id = signatures.create_component("Fonds")["signatureComponentId"]
	make_elements(signatures, component_id, ["Charlie", "alpha", "Bravo"])
	assert signatures.reindex_component(component_id) == 3
	assert indices(signatures, component_id) == {"alpha": "1", "Bravo": "2", "Charlie": "3"}


def test_reindex_roman(signatures: SignatureStore) -> None:
	component_id = signatures.create_component("Series", index_type="roman")["signatureComponentId"]
	make_elements(signatures, component_id, ["d", "c", "b", "a"])
	signatures.reindex_component(component_id)
	assert indices(signatures, component_id) == {"a": "I", "b": "II", "c": "III", "d": "IV"}


def test_reindex_small_char_27th_is_aa(signatures: SignatureStore) -> None:
	component_id = signatures.create_component("Files", index_type="small_char")["signatureComponentId"]
	make_elements(signatures, component_id, [f"el{i:02d}" for i in range(1, 28)])
	signatures.reindex_component(component_id)
	result = indices(signatures, component_id)
	assert result["el01"] == "a"
	assert result["el26"] == "z"
	assert result["el27"] == "aa"


def test_reindex_is_idempotent(signatures: SignatureStore) -> None:
	component_id = signatures.create_component("Fonds", index_type="capital_char")["signatureComponentId"]
	make_elements(signatures, component_id, ["beta", "Alpha", "gamma", "alpha"])
	signatures.reindex_component(component_id)
	first = indices(signatures, component_id)
	signatures.reindex_component(component_id)
	assert indices(signatures, component_id) == first
	assert signatures.get_component(component_id)["index_count"] == 4


def test_reindex_after_scheme_change(signatures: SignatureStore) -> None:
	component_id = signatures.create_component("Fonds")["signatureComponentId"]
	make_elements(signatures, component_id, ["a", "b"])
	signatures.update_component(component_id, {"index_type": "roman"})
	signatures.reindex_component(component_id)
	assert indices(signatures, component_id) == {"a": "I", "b": "II"}


def test_reindex_missing_component(signatures: SignatureStore) -> None:
	with pytest.raises(NotFoundError):
		signatures.reindex_component(99)


def test_reindex_failure_rolls_back_everything(archive: Archive, signatures: SignatureStore) -> None:
	component_id = signatures.create_component("Fonds", index_type="roman")["signatureComponentId"]
	make_elements(signatures, component_id, ["a", "b", "boom"])
	signatures.update_component(component_id, {"index_type": "dec"})
	before = indices(signatures, component_id)
	archive.conn.execute("""
		CREATE TRIGGER fail_reindex BEFORE UPDATE OF "index" ON signature_elements
		WHEN NEW.name = 'boom' BEGIN SELECT RAISE(ABORT, 'boom'); END
	""")
	
	with pytest.raises(StorageError):
		signatures.reindex_component(component_id)
	
	assert indices(signatures, component_id) == before == {"a": "I", "b": "II", "boom": "III"}


def test_set_parents_across_components(signatures: SignatureStore) -> None:
	fonds = signatures.create_component("Fonds")["signatureComponentId"]
	series = signatures.create_component("Series", index_type="roman")["signatureComponentId"]
	parent = signatures.create_element(fonds, "Estate")["signatureElementId"]
	child = signatures.create_element(series, "Letters", parent_ids=[parent])
	assert child["parentIds"] == [parent]


def test_cycle_is_rejected_without_changes(signatures: SignatureStore) -> None:
	component_id = signatures.create_component("Fonds")["signatureComponentId"]
	a = signatures.create_element(component_id, "a")["signatureElementId"]
	b = signatures.create_element(component_id, "b", parent_ids=[a])["signatureElementId"]
	c = signatures.create_element(component_id, "c", parent_ids=[b])["signatureElementId"]
	
	with pytest.raises(ValidationError) as exc:
		signatures.set_parents(a, [c])
	
	assert str(c) in exc.value.message
	assert exc.value.status == 422
	assert signatures.get_parent_ids(a) == []


def test_failed_parent_replacement_keeps_existing_links(signatures: SignatureStore) -> None:
	component_id = signatures.create_component("Fonds")["signatureComponentId"]
	a = signatures.create_element(component_id, "a")["signatureElementId"]
	b = signatures.create_element(component_id, "b")["signatureElementId"]
	c = signatures.create_element(component_id, "c", parent_ids=[a])["signatureElementId"]
	
	with pytest.raises(ValidationError):
		signatures.set_parents(c, [b, 999])
	
	assert signatures.get_parent_ids(c) == [a]


def test_self_parent_rejected(signatures: SignatureStore) -> None:
	component_id = signatures.create_component("Fonds")["signatureComponentId"]
	a = signatures.create_element(component_id, "a")["signatureElementId"]
	with pytest.raises(ValidationError):
		signatures.set_parents(a, [a])


def test_nonexistent_parent_is_named(signatures: SignatureStore) -> None:
	component_id = signatures.create_component("Fonds")["signatureComponentId"]
	a = signatures.create_element(component_id, "a")["signatureElementId"]
	with pytest.raises(ValidationError) as exc:
		signatures.set_parents(a, [999])
	assert "999" in exc.value.message


def test_diamond_is_not_a_cycle(signatures: SignatureStore) -> None:
	component_id = signatures.create_component("Fonds")["signatureComponentId"]
	root = signatures.create_element(component_id, "root")["signatureElementId"]
	left = signatures.create_element(component_id, "left", parent_ids=[root])["signatureElementId"]
	right = signatures.create_element(component_id, "right", parent_ids=[root])["signatureElementId"]
	bottom = signatures.create_element(component_id, "bottom", parent_ids=[left, right])["signatureElementId"]
	
	assert signatures.get_ancestor_ids(bottom) == {root, left, right}
	assert signatures.element_paths(bottom) == sorted([[root, left, bottom], [root, right, bottom]])


def test_resolve_path_renders_index_and_name(signatures: SignatureStore) -> None:
	fonds = signatures.create_component("Fonds")["signatureComponentId"]
	series = signatures.create_component("Series", index_type="roman")["signatureComponentId"]
	estate = signatures.create_element(fonds, "Estate")["signatureElementId"]
	letters = signatures.create_element(series, "Letters", parent_ids=[estate])["signatureElementId"]
	assert signatures.resolve_path([estate, letters]) == "[1] Estate / [I] Letters"


def test_resolve_path_tolerates_deleted_elements(signatures: SignatureStore) -> None:
	component_id = signatures.create_component("Fonds")["signatureComponentId"]
	first = signatures.create_element(component_id, "First")["signatureElementId"]
	doomed = signatures.create_element(component_id, "Doomed")["signatureElementId"]
	last = signatures.create_element(component_id, "Last", index="")["signatureElementId"]
	signatures.delete_element(doomed)
	
	resolved = signatures.resolve_path([first, doomed, last])
	assert resolved == f"[1] First / [ID:{doomed}?] / Last"


def test_delete_element_detaches_children(signatures: SignatureStore) -> None:
	component_id = signatures.create_component("Fonds")["signatureComponentId"]
	a = signatures.create_element(component_id, "a")["signatureElementId"]
	b = signatures.create_element(component_id, "b")["signatureElementId"]
	child = signatures.create_element(component_id, "child", parent_ids=[a, b])["signatureElementId"]
	
	signatures.delete_element(a)
	
	assert signatures.get_parent_ids(child) == [b]
	assert signatures.get_component(component_id)["index_count"] == 3


def test_deleted_element_index_is_not_reused(signatures: SignatureStore) -> None:
	component_id = signatures.create_component("Fonds")["signatureComponentId"]
	created = make_elements(signatures, component_id, ["A", "B", "C"])
	signatures.delete_element(created["A"])
	
	signatures.create_element(component_id, "D")
	result = indices(signatures, component_id)
	assert result == {"B": "2", "C": "3", "D": "4"}
	assert len(set(result.values())) == len(result)


def test_explicit_index_does_not_advance_counter(signatures: SignatureStore) -> None:
	component_id = signatures.create_component("Fonds")["signatureComponentId"]
	signatures.create_element(component_id, "manual", index="99")
	assert signatures.create_element(component_id, "auto")["index"] == "1"


def test_reindex_resets_counter(signatures: SignatureStore) -> None:
	component_id = signatures.create_component("Fonds")["signatureComponentId"]
	created = make_elements(signatures, component_id, ["A", "B", "C"])
	signatures.delete_element(created["B"])
	signatures.reindex_component(component_id)
	
	assert signatures.create_element(component_id, "D")["index"] == "3"


def test_delete_component_cascades_to_elements(signatures: SignatureStore) -> None:
	component_id = signatures.create_component("Fonds")["signatureComponentId"]
	element_id = signatures.create_element(component_id, "a")["signatureElementId"]
	signatures.delete_component(component_id)
	with pytest.raises(NotFoundError):
		signatures.get_element(element_id)


def test_get_element_populates_component_and_parents(signatures: SignatureStore) -> None:
	component_id = signatures.create_component("Fonds")["signatureComponentId"]
	parent = signatures.create_element(component_id, "parent")["signatureElementId"]
	child = signatures.create_element(component_id, "child", parent_ids=[parent])["signatureElementId"]
	
	element = signatures.get_element(child, populate=["component", "parents", "paths"])
	assert element["component"]["name"] == "Fonds"
	assert [p["name"] for p in element["parents"]] == ["parent"]
	assert element["resolvedPaths"] == ["[1] parent / [2] child"]


def test_search_custom_fields(signatures: SignatureStore) -> None:
	fonds = signatures.create_component("Fonds")["signatureComponentId"]
	series = signatures.create_component("Series")["signatureComponentId"]
	root = signatures.create_element(fonds, "root")["signatureElementId"]
	signatures.create_element(series, "child", parent_ids=[root])
	signatures.create_element(series, "loose")
	parser = SearchRequestParser(ELEMENT_SCHEMA)
	
	def names(query):
		return [e["name"] for e in signatures.search_elements(parser.parse({"query": query})).data]
	
	assert names([{"field": "parentIds", "condition": "ANY_OF", "value": [root]}]) == ["child"]
	assert names([{"field": "hasParents", "condition": "EQ", "value": False}]) == ["loose", "root"]
	assert names([{"field": "componentName", "condition": "FRAGMENT", "value": "seri"}]) == ["child", "loose"]
	assert names([
		{"field": "componentName", "condition": "EQ", "value": "Series"},
		{"field": "hasParents", "condition": "EQ", "value": True, "not": True},
	]) == ["loose"]


def test_component_name_fragment_folds_non_ascii_case(signatures: SignatureStore) -> None:
	component_id = signatures.create_component("Zespół ŻYDOWSKI")["signatureComponentId"]
	signatures.create_element(component_id, "akta")
	parser = SearchRequestParser(ELEMENT_SCHEMA)
	request = parser.parse({"query": [{"field": "componentName", "condition": "FRAGMENT", "value": "żydowski"}]})
	assert [e["name"] for e in signatures.search_elements(request).data] == ["akta"]


def test_search_can_return_every_row(signatures: SignatureStore) -> None:
	component_id = signatures.create_component("Fonds")["signatureComponentId"]
	make_elements(signatures, component_id, [f"e{i}" for i in range(15)])
	response = signatures.search_elements(SearchRequestParser(ELEMENT_SCHEMA).parse({"pageSize": -1}))
	assert len(response.data) == 15
	assert response.total_pages == 1
