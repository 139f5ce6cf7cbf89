"""Tests for archive documents: hierarchy, signatures, tags and visibility."""

from typing import Any

import pytest

from jezarch.core import Archive
from jezarch.documents import DOCUMENT_SCHEMA, DocumentStore, document_visibility
from jezarch.errors import AuthorizationError, NotFoundError, ValidationError
from jezarch.query import SearchRequestParser
from jezarch.signatures import SignatureStore
from jezarch.tags import TagStore
from jezarch.users import User


@pytest.fixture
def documents(archive: Archive) -> DocumentStore:
	return DocumentStore(archive)


@pytest.fixture
def tags(archive: Archive) -> TagStore:
	return TagStore(archive)


def make_document(store: DocumentStore, owner: User, **overrides: Any) -> int:
	data = {
		"type": "document",
		"title": "Untitled",
		"creator": "Unknown",
		"creationDate": "1920",
	}
	data.update(overrides)
	return store.create(data, owner)


def titles(store: DocumentStore, query, user: User, is_admin: bool = False, **visibility: Any):
	request = SearchRequestParser(DOCUMENT_SCHEMA, is_admin=is_admin).parse({
		"query": query, "sort": [{"field": "title"}]
	})
	return [d["title"] for d in store.search(request, document_visibility(user, **visibility)).data]


def test_create_returns_presented_document(documents: DocumentStore, tags: TagStore,
										signatures: SignatureStore, employee: User) -> None:
	component_id = signatures.create_component("Fonds")["signatureComponentId"]
	element_id = signatures.create_element(component_id, "Estate")["signatureElementId"]
	tag_id = tags.create("letters")["tagId"]
	
	document_id = make_document(
		documents, employee, title="Letter", tagIds=[tag_id],
		topographicSignatureElementIds=[[element_id]], isDigitized=True
	)
	document = documents.get(document_id)
	
	assert document["active"] is True
	assert document["isDigitized"] is True
	assert document["ownerUserId"] == employee.user_id
	assert document["topographicSignatureElementIds"] == [[element_id]]
	assert document["descriptiveSignatureElementIds"] == []
	assert document["resolvedTopographicSignatures"] == ["[1] Estate"]
	assert [t["name"] for t in document["tags"]] == ["letters"]


@pytest.mark.parametrize("missing", ["title", "creator", "creationDate", "type"])
def test_create_requires_core_fields(documents: DocumentStore, employee: User, missing: str) -> None:
	data = {"type": "unit", "title": "t", "creator": "c", "creationDate": "1900"}
	del data[missing]
	with pytest.raises(ValidationError) as exc:
		documents.create(data, employee)
	assert exc.value.field == missing


def test_unknown_signature_element_is_rejected(documents: DocumentStore, employee: User) -> None:
	with pytest.raises(ValidationError) as exc:
		make_document(documents, employee, descriptiveSignatureElementIds=[[404]])
	assert exc.value.status == 422
	assert "404" in exc.value.message


def test_unknown_tag_rolls_back_create(archive: Archive, documents: DocumentStore, employee: User) -> None:
	with pytest.raises(ValidationError):
		make_document(documents, employee, tagIds=[77])
	assert archive.conn.execute("SELECT COUNT(*) FROM archive_documents").fetchone()[0] == 0


def test_parent_must_be_a_unit(documents: DocumentStore, employee: User) -> None:
	plain = make_document(documents, employee)
	with pytest.raises(ValidationError) as exc:
		make_document(documents, employee, parentUnitArchiveDocumentId=plain)
	assert exc.value.field == "parentUnitArchiveDocumentId"
	
	unit = make_document(documents, employee, type="unit")
	child = make_document(documents, employee, parentUnitArchiveDocumentId=unit)
	assert documents.get(child)["parentUnitArchiveDocumentId"] == unit


def test_unit_cannot_move_under_its_descendant(documents: DocumentStore, employee: User) -> None:
	outer = make_document(documents, employee, type="unit", title="outer")
	inner = make_document(documents, employee, type="unit", title="inner", parentUnitArchiveDocumentId=outer)
	
	with pytest.raises(ValidationError):
		documents.update(outer, {"parentUnitArchiveDocumentId": inner}, employee)
	with pytest.raises(ValidationError):
		documents.update(outer, {"parentUnitArchiveDocumentId": outer}, employee)


def test_unit_with_children_cannot_become_document(documents: DocumentStore, employee: User) -> None:
	unit = make_document(documents, employee, type="unit")
	make_document(documents, employee, parentUnitArchiveDocumentId=unit)
	with pytest.raises(ValidationError) as exc:
		documents.update(unit, {"type": "document"}, employee)
	assert exc.value.field == "type"


def test_only_owner_or_admin_may_edit(documents: DocumentStore, employee: User,
									other_employee: User, admin: User) -> None:
	document_id = make_document(documents, employee)
	with pytest.raises(AuthorizationError):
		documents.update(document_id, {"title": "Hijacked"}, other_employee)
	with pytest.raises(AuthorizationError):
		documents.disable(document_id, other_employee)
	
	assert documents.update(document_id, {"title": "Renamed"}, admin)["title"] == "Renamed"


def test_update_replaces_tags(documents: DocumentStore, tags: TagStore, employee: User) -> None:
	first = tags.create("first")["tagId"]
	second = tags.create("second")["tagId"]
	document_id = make_document(documents, employee, tagIds=[first])
	
	updated = documents.update(document_id, {"tagIds": [second]}, employee)
	assert [t["tagId"] for t in updated["tags"]] == [second]


def test_disabled_documents_are_hidden(documents: DocumentStore, employee: User, admin: User) -> None:
	keep = make_document(documents, employee, title="keep")
	drop = make_document(documents, employee, title="drop")
	documents.disable(drop, employee)
	
	assert titles(documents, [], employee) == ["keep"]
	with pytest.raises(NotFoundError):
		documents.get(drop, document_visibility(employee))
	assert documents.get(drop)["active"] is False
	assert documents.get(keep, document_visibility(employee))["title"] == "keep"
	
	inactive = titles(
		documents, [{"field": "active", "condition": "EQ", "value": False}],
		admin, is_admin=True, include_inactive=True
	)
	assert inactive == ["drop"]


def test_disable_twice_fails(documents: DocumentStore, employee: User) -> None:
	document_id = make_document(documents, employee)
	documents.disable(document_id, employee)
	with pytest.raises(ValidationError):
		documents.disable(document_id, employee)


def test_active_filter_is_admin_only() -> None:
	parser = SearchRequestParser(DOCUMENT_SCHEMA)
	with pytest.raises(ValidationError) as exc:
		parser.parse({"query": [{"field": "active", "condition": "EQ", "value": False}]})
	assert exc.value.field == "active"


def test_employee_allowed_tags_restrict_visibility(documents: DocumentStore, tags: TagStore,
												employee: User) -> None:
	public = tags.create("public")["tagId"]
	secret = tags.create("secret")["tagId"]
	make_document(documents, employee, title="open", tagIds=[public])
	make_document(documents, employee, title="closed", tagIds=[secret])
	make_document(documents, employee, title="untagged")
	
	assert titles(documents, [], employee) == ["closed", "open", "untagged"]
	assert titles(documents, [], employee, allowed_tag_ids=[public]) == ["open"]
	# A client predicate cannot widen the visibility clause
	assert titles(
		documents, [{"field": "tags", "condition": "ANY_OF", "value": [secret]}],
		employee, allowed_tag_ids=[public]
	) == []


def test_signature_prefix_matches_whole_ids(documents: DocumentStore, signatures: SignatureStore,
											employee: User) -> None:
	component_id = signatures.create_component("Fonds")["signatureComponentId"]
	ids = [signatures.create_element(component_id, f"e{i}")["signatureElementId"] for i in range(1, 11)]
	one, five, ten = ids[0], ids[4], ids[9]
	
	make_document(documents, employee, title="under one", topographicSignatureElementIds=[[one, five]])
	make_document(documents, employee, title="exactly one", topographicSignatureElementIds=[[one]])
	make_document(documents, employee, title="under ten", topographicSignatureElementIds=[[ten, five]])
	make_document(documents, employee, title="descriptive", descriptiveSignatureElementIds=[[one]])
	
	def prefix(condition, value):
		return titles(
			documents,
			[{"field": "topographicSignaturePrefix", "condition": condition, "value": value}],
			employee
		)
	
	assert prefix("ANY_OF", [[one]]) == ["exactly one", "under one"]
	assert prefix("EQ", [one]) == ["exactly one"]
	assert prefix("ANY_OF", [[one, five], [ten]]) == ["under one", "under ten"]


def test_batch_tag_applies_to_every_match(documents: DocumentStore, tags: TagStore, employee: User) -> None:
	tag_id = tags.create("batch")["tagId"]
	for i in range(15):
		make_document(documents, employee, title=f"letter {i}", creator="Ann" if i % 2 else "Bob")
	request = SearchRequestParser(DOCUMENT_SCHEMA).parse({
		"query": [{"field": "creator", "condition": "EQ", "value": "Ann"}], "pageSize": 5
	})
	
	assert documents.batch_tag(request, [tag_id], "add", document_visibility(employee)) == 7
	tagged = titles(documents, [{"field": "tags", "condition": "ANY_OF", "value": [tag_id]}], employee)
	assert len(tagged) == 7
	
	assert documents.batch_tag(request, [tag_id], "remove", document_visibility(employee)) == 7
	assert titles(documents, [{"field": "tags", "condition": "ANY_OF", "value": [tag_id]}], employee) == []


def test_batch_tag_validates_input(documents: DocumentStore) -> None:
	request = SearchRequestParser(DOCUMENT_SCHEMA).parse({})
	with pytest.raises(ValidationError):
		documents.batch_tag(request, [1], "toggle")
	with pytest.raises(ValidationError):
		documents.batch_tag(request, [], "add")
	with pytest.raises(ValidationError) as exc:
		documents.batch_tag(request, [55], "add")
	assert exc.value.status == 422
