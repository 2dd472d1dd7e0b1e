import finmodel.edits as edits
from finmodel.proposal import FieldDef, FieldReference, FileMapping, ModelProposal, RelationshipDef


def _model() -> ModelProposal:
    return ModelProposal.from_dict(
        {
            "recommendedTables": [
                {
                    "name": "Customers",
                    "fields": [{"name": "id", "primaryKey": True}, "email"],
                    "fileMapping": {"fileName": "crm.csv", "columnMap": {"Kunden-ID": "id", "Mail": "email"}},
                },
                {
                    "name": "Orders",
                    "fields": [
                        "id",
                        {"name": "customer_id", "references": {"table": "Customers", "field": "id"}},
                    ],
                },
            ],
            "relationships": [
                {"from": "Orders.customer_id", "to": "Customers.id"},
                {"from": "Orders.id", "to": "Invoices.order_id"},
            ],
        }
    )


def test_rename_field_keeps_references_consistent() -> None:
    """Renaming a key updates relationships, FK references and the column map."""
    model = _model()

    renamed = edits.rename_field(model, "Customers", "id", "customer_id")

    assert renamed.table("Customers").field_names() == ("customer_id", "email")
    assert renamed.relationships[0].target == "Customers.customer_id"
    assert renamed.relationships[1].source == "Orders.id"
    fk = renamed.table("Orders").fields[1]
    assert fk.references == FieldReference("Customers", "customer_id")
    assert renamed.table("Customers").file_mapping.column_map == {
        "Kunden-ID": "customer_id",
        "Mail": "email",
    }


def test_rename_field_does_not_mutate_input() -> None:
    model = _model()
    before = model.to_dict()

    edits.rename_field(model, "Customers", "id", "customer_id")

    assert model.to_dict() == before


def test_rename_field_noops() -> None:
    model = _model()

    assert edits.rename_field(model, "Customers", "id", "") is model
    assert edits.rename_field(model, "Customers", "id", "id") is model


def test_rename_field_to_existing_name_is_ignored() -> None:
    """Renaming onto another field of the table would leave duplicate names."""
    model = _model()

    assert edits.rename_field(model, "Orders", "id", "customer_id") is model
    assert model.table("Orders").field_names() == ("id", "customer_id")


def test_rename_field_only_touches_the_named_table() -> None:
    model = _model()

    renamed = edits.rename_field(model, "Orders", "id", "order_id")

    assert renamed.table("Customers").field_names() == ("id", "email")
    assert renamed.relationships[0].target == "Customers.id"
    assert renamed.relationships[1].source == "Orders.order_id"


def test_add_field_skips_existing_names_and_unknown_tables() -> None:
    model = _model()

    added = edits.add_field(model, "Orders", FieldDef(name="total", type="number"))
    assert added.table("Orders").field_names() == ("id", "customer_id", "total")

    assert edits.add_field(model, "Orders", FieldDef(name="id")) is model
    assert edits.add_field(model, "Nope", FieldDef(name="x")) is model


def test_remove_field_drops_dependent_relationships() -> None:
    model = _model()

    removed = edits.remove_field(model, "Customers", "id")

    assert removed.table("Customers").field_names() == ("email",)
    assert [r.source for r in removed.relationships] == ["Orders.id"]
    assert len(model.relationships) == 2


def test_add_relationship_deduplicates() -> None:
    model = _model()
    rel = RelationshipDef(source="Orders.customer_id", target="Customers.id", type="many-to-one")

    assert edits.add_relationship(model, rel) is model

    new = RelationshipDef(source="Invoices.customer_id", target="Customers.id")
    added = edits.add_relationship(model, new)
    assert added.relationships[-1] == new
    assert len(added.relationships) == 3


def test_remove_relationship_matchers() -> None:
    model = _model()

    by_from = edits.remove_relationship(model, {"from": "Orders.id"})
    assert [r.source for r in by_from.relationships] == ["Orders.customer_id"]

    by_rel = edits.remove_relationship(
        model, RelationshipDef(source="Orders.customer_id", target="Customers.id")
    )
    assert [r.source for r in by_rel.relationships] == ["Orders.id"]

    by_callable = edits.remove_relationship(model, lambda r: r.target.startswith("Customers"))
    assert len(by_callable.relationships) == 1


def test_remove_relationship_partial_mapping_must_match_every_key() -> None:
    model = _model()

    kept = edits.remove_relationship(model, {"from": "Orders.id", "to": "Customers.id"})
    assert kept.relationships == model.relationships

    assert edits.remove_relationship(model, {}).relationships == model.relationships


def test_upsert_file_mapping_merges_column_maps() -> None:
    model = _model()

    merged = edits.upsert_file_mapping(
        model, "Customers", {"columnMap": {"Mail": "contact_email", "Ort": "city"}}
    )

    mapping = merged.table("Customers").file_mapping
    assert mapping.file_name == "crm.csv"
    assert mapping.column_map == {"Kunden-ID": "id", "Mail": "contact_email", "Ort": "city"}


def test_upsert_file_mapping_creates_mapping() -> None:
    model = _model()

    merged = edits.upsert_file_mapping(
        model, "Orders", FileMapping(file_name="orders.xlsx", column_map={"Nr": "id"})
    )

    mapping = merged.table("Orders").file_mapping
    assert mapping.file_name == "orders.xlsx"
    assert dict(mapping.column_map) == {"Nr": "id"}
