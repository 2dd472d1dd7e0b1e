import pytest

import finmodel.linking as linking
from finmodel.proposal import FieldDef, ModelProposal, RelationshipDef, TableDef


def test_payments_sheet_on_empty_model() -> None:
    """A payments sheet pulls in bookings and customers and suggests two links."""
    result = linking.link_parsed_sheet_to_model(ModelProposal(), ["Zahlung", "Betrag"], "Payments")

    model = result.updated_model
    assert result.target_table == "payments"
    assert model.table_names() == ("payments", "bookings", "customers")
    assert model.table("payments").field_names() == ("Zahlung", "Betrag")
    assert model.table("bookings").field_names() == ("booking_id",)
    assert model.table("customers").field_names() == ("customer_id",)
    assert result.suggested_relationships == (
        RelationshipDef(source="payments.booking_id", target="bookings.booking_id"),
        RelationshipDef(source="payments.customer_id", target="customers.customer_id"),
    )
    assert model.relationships == result.suggested_relationships
    assert model.notes == ('Linked sheet "Payments" as payments',)


def test_linking_twice_does_not_duplicate() -> None:
    first = linking.link_parsed_sheet_to_model(ModelProposal(), ["Booking ID", "Kunde", "Status"])
    second = linking.link_parsed_sheet_to_model(
        first.updated_model, ["Booking ID", "Kunde", "Status"]
    )

    assert second.target_table == "bookings"
    assert len(second.suggested_relationships) == 2
    assert second.updated_model.relationships == first.updated_model.relationships
    assert second.updated_model.table("bookings").field_names() == ("Booking ID", "Kunde", "Status")
    assert second.updated_model.notes == ("Linked data as bookings", "Linked data as bookings")


def test_sheet_name_matches_existing_table() -> None:
    """A plural sheet name finds the table and only adds the missing fields."""
    model = ModelProposal(
        tables=(TableDef(name="Customers", fields=(FieldDef(name="Email", type="email"),)),)
    )

    result = linking.link_parsed_sheet_to_model(model, ["Email", "Name", "Email"], "Customers")

    customers = result.updated_model.table("Customers")
    assert result.target_table == "Customers"
    assert customers.field_names() == ("Email", "Name")
    assert customers.fields[0].type == "email"
    assert result.suggested_relationships == ()
    assert model.table("Customers").field_names() == ("Email",)


@pytest.mark.parametrize(
    "columns, expected",
    [
        (["Zahlungsdatum", "Betrag"], "payments"),
        (["Buchung", "Mitglied"], "bookings"),
        (["Datum", "Kursname", "Trainer"], "sessions"),
        (["Email", "Beitritt"], "customers"),
        (["Coach"], "sessions"),
        (["Foo", "Bar"], "bookings"),
    ],
)
def test_detect_target_table(columns, expected) -> None:
    assert linking.detect_target_table(columns) == expected


def test_existing_notes_are_kept() -> None:
    model = ModelProposal(meta={"notes": ["drafted"], "source": "upload"})

    result = linking.link_parsed_sheet_to_model(model, ["Coach"])

    assert result.updated_model.notes == ("drafted", "Linked data as sessions")
    assert result.updated_model.meta["source"] == "upload"
    assert model.notes == ("drafted",)


def _tables_model() -> ModelProposal:
    return ModelProposal(
        tables=(TableDef(name="Customers"), TableDef(name="Payments"), TableDef(name="Coaches"))
    )


def _datasets() -> list:
    return [
        linking.LinkedDataset(id="d1", dataset_name="kunden.xlsx", detected_table="customers"),
        {
            "id": "d2",
            "dataset_name": "stripe_payments.csv",
            "source_meta": {"aiClassification": {"detectedTable": "payments", "confidence": 0.92}},
        },
        linking.LinkedDataset(id="d3", dataset_name="customers_backup.csv"),
    ]


def test_auto_link_first_matching_dataset_wins() -> None:
    linked = linking.auto_link_datasets_to_model(_tables_model(), _datasets())

    customers = linked.table("Customers")
    assert customers.is_linked is True
    assert customers.linked_dataset_id == "d1"
    assert customers.linked_meta.detected_table == "customers"
    assert customers.linked_meta.confidence == "n/a"

    payments = linked.table("Payments")
    assert payments.linked_dataset_id == "d2"
    assert payments.linked_meta.dataset_name == "stripe_payments.csv"
    assert payments.linked_meta.confidence == pytest.approx(0.92)

    coaches = linked.table("Coaches")
    assert coaches.is_linked is False
    assert coaches.linked_dataset_id is None
    assert coaches.linked_meta is None


def test_auto_link_is_idempotent() -> None:
    once = linking.auto_link_datasets_to_model(_tables_model(), _datasets())
    twice = linking.auto_link_datasets_to_model(once, _datasets())

    assert once == twice


def test_auto_link_without_datasets_marks_everything_unlinked() -> None:
    linked = linking.auto_link_datasets_to_model(_tables_model(), [])

    assert [t.is_linked for t in linked.tables] == [False, False, False]


def test_linked_dataset_from_sparse_record() -> None:
    ds = linking.LinkedDataset.from_record({"id": 7, "source_meta": "broken"})

    assert ds.id == "7"
    assert ds.detected == ""
    assert ds.ai_confidence is None
