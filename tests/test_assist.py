import pytest

import finmodel.assist as assist


def test_extract_json_object_from_fenced_reply() -> None:
    text = 'Here is the model:\n```json\n{"recommendedTables": []}\n```\nAnything else?'

    assert assist.extract_json_object(text) == {"recommendedTables": []}


@pytest.mark.parametrize("text", [None, "", "no json here", "[1, 2, 3]", "{broken"])
def test_extract_json_object_returns_none(text) -> None:
    assert assist.extract_json_object(text) is None


def test_parse_proposal_json_normalizes_loose_output() -> None:
    """Plain-string fields become string fields and defaults fill the gaps."""
    text = """```
    {
      "recommendedTables": [
        {"name": "Orders", "fields": ["id", {"name": "total", "type": "number", "primaryKey": false}]},
        {"fields": "not a list"}
      ],
      "relationships": ["junk", {"from": "Orders.customer_id", "to": "Customers.id"}],
      "notes": "Check VAT handling"
    }
    ```"""

    model = assist.parse_proposal_json(text)

    assert model.business_type == "Unknown Business"
    assert model.table_names() == ("Orders", "Table")
    orders = model.table("Orders")
    assert [(f.name, f.type) for f in orders.fields] == [("id", "string"), ("total", "number")]
    assert orders.fields[1].primary_key is False
    assert model.table("Table").fields == ()
    assert len(model.relationships) == 1
    assert model.relationships[0].source == "Orders.customer_id"
    assert model.notes == ("Check VAT handling",)


def test_parse_proposal_json_appends_notes_to_existing_meta() -> None:
    text = '{"businessType": "Gym", "recommendedTables": [], "meta": {"notes": ["draft"]}, "notes": "v2"}'

    model = assist.parse_proposal_json(text)

    assert model.business_type == "Gym"
    assert model.notes == ("draft", "v2")


@pytest.mark.parametrize("text", [None, "Sorry, I cannot help with that.", '{"recommendedTables": [{"name": "A", "fields": [{"name": "x", "nullable": "maybe"}]}]}'])
def test_parse_proposal_json_falls_back_to_empty_proposal(text) -> None:
    """Missing or invalid output never raises; it yields an empty proposal."""
    model = assist.parse_proposal_json(text)

    assert model.business_type == "Unknown Business"
    assert model.tables == ()
    assert model.relationships == ()
    assert model.notes == ()


def test_parse_classification_hint() -> None:
    hint = assist.parse_classification_hint(
        '{"fileType": "deals", "mapping": {"Kunde": "client_name", "Leer": null}, "confidence": 1.7}'
    )

    assert hint.file_type == "deals"
    assert hint.mapping == {"Kunde": "client_name"}
    assert hint.confidence == 1.0


def test_parse_classification_hint_fallback() -> None:
    hint = assist.parse_classification_hint("nothing useful")

    assert hint.file_type == "unknown"
    assert hint.mapping == {}
    assert hint.confidence == 0.0


def test_parse_dataset_classification() -> None:
    result = assist.parse_dataset_classification(
        '{"detectedTable": "payments", "confidence": "0.8", "suggestedLinks": [{"to": "bookings"}], "notes": null}'
    )

    assert result.detected_table == "payments"
    assert result.confidence == pytest.approx(0.8)
    assert result.suggested_links == [{"to": "bookings"}]
    assert result.notes == ""

    fallback = assist.parse_dataset_classification("{}")
    assert fallback.detected_table == "unknown"
    assert fallback.confidence == 0.0
