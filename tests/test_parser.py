"""Tests for sentinel_index/parser.py"""

import json

import pytest

from sentinel_index.models import IssueType, TableRef
from sentinel_index.parser import (
    DefinitionError,
    parse_connector_file,
    parse_solution_metadata,
    table_from_data_type,
    table_from_query,
)

PATH = "Solutions/Fortinet/Data Connectors/Fortinet.json"


def _parse(doc, path=PATH, solution="Fortinet"):
    return parse_connector_file(json.dumps(doc), path, solution, file_url="https://example/x")


# ---------------------------------------------------------------------------
# Table references
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("value, expected", [
    ("Syslog", "Syslog"),
    ("CommonSecurityLog (Fortinet)", "CommonSecurityLog"),
    ("  Okta_CL ", "Okta_CL"),
    ("{{graphQueriesTableName}}", None),
    ("[variables('tableName')]", None),
    ("", None),
    (42, None),
])
def test_table_from_data_type(value, expected):
    assert table_from_data_type(value) == expected


@pytest.mark.parametrize("query, expected", [
    ("CommonSecurityLog\n| where DeviceVendor == 'Fortinet'", "CommonSecurityLog"),
    ("  Syslog | summarize count()", "Syslog"),
    ("(AWSCloudTrail | take 1)", "AWSCloudTrail"),
    ("let start = ago(1d); Syslog", None),
    ("union isfuzzy=true A_CL, B_CL", None),
    ("| where true", None),
    (None, None),
])
def test_table_from_query(query, expected):
    assert table_from_query(query) == expected


# ---------------------------------------------------------------------------
# parse_connector_file() — classic connector definitions
# ---------------------------------------------------------------------------

FORTINET = {
    "id": "Fortinet",
    "title": "Fortinet via Legacy Agent",
    "descriptionMarkdown": "Stream Fortinet logs.\nUses CEF.",
    "graphQueries": [{"metricName": "Total data received",
                      "baseQuery": "CommonSecurityLog\n| where DeviceVendor == \"Fortinet\""}],
    "dataTypes": [{"name": "CommonSecurityLog (Fortinet)",
                   "lastDataReceivedQuery": "CommonSecurityLog | summarize max(TimeGenerated)"}],
    "connectivityCriterias": [{"type": "IsConnectedQuery",
                               "value": ["Syslog | summarize LastLogReceived = max(TimeGenerated)"]}],
}


def test_classic_connector_fields():
    [connector] = _parse(FORTINET)
    assert connector.connector_id == "Fortinet"
    assert connector.solution == "Fortinet"
    assert connector.title == "Fortinet via Legacy Agent"
    assert connector.description == "Stream Fortinet logs.\nUses CEF."
    assert connector.file_path == PATH
    assert connector.file_url == "https://example/x"
    assert connector.problems == ()


def test_tables_are_deduplicated_with_first_detection_method():
    [connector] = _parse(FORTINET)
    assert connector.tables == (
        TableRef("CommonSecurityLog", "dataTypes"),
        TableRef("Syslog", "connectivityCriterias"),
    )


def test_graph_queries_only():
    [connector] = _parse({
        "id": "Okta", "title": "Okta",
        "graphQueries": [{"baseQuery": "Okta_CL"}],
    })
    assert connector.tables == (TableRef("Okta_CL", "graphQueries"),)


def test_connectivity_criteria_string_value():
    [connector] = _parse({
        "id": "X", "title": "X",
        "connectivityCriteria": [{"type": "IsConnectedQuery", "value": "X_CL | take 1"}],
    })
    assert connector.table_names == ["X_CL"]


def test_title_and_description_without_tables_is_a_connector():
    [connector] = _parse({"id": "Empty", "title": "Empty", "descriptionMarkdown": "No data"})
    assert connector.tables == ()


# ---------------------------------------------------------------------------
# parse_connector_file() — ARM templates
# ---------------------------------------------------------------------------

def test_connector_nested_in_arm_template():
    template = {
        "$schema": "https://schema.management.azure.com/schemas/2019-04-01/deploymentTemplate.json#",
        "resources": [
            {"type": "Microsoft.Web/sites", "properties": {"siteConfig": {}}},
            {"type": "Microsoft.OperationalInsights/workspaces/providers/dataConnectors",
             "properties": {"connectorUiConfig": {
                 "id": "[variables('_uiConfigId1')]",
                 "title": "Contoso (using Azure Functions)",
                 "descriptionMarkdown": "Contoso",
                 "dataTypes": [{"name": "Contoso_CL"}],
             }}},
        ],
    }
    [connector] = _parse(template)
    assert connector.table_names == ["Contoso_CL"]
    assert [p.issue_type for p in connector.problems] == [IssueType.MALFORMED_IDENTIFIER]


def test_arm_data_connector_resource_is_not_a_connector():
    doc = {"resources": [{
        "type": "Microsoft.OperationalInsights/workspaces/providers/dataConnectors",
        "kind": "Office365",
        "properties": {"tenantId": "x", "dataTypes": {"exchange": {"state": "enabled"}}},
    }]}
    assert _parse(doc, path="Solutions/Office 365/Data Connectors/o365.json") == []


def test_several_connectors_in_one_file():
    doc = {"resources": [
        {"properties": {"connectorUiConfig": {"id": "A", "title": "A", "dataTypes": [{"name": "A_CL"}]}}},
        {"properties": {"connectorUiConfig": {"id": "B", "title": "B", "dataTypes": [{"name": "B_CL"}]}}},
    ]}
    assert [c.connector_id for c in _parse(doc)] == ["A", "B"]


# ---------------------------------------------------------------------------
# parse_connector_file() — problems and failures
# ---------------------------------------------------------------------------

def test_missing_id_falls_back_to_file_name():
    [connector] = _parse({"title": "No id", "dataTypes": [{"name": "Syslog"}]})
    assert connector.connector_id == "Fortinet"
    assert connector.table_names == ["Syslog"]
    [problem] = connector.problems
    assert problem.issue_type == IssueType.MISSING_CONNECTOR_ID
    assert problem.file_path == PATH


def test_non_string_id_is_malformed():
    [connector] = _parse({"id": 12, "title": "Numeric", "dataTypes": [{"name": "Syslog"}]})
    assert connector.connector_id == "12"
    assert connector.problems[0].issue_type == IssueType.MALFORMED_IDENTIFIER


def test_unresolvable_data_type_is_reported():
    [connector] = _parse({
        "id": "Templated", "title": "Templated",
        "dataTypes": [{"name": "{{graphQueriesTableName}}"}, {"name": "Syslog"}],
    })
    assert connector.table_names == ["Syslog"]
    [problem] = connector.problems
    assert problem.issue_type == IssueType.INVALID_TABLE_NAME
    assert problem.connector_id == "Templated"


def test_invalid_json_raises_definition_error():
    with pytest.raises(DefinitionError) as info:
        parse_connector_file("{not json", PATH, "Fortinet")
    assert info.value.issue_type == IssueType.MALFORMED_DEFINITION
    assert info.value.path == PATH
    assert PATH in str(info.value)


def test_file_without_connector_yields_nothing():
    host = {"version": "2.0", "extensionBundle": {"id": "Microsoft.Azure.Functions.ExtensionBundle"}}
    assert _parse(host) == []


def test_byte_order_mark_is_tolerated():
    text = "\ufeff" + json.dumps({"id": "Bom", "title": "Bom", "dataTypes": [{"name": "Syslog"}]})
    [connector] = parse_connector_file(text, PATH, "Fortinet")
    assert connector.connector_id == "Bom"


# ---------------------------------------------------------------------------
# parse_solution_metadata()
# ---------------------------------------------------------------------------

def test_solution_metadata_fields():
    metadata = json.dumps({"publisherId": "fortinet", "support": {"tier": "Partner", "name": "Fortinet"}})
    data = json.dumps({"Name": "Fortinet", "Author": "Fortinet - support@fortinet.com", "Version": "3.0.1"})
    info = parse_solution_metadata("Fortinet", metadata, data, url="https://example/sol")
    assert info.name == "Fortinet"
    assert info.publisher == "fortinet"
    assert info.version == "3.0.1"
    assert info.support_tier == "Partner"
    assert info.url == "https://example/sol"


def test_publisher_falls_back_to_author():
    data = json.dumps({"Author": "Contoso - security@contoso.com", "Version": "1.0.0"})
    info = parse_solution_metadata("Contoso", None, data)
    assert info.publisher == "Contoso"
    assert info.support_tier == ""


def test_missing_metadata_files_give_blank_info():
    info = parse_solution_metadata("Bare")
    assert (info.publisher, info.version, info.support_tier) == ("", "", "")


def test_metadata_must_be_an_object():
    with pytest.raises(DefinitionError, match="JSON object") as info:
        parse_solution_metadata("Odd", "[1, 2]", metadata_path="Solutions/Odd/SolutionMetadata.json")
    assert info.value.path == "Solutions/Odd/SolutionMetadata.json"
