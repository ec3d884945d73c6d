import os
import sys
import tempfile
from os import path, getcwd
import json

current_script_path = os.path.abspath(__file__)
project_root = os.path.dirname(os.path.dirname(current_script_path))
sys.path.append(project_root)

import unittest
from jsoncomparison import NO_DIFF, Compare
from jsonschema import Draft202012Validator

from protojsons import convert_proto_to_json_schema, convert_proto_to_json_schema_string
from protojsons.common import DecodeError, MalformedDescriptorError


def collect_refs(node):
    if isinstance(node, dict):
        for key, value in node.items():
            if key == "$ref":
                yield value
            else:
                yield from collect_refs(value)
    elif isinstance(node, list):
        for item in node:
            yield from collect_refs(item)


def output_path(file_name):
    json_path = path.join(tempfile.gettempdir(), "protojsons", file_name)
    dir = os.path.dirname(json_path)
    if not os.path.exists(dir):
        os.makedirs(dir, exist_ok=True)
    return json_path


class TestProtoToJsonSchema(unittest.TestCase):

    def convert_orders(self):
        cwd = getcwd()
        proto_path = path.join(cwd, "test", "proto", "orders.proto")
        json_path = output_path("orders.json")
        convert_proto_to_json_schema(proto_path, json_path, message_type="shop.Order")
        with open(json_path, "r", encoding="utf-8") as actual_file:
            return json.load(actual_file)

    def test_convert_orders_matches_reference(self):
        cwd = getcwd()
        actual = self.convert_orders()
        with open(path.join(cwd, "test", "proto", "orders-ref.json"), "r", encoding="utf-8") as ref:
            expected = json.load(ref)
        diff = Compare().check(actual, expected)
        assert diff == NO_DIFF

    def test_definition_order(self):
        actual = self.convert_orders()
        self.assertEqual(list(actual["$defs"].keys()), [
            "shop.Order",
            "shop.Order.id", "shop.Order.count", "shop.Order.items", "shop.Order.status",
            "shop.Order.prices", "shop.Order.note", "shop.Order.card_token", "shop.Order.voucher",
            "shop.Order.LineItem", "shop.Order.LineItem.sku", "shop.Order.LineItem.quantity",
            "shop.Voucher", "shop.Voucher.code", "shop.Voucher.allowed",
            "shop.Status",
        ])

    def test_proto3_optional_field_gets_its_own_oneof_clause(self):
        actual = self.convert_orders()
        order = actual["$defs"]["shop.Order"]
        self.assertEqual(len(order["allOf"]), 2)
        self.assertEqual(order["allOf"][1], {
            "oneOf": [
                {"required": ["note"]},
                {"not": {"anyOf": [{"required": ["note"]}]}},
            ]
        })
        self.assertNotIn("note", order["required"])

    def test_every_reference_resolves(self):
        actual = self.convert_orders()
        definitions = actual["$defs"]
        for ref in collect_refs(actual):
            self.assertTrue(ref.startswith("#/$defs/"), ref)
            self.assertIn(ref[len("#/$defs/"):], definitions)

    def test_generated_schema_validates_payloads(self):
        validator = Draft202012Validator(self.convert_orders())
        order = {
            "id": "A1",
            "count": 3,
            "items": [{"sku": "x-1", "quantity": 2}],
            "status": "STATUS_OPEN",
            "prices": {"x-1": 9.5},
            "card_token": "tok",
        }
        self.assertTrue(validator.is_valid(order))
        self.assertTrue(validator.is_valid({k: v for k, v in order.items() if k != "card_token"}))
        self.assertTrue(validator.is_valid(dict(order, note="leave at door")))
        self.assertTrue(validator.is_valid({**{k: v for k, v in order.items() if k != "card_token"},
                                            "voucher": {"code": "V", "allowed": ["STATUS_SHIPPED"]}}))

        self.assertFalse(validator.is_valid(dict(order, voucher={"code": "V", "allowed": []})))
        self.assertFalse(validator.is_valid({k: v for k, v in order.items() if k != "id"}))
        self.assertFalse(validator.is_valid(dict(order, id="lower")))
        self.assertFalse(validator.is_valid(dict(order, items=[])))
        self.assertFalse(validator.is_valid(dict(order, status="STATUS_LOST")))
        self.assertFalse(validator.is_valid(dict(order, extra=True)))
        self.assertFalse(validator.is_valid(dict(order, prices={"x-1": "free"})))

    def test_convert_enum_mapping_types(self):
        cwd = getcwd()
        proto_path = path.join(cwd, "test", "proto", "levels.proto")
        json_path = output_path("levels.json")
        convert_proto_to_json_schema(proto_path, json_path)
        with open(json_path, "r", encoding="utf-8") as actual_file:
            actual = json.load(actual_file)

        self.assertNotIn("$ref", actual)
        definitions = actual["$defs"]
        self.assertEqual(definitions["demo.Level"], {
            "type": "string",
            "title": "Level",
            "description": "Severity levels,\nrendered as custom values.",
            "enum": ["LOW", {"level": "high"}, 42],
        })
        self.assertEqual(definitions["demo.Code"], {"type": "number", "enum": [0, 16]})
        self.assertEqual(definitions["demo.Event"]["required"], ["level", "codes"])
        self.assertEqual(definitions["demo.Event.codes"], {
            "type": "array",
            "items": {"$ref": "#/$defs/demo.Code"},
            "uniqueItems": True,
        })

    def test_invalid_custom_value_writes_nothing(self):
        cwd = getcwd()
        proto_path = path.join(cwd, "test", "proto", "broken_custom_value.proto")
        json_path = output_path("broken_custom_value.json")
        if os.path.exists(json_path):
            os.remove(json_path)

        with self.assertRaises(DecodeError) as cm:
            convert_proto_to_json_schema(proto_path, json_path)
        self.assertEqual(cm.exception.qualified_name, "demo.Broken.BAD")
        self.assertFalse(os.path.exists(json_path))

    def test_convert_well_known_types_and_option_import(self):
        cwd = getcwd()
        proto_path = path.join(cwd, "test", "proto", "events.proto")
        json_path = output_path("events.json")
        with self.assertNoLogs("protojsons.protoloader", level="WARNING"):
            convert_proto_to_json_schema(proto_path, json_path, message_type="Reading")
        with open(json_path, "r", encoding="utf-8") as actual_file:
            actual = json.load(actual_file)

        definitions = actual["$defs"]
        self.assertEqual([name for name in definitions if name.startswith("jsonschema.")], [])
        self.assertEqual(definitions["telemetry.Reading.taken_at"], {"$ref": "#/$defs/google.protobuf.Timestamp"})
        self.assertEqual(definitions["telemetry.Reading.window"],
                         {"$ref": "#/$defs/google.protobuf.Duration", "title": "Window"})
        self.assertEqual(definitions["google.protobuf.Timestamp"]["required"], ["seconds", "nanos"])
        for name in ("google.protobuf.Struct", "google.protobuf.Value", "google.protobuf.ListValue",
                     "google.protobuf.NullValue", "google.protobuf.DoubleValue"):
            self.assertIn(name, definitions)
        self.assertNotIn("google.protobuf.Int32Value", definitions)
        self.assertNotIn("google.protobuf.Any", definitions)
        for ref in collect_refs(actual):
            self.assertIn(ref[len("#/$defs/"):], definitions)

        validator = Draft202012Validator(actual)
        self.assertTrue(validator.is_valid({
            "taken_at": {"seconds": 1700000000, "nanos": 0},
            "window": {"seconds": 60, "nanos": 0},
            "attributes": {"fields": {"site": {"string_value": "north"}, "count": {"number_value": 3}}},
            "value": {"value": 21.5},
        }))
        self.assertFalse(validator.is_valid({
            "taken_at": {"seconds": 1700000000},
            "window": {"seconds": 60, "nanos": 0},
            "attributes": {"fields": {}},
            "value": {"value": 21.5},
        }))

    def test_convert_with_imports(self):
        cwd = getcwd()
        proto_path = path.join(cwd, "test", "proto", "imports", "app", "invoice.proto")
        proto_root = path.join(cwd, "test", "proto", "imports", "lib")
        json_path = output_path("invoice.json")
        convert_proto_to_json_schema(proto_path, json_path, message_type="Invoice", proto_root=proto_root)
        with open(json_path, "r", encoding="utf-8") as actual_file:
            actual = json.load(actual_file)

        self.assertEqual(actual["$ref"], "#/$defs/billing.Invoice")
        self.assertEqual(actual["title"], "Invoice")
        definitions = actual["$defs"]
        self.assertEqual(definitions["common.Money"]["description"], "An amount of money in a currency.")
        self.assertEqual(definitions["billing.Invoice.total"], {"$ref": "#/$defs/common.Money"})
        self.assertEqual(definitions["billing.Invoice.taxes"], {
            "type": "object",
            "additionalProperties": {"$ref": "#/$defs/common.Money"},
        })
        self.assertEqual(definitions["billing.Invoice.previous"], {"$ref": "#/$defs/billing.Invoice"})
        self.assertNotIn("common.ExchangeRate", definitions)
        self.assertLess(list(definitions).index("common.Money"), list(definitions).index("billing.Invoice"))


class TestProtoToJsonSchemaString(unittest.TestCase):

    def test_convert_string(self):
        result = json.loads(convert_proto_to_json_schema_string('''
syntax = "proto3";
package demo;
message Ping {
  bool ok = 1;
  bytes payload = 2;
}
''', message_type="Ping"))
        self.assertEqual(result["$schema"], "https://json-schema.org/draft/2020-12/schema")
        self.assertEqual(result["$ref"], "#/$defs/demo.Ping")
        self.assertEqual(result["$defs"]["demo.Ping.ok"], {"type": "boolean"})
        self.assertEqual(result["$defs"]["demo.Ping.payload"], {"type": "string"})

    def test_unknown_and_ambiguous_message_type(self):
        source = '''
syntax = "proto3";
message A { message Item {} }
message B { message Item {} }
'''
        with self.assertRaises(MalformedDescriptorError):
            convert_proto_to_json_schema_string(source, message_type="Missing")
        with self.assertRaises(MalformedDescriptorError):
            convert_proto_to_json_schema_string(source, message_type="Item")
        result = json.loads(convert_proto_to_json_schema_string(source, message_type="A.Item"))
        self.assertEqual(result["$ref"], "#/$defs/A.Item")

    def test_option_import_contributes_no_definitions(self):
        source = '''
syntax = "proto3";
package demo;
import "jsonschema.proto";
message Tag {
  option (jsonschema.message).object.additional_properties = false;
  string name = 1 [(jsonschema.field).string.max_length = 8];
}
'''
        bundled = path.join(project_root, "protojsons", "proto")
        for proto_root in (None, [bundled]):
            result = json.loads(convert_proto_to_json_schema_string(source, proto_root=proto_root))
            self.assertEqual(list(result["$defs"]), ["demo.Tag", "demo.Tag.name"])
            self.assertFalse(result["$defs"]["demo.Tag"]["additionalProperties"])
            self.assertEqual(result["$defs"]["demo.Tag.name"], {"type": "string", "maxLength": 8})

    def test_empty_message(self):
        result = json.loads(convert_proto_to_json_schema_string('message Empty {}'))
        self.assertEqual(result["$defs"], {"Empty": {"type": "object", "title": "Empty"}})


if __name__ == '__main__':
    unittest.main()
