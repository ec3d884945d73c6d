import unittest

from protojsons.schema import SchemaFragment, SchemaProperties


class TestSchemaProperties(unittest.TestCase):

    def test_insertion_order_and_replace(self):
        properties = SchemaProperties()
        properties.set('b', SchemaFragment(type='string'))
        properties.set('a', SchemaFragment(type='number'))
        properties.set('b', SchemaFragment(type='boolean'))

        self.assertEqual(properties.keys(), ['b', 'a'])
        self.assertEqual(list(properties), ['b', 'a'])
        self.assertEqual(len(properties), 2)
        self.assertIn('a', properties)
        self.assertNotIn('c', properties)
        self.assertEqual(properties.get('b').type, 'boolean')
        self.assertIsNone(properties.get('c'))


class TestSchemaFragment(unittest.TestCase):

    def test_empty_members_are_omitted(self):
        self.assertEqual(SchemaFragment().to_dict(), {})
        self.assertEqual(SchemaFragment(type='string', title='', description='').to_dict(), {'type': 'string'})

    def test_keyword_names(self):
        schema = SchemaFragment(type='number', minimum=0, exclusive_maximum=10, multiple_of=2)
        self.assertEqual(schema.to_dict(), {'type': 'number', 'minimum': 0, 'exclusiveMaximum': 10, 'multipleOf': 2})

        array = SchemaFragment(type='array', items=SchemaFragment(ref='#/$defs/demo.Item'),
                               min_items=1, unique_items=False)
        self.assertEqual(array.to_dict(), {'type': 'array', 'items': {'$ref': '#/$defs/demo.Item'},
                                           'minItems': 1, 'uniqueItems': False})

    def test_additional_properties(self):
        self.assertEqual(SchemaFragment(type='object', additional_properties=False).to_dict(),
                         {'type': 'object', 'additionalProperties': False})
        self.assertEqual(SchemaFragment(type='object',
                                        additional_properties=SchemaFragment(type='string')).to_dict(),
                         {'type': 'object', 'additionalProperties': {'type': 'string'}})

    def test_combinators(self):
        schema = SchemaFragment(one_of=[SchemaFragment(required=['a'])],
                                not_=SchemaFragment(any_of=[SchemaFragment(required=['a'])]))
        self.assertEqual(schema.to_dict(), {'oneOf': [{'required': ['a']}],
                                            'not': {'anyOf': [{'required': ['a']}]}})


if __name__ == '__main__':
    unittest.main()
