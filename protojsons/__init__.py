import importlib

mod = "protojsons"
class LazyLoader:
    """
    Lazy loader for the protojsons functions to keep the lark grammar out of
    the import path until it is needed.
    """
    def __init__(self, mappings):
        self._modules = {}
        self._mappings = mappings

    def _load_module(self, module_name):
        if module_name not in self._modules:
            self._modules[module_name] = importlib.import_module(module_name)
        return self._modules[module_name]

    def __getattr__(self, item):
        if item in self._mappings:
            module_name, func_name = self._mappings[item]
            module = self._load_module(module_name)
            return getattr(module, func_name)
        else:
            return self._load_module(f"{mod}.{item}")

# Define the functions and their corresponding module paths
_mappings = {
    "convert_proto_to_json_schema": (f"{mod}.prototojsons", "convert_proto_to_json_schema"),
    "convert_proto_to_json_schema_string": (f"{mod}.prototojsons", "convert_proto_to_json_schema_string"),
    "ProtoToJsonSchemaConverter": (f"{mod}.prototojsons", "ProtoToJsonSchemaConverter"),
    "load_descriptor_set": (f"{mod}.protoloader", "load_descriptor_set"),
    "DecodeError": (f"{mod}.common", "DecodeError"),
    "MalformedDescriptorError": (f"{mod}.common", "MalformedDescriptorError"),
    "ProtoParseError": (f"{mod}.common", "ProtoParseError"),
}

_lazy_loader = LazyLoader(_mappings)

def __getattr__(name):
    return getattr(_lazy_loader, name)
