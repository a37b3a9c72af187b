"""JSON schema definitions for exported scans and structure registries.

Defines the structure of exported JSON files.
"""

# Schema versions
SCAN_VERSION = "1.0.0"
REGISTRY_VERSION = "1.0.0"

SCAN_SCHEMA = {
    'version': SCAN_VERSION,
    'description': 'Struct Fingerprinter scan result',

    'metadata': {
        'type': 'object',
        'properties': {
            'timestamp': {'type': 'string', 'format': 'date-time'},
            'base_address': {'type': 'string', 'description': 'Window start (hex)'},
            'length': {'type': 'integer', 'description': 'Window size in bytes'},
            'field_count': {'type': 'integer'},
            'tool_version': {'type': 'string'},
        },
    },

    'field': {
        'type': 'object',
        'properties': {
            'offset': {'type': 'integer'},
            'size': {'type': 'integer'},
            'type': {'type': 'string', 'description': 'Field type display name'},
            'label': {'type': 'string', 'description': 'Type with array length, e.g. Float[5]'},
            'value': {'type': 'string'},
            'name': {'type': 'string', 'description': 'Proposed field name'},
            'confidence': {'type': 'integer', 'minimum': 0, 'maximum': 100},
            'pointer_target': {'type': ['integer', 'null']},
            'raw_text_length': {'type': ['integer', 'null']},
        },
    },

    'summary': {
        'type': 'object',
        'description': 'Field count per type',
        'additionalProperties': {'type': 'integer'},
    },

    'hex_dump': {'type': 'string', 'description': 'Optional dump of the scanned bytes'},
}

REGISTRY_SCHEMA = {
    'version': REGISTRY_VERSION,
    'description': 'Structures created from scan results',

    'structure': {
        'type': 'object',
        'properties': {
            'created': {'type': 'string', 'format': 'date-time'},
            'elements': {
                'type': 'array',
                'items': {
                    'type': 'object',
                    'properties': {
                        'offset': {'type': 'integer'},
                        'type': {'type': 'string'},
                        'name': {'type': 'string'},
                        'byte_size': {'type': ['integer', 'null']},
                    },
                },
            },
        },
    },
}
