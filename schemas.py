"""JSON Schemas for what goes over the wire to and from the registry."""

# inSeconds is a GraphQL Int (signed 32-bit)
GRAPHQL_INT_MAX = 2147483647

EDGE_SERVER_INFO_SCHEMA = {
    "type": "object",
    "required": ["bootId", "executableSchemaId", "graphVariant"],
    "additionalProperties": False,
    "properties": {
        "bootId": {
            "type": "string",
            "minLength": 1
        },
        "executableSchemaId": {
            "type": "string",
            "pattern": "^[0-9a-f]{64}$"
        },
        "graphVariant": {
            "type": "string",
            "minLength": 1
        },
        "serverId": {
            "type": "string",
            "minLength": 1
        },
        "userVersion": {
            "type": "string",
            "minLength": 1
        },
        "runtimeVersion": {
            "type": "string",
            "minLength": 1
        },
        "libraryVersion": {
            "type": "string",
            "minLength": 1
        },
        "platform": {
            "type": "string",
            "minLength": 1
        },
    }
}


report_server_info_response = {
    "type": "object",
    "required": ["__typename", "inSeconds", "withExecutableSchema"],
    "properties": {
        "__typename": {
            "type": "string",
            "const": "ReportServerInfoResponse"
        },
        "inSeconds": {
            "type": "integer",
            "minimum": 0,
            "maximum": GRAPHQL_INT_MAX
        },
        "withExecutableSchema": {
            "type": "boolean"
        },
    }
}


report_server_info_error = {
    "type": "object",
    "required": ["__typename", "code", "message"],
    "properties": {
        "__typename": {
            "type": "string",
            "const": "ReportServerInfoError"
        },
        "code": {
            "type": "string",
            "minLength": 1
        },
        "message": {
            "type": "string"
        },
        "inSeconds": {
            "type": "integer",
            "minimum": 0,
            "maximum": GRAPHQL_INT_MAX
        },
        "withExecutableSchema": {
            "type": "boolean"
        },
    }
}


REPORT_RESULT_SCHEMA = {
    "oneOf": [report_server_info_response, report_server_info_error]
}
