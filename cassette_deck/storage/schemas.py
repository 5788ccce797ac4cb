"""JSON Schemas for the JSON members of a .cass archive.

WHY: A cassette written by another build, or damaged on disk, must be
rejected with a clear error instead of surfacing as a KeyError deep in
the editing session.

RULES:
- Keys are camelCase, matching CassetteMetadata.to_dict() and
  TranscriptSegment.to_dict()
- Unknown extra keys are allowed (forward compatibility)
"""

METADATA_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["id", "title", "createdAt", "updatedAt", "duration"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "title": {"type": "string"},
        "createdAt": {"type": "string"},
        "updatedAt": {"type": "string"},
        "duration": {"type": "number", "minimum": 0},
        "summary": {"type": "string"},
        "thumbnailPath": {"type": "string"},
    },
}

_WORD_SCHEMA = {
    "type": "object",
    "required": ["word", "startTime", "endTime", "snippetId"],
    "properties": {
        "word": {"type": "string"},
        "startTime": {"type": "number"},
        "endTime": {"type": "number"},
        "snippetId": {"type": "string"},
        "confidence": {"type": "number", "minimum": 0, "maximum": 1},
    },
}

TRANSCRIPT_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "array",
    "items": {
        "type": "object",
        "required": ["id", "text", "words", "startTime", "endTime"],
        "properties": {
            "id": {"type": "string"},
            "text": {"type": "string"},
            "words": {"type": "array", "items": _WORD_SCHEMA},
            "startTime": {"type": "number"},
            "endTime": {"type": "number"},
        },
    },
}
