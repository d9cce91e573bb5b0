"""Undo the two shape mistakes models make most often.

1. Schema echo: the model answers with a JSON-schema-looking object whose
   ``properties`` hold the real data.
2. Root wrapper: the blueprint arrives as ``{"blueprint": {...}}``.
"""

from __future__ import annotations

import logging

log = logging.getLogger(__name__)


def unwrap_schema(parsed):
    """Return the data object inside a known wrapper, else *parsed* as-is."""
    if not isinstance(parsed, dict):
        return parsed

    properties = parsed.get("properties")
    if isinstance(properties, dict) and "sections" not in parsed and "analysis" not in parsed:
        analysis = properties.get("analysis")
        if analysis is not None:
            if isinstance(analysis, dict) and "properties" in analysis:
                # A real schema definition, not data; leave it for the
                # required-field check to reject.
                log.warning("Schema echo with nested 'properties' detected; not unwrapping")
                return parsed
            log.warning("Unwrapping schema-echo response from 'properties'")
            return properties

    wrapped = parsed.get("blueprint")
    if isinstance(wrapped, dict) and "sections" in wrapped:
        log.warning("Unwrapping blueprint from root 'blueprint' key")
        return wrapped

    return parsed
