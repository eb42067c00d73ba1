"""Manifest parsing for the write path.

Accepts a structured document or its JSON/YAML text.  YAML timestamps are
kept as strings so the parsed tree serialises back to the same JSON the
API server expects.
"""

from __future__ import annotations

import copy
import json
from collections.abc import Mapping
from typing import Any

import yaml

from kubemirror.errors import InvalidManifest
from kubemirror.models.resources import KubeObject

_TIMESTAMP_TAG = "tag:yaml.org,2002:timestamp"


class _ManifestLoader(yaml.SafeLoader):
    """SafeLoader that leaves timestamps as plain strings."""


_ManifestLoader.yaml_implicit_resolvers = {
    first_char: [(tag, regexp) for tag, regexp in resolvers if tag != _TIMESTAMP_TAG]
    for first_char, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def parse_manifest(manifest: str | Mapping[str, Any]) -> KubeObject:
    """Return a private copy of the manifest as a dict.

    Raises:
        InvalidManifest: empty input, unparsable text, more than one
                         document, or a top level that is not a mapping.
    """
    if isinstance(manifest, Mapping):
        return copy.deepcopy(dict(manifest))

    text = manifest.strip()
    if not text:
        raise InvalidManifest("manifest is empty", operation="upsert")

    document: Any = None
    json_error: ValueError | None = None
    if text.startswith("{"):
        try:
            document = json.loads(text)
        except ValueError as exc:
            # A YAML flow mapping opens with a brace too.
            json_error = exc

    if document is None:
        document = _load_yaml(text, json_error)

    if not isinstance(document, dict):
        raise InvalidManifest("manifest must be a mapping at the top level", operation="upsert")
    return document


def manifest_metadata(obj: KubeObject) -> dict[str, Any]:
    """Return ``obj["metadata"]``, creating it when missing or malformed."""
    metadata = obj.get("metadata")
    if not isinstance(metadata, dict):
        metadata = {}
        obj["metadata"] = metadata
    return metadata


def _load_yaml(text: str, json_error: ValueError | None = None) -> Any:
    try:
        documents = [doc for doc in yaml.load_all(text, Loader=_ManifestLoader) if doc is not None]
    except yaml.YAMLError as exc:
        if json_error is not None:
            raise InvalidManifest(
                f"manifest is neither valid JSON ({json_error}) nor valid YAML: {exc}",
                operation="upsert",
            ) from exc
        raise InvalidManifest(f"manifest is not valid YAML: {exc}", operation="upsert") from exc
    if len(documents) != 1:
        raise InvalidManifest(
            f"manifest must contain exactly one document, found {len(documents)}",
            operation="upsert",
        )
    return documents[0]
