"""
documents.py
============
Loads the static JSON/YAML configuration documents that the provisioning and
scheduling snippets submit to AWS. Documents can live on disk or in S3.
"""

import json
import re
import tempfile
from pathlib import Path
from typing import Any

import boto3
import typer
import yaml

YAML_SUFFIXES = (".yaml", ".yml")


def load_document(source: str) -> Any:
    """Load a configuration document from a local path or S3 URI."""
    if source.startswith("s3://"):
        return _load_from_s3(source)
    return _load_from_file(source)


def _parse(text: str, source: str) -> Any:
    try:
        if source.lower().endswith(YAML_SUFFIXES):
            return yaml.safe_load(text)
        return json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ValueError(f"Could not parse {source}: {e}") from e


def _load_from_file(path: str) -> Any:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Configuration document not found: {path}")
    return _parse(p.read_text(encoding="utf-8"), path)


def _load_from_s3(uri: str) -> Any:
    # s3://bucket/key/path
    match = re.match(r"s3://([^/]+)/(.+)", uri)
    if not match:
        raise ValueError(f"Invalid S3 URI: {uri}")
    bucket, key = match.group(1), match.group(2)
    s3 = boto3.client("s3")
    with tempfile.NamedTemporaryFile(suffix=Path(key).suffix) as tmp:
        s3.download_file(bucket, key, tmp.name)
        return _parse(Path(tmp.name).read_text(encoding="utf-8"), uri)


def parse_tag_filters(values: list[str] | None) -> dict[str, str]:
    """Turn repeated ``Key=Value`` options into a tag dict."""
    tags: dict[str, str] = {}
    for value in values or []:
        if "=" not in value:
            raise typer.BadParameter(f"Tag filter must look like Key=Value, got {value!r}")
        key, val = value.split("=", 1)
        tags[key.strip()] = val.strip()
    return tags


def tags_match(resource: dict, needed: dict[str, str]) -> bool:
    """True when every ``needed`` tag is present on the resource with the same value."""
    if not needed:
        return True
    tags = {t["Key"]: t["Value"] for t in resource.get("Tags", [])}
    return all(tags.get(k) == v for k, v in needed.items())
