from __future__ import annotations

"""
Unit tests for the HCL parsing service.

Verifies:
1. Native and JSON dialects produce the same document layout.
2. Library failures are converted into ParseError.
3. Parsers are handed back to the pool even when parsing fails.
"""

import pytest

from tgatlantis.core.parsing.hcl_parser import HclDocument, HclParser, ParserPool
from tgatlantis.domain.errors import ParseError

HCL_SAMPLE = """
locals {
  atlantis_workflow = "custom"
  extra_atlantis_dependencies = ["a.txt", "b.txt"]
}

dependency "vpc" {
  config_path = "../vpc"
}

dependency "db" {
  config_path = "../db"
}
"""


def test_parse_native_hcl() -> None:
    """TC-01: Blocks and labeled blocks are reachable through the document view."""
    doc = HclParser().parse(HCL_SAMPLE, "/repo/app/terragrunt.hcl")

    locals_blocks = doc.blocks("locals")
    assert len(locals_blocks) == 1
    assert locals_blocks[0]["extra_atlantis_dependencies"] == ["a.txt", "b.txt"]

    deps = dict(doc.labeled_blocks("dependency"))
    assert set(deps) == {"vpc", "db"}
    assert deps["vpc"]["config_path"] == "../vpc"


def test_parse_json_dialect_normalizes_blocks() -> None:
    """TC-02: A JSON object block is wrapped into a list like the native layout."""
    content = '{"locals": {"atlantis_skip": true}, "dependency": {"vpc": {"config_path": "../vpc"}}}'
    doc = HclParser().parse(content, "/repo/app/terragrunt.hcl.json")

    assert doc.blocks("locals") == [{"atlantis_skip": True}]
    assert doc.labeled_blocks("dependency") == [("vpc", {"config_path": "../vpc"})]


def test_missing_block_type_is_empty() -> None:
    doc = HclDocument("/x.hcl", {})
    assert doc.blocks("include") == []
    assert doc.labeled_blocks("module") == []
    assert doc.attribute("inputs", "fallback") == "fallback"


def test_block_marker_is_stripped() -> None:
    """TC-03: The '__is_block__' marker some hcl2 releases add never leaks out."""
    doc = HclDocument("/x.hcl", {
        "locals": [{"a": 1, "__is_block__": True}],
        "module": [{"m": {"source": "./m", "__is_block__": True}, "__is_block__": True}],
    })
    assert doc.blocks("locals") == [{"a": 1}]
    assert doc.labeled_blocks("module") == [("m", {"source": "./m"})]


@pytest.mark.parametrize("path, content", [
    ("/repo/bad/terragrunt.hcl", "locals {\n  a = \n"),
    ("/repo/bad/terragrunt.hcl.json", "{not json"),
    ("/repo/bad/terragrunt.hcl.json", "[1, 2]"),
])
def test_syntax_errors_become_parse_error(path: str, content: str) -> None:
    """TC-04: Any underlying failure is reported as ParseError for the file."""
    with pytest.raises(ParseError) as exc:
        HclParser().parse(content, path)
    assert exc.value.path == path


def test_pool_reuses_released_parsers() -> None:
    """TC-05: Sequential acquisitions share one parser instance."""
    pool = ParserPool()
    with pool.acquire() as first:
        pass
    with pool.acquire() as second:
        pass

    assert first is second
    assert pool.created == 1


def test_pool_releases_parser_on_error() -> None:
    """TC-06: A failing parse still returns the parser to the pool."""
    pool = ParserPool()
    with pytest.raises(ParseError):
        with pool.acquire() as parser:
            parser.parse("{broken", "/x.json")

    with pool.acquire() as again:
        assert again is parser
    assert pool.created == 1


def test_pool_creates_parser_per_concurrent_holder() -> None:
    pool = ParserPool()
    a = pool.get()
    b = pool.get()
    assert a is not b
    assert pool.created == 2
    pool.put(a)
    pool.put(b)
