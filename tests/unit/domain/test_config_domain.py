from __future__ import annotations

"""
Unit tests for the configuration domain.

Verifies default values, freezing of dictionaries into GenerateConfig and
the flag signature used by the dependency cache.
"""

import os

from tgatlantis.domain.config import GenerateConfig, default_num_executors, get_default_config


def test_default_config_values() -> None:
    """TC-01: Defaults mirror the documented behavior flags."""
    cfg = get_default_config()

    assert cfg["cascade_dependencies"] is True
    assert cfg["ignore_parent_terragrunt"] is True
    assert cfg["ignore_dependency_blocks"] is False
    assert cfg["parallel"] is True
    assert cfg["create_hcl_project_external_childs"] is True
    assert cfg["create_hcl_project_childs"] is False
    assert cfg["filter_paths"] == []
    assert cfg["num_executors"] == default_num_executors()


def test_default_num_executors_is_bounded() -> None:
    assert 1 <= default_num_executors() <= 32


def test_from_dict_freezes_lists_and_absolutizes_root(tmp_path) -> None:
    """TC-02: Lists become tuples and the root becomes absolute; unknown keys are dropped."""
    cfg = GenerateConfig.from_dict({
        "root": str(tmp_path),
        "filter_paths": ["a", "b"],
        "default_apply_requirements": ["approved"],
        "unknown_key": 1,
    })

    assert cfg.root == os.path.abspath(str(tmp_path))
    assert cfg.filter_paths == ("a", "b")
    assert cfg.default_apply_requirements == ("approved",)
    hash(cfg)


def test_flag_signature_tracks_resolution_flags(tmp_path) -> None:
    """TC-03: Only flags that change resolution results alter the signature."""
    base = GenerateConfig.from_dict({"root": str(tmp_path)})
    other_workflow = GenerateConfig.from_dict({"root": str(tmp_path), "default_workflow": "x"})
    no_cascade = GenerateConfig.from_dict({"root": str(tmp_path), "cascade_dependencies": False})

    assert base.flag_signature() == other_workflow.flag_signature()
    assert base.flag_signature() != no_cascade.flag_signature()


def test_worker_count_respects_parallel_flag(tmp_path) -> None:
    assert GenerateConfig(root=str(tmp_path), num_executors=8).worker_count == 8
    assert GenerateConfig(root=str(tmp_path), num_executors=8, parallel=False).worker_count == 1
