"""
Configuration model for genops.

The CLI constructs a Config instance and passes it down into the engine,
applier and rollback controller so limits can be adjusted without
relying on global state.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Config:
    """
    Top-level configuration for a genops run.
    """

    store_dir: str = ".genops"
    projects_dir: str = "generated"

    # A write larger than this (UTF-8 encoded) is dropped, never truncated.
    max_write_bytes: int = 150_000
    log_page_limit: int = 50
    rollback_file_limit: int = 200
    diff_detail_limit: int = 120
    semantic_diff: bool = True

    manifest_name: str = "package.json"
    dependency_version: str = "*"

    verbosity: int = 0
