"""
Analysis package for genops.

This package contains the content-level helpers shared by the applier,
the diff engine and the rollback controller: the path to logical entity
mapping, stable content hashing and source canonicalisation used for
the semantic diff refinement.
"""
